"""Where fetched link metadata ends up.

``LinkMetadataSink`` overwrites the stored preview of a link. A job can run
twice after a requeue, so the write must be a last-write-wins overwrite and
never an append.

``LinkMetadataPublisher`` tells realtime subscribers of the post that the
preview changed. It is best effort; the worker only logs its failures.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Protocol
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from clubhouse.database.tables.links_table import Links
from clubhouse.main.exceptions import LinkNotFoundError, MetadataPersistenceError
from clubhouse.main.logging import get_logger

if TYPE_CHECKING:
    import redis.asyncio as aioredis

    from clubhouse.database.database import DatabaseSessionManager
    from clubhouse.metadata_queue.job import MetadataJob

logger = get_logger(__name__)

# Keys users edit on the link themselves; a fetch never replaces them
PRESERVED_METADATA_KEYS = ("highlights",)

LINK_METADATA_UPDATED_EVENT = "link_metadata_updated"


class ResultSink(Protocol):
    """Persists metadata for a link. Must be an idempotent overwrite."""

    async def save(self, link_id: UUID, metadata: dict[str, Any]) -> None: ...


def merge_link_metadata(
    existing: dict[str, Any] | None, fetched: dict[str, Any]
) -> dict[str, Any]:
    """Return ``fetched`` with user-authored keys carried over from ``existing``."""
    merged = dict(fetched)
    for key in PRESERVED_METADATA_KEYS:
        if existing and key in existing:
            merged[key] = existing[key]
    return merged


class LinkMetadataSink:
    """Stores fetched metadata on the ``links`` row.

    Args:
        session_manager: Initialized database session manager.
    """

    def __init__(self, session_manager: "DatabaseSessionManager") -> None:
        self._session_manager = session_manager

    async def save(self, link_id: UUID, metadata: dict[str, Any]) -> None:
        """Overwrite the link's metadata.

        Raises:
            LinkNotFoundError: The link no longer exists.
            MetadataPersistenceError: The database rejected the write.
        """
        try:
            async with self._session_manager.session() as session, session.begin():
                existing_stmt = (
                    sa.select(Links.link_metadata)
                    .where(Links.id == link_id)
                    .with_for_update()
                )
                result = await session.execute(existing_stmt)
                row = result.one_or_none()
                if row is None:
                    raise LinkNotFoundError(link_id)

                update_stmt = (
                    sa.update(Links)
                    .where(Links.id == link_id)
                    .values(
                        link_metadata=merge_link_metadata(row[0], metadata),
                        updated_at=datetime.now(timezone.utc),
                    )
                )
                await session.execute(update_stmt)
        except SQLAlchemyError as exc:
            raise MetadataPersistenceError(f"failed to store metadata for link {link_id}: {exc}") from exc


class LinkMetadataPublisher:
    """Publishes metadata updates on the post's realtime channel.

    Channel ``post:{post_id}``; payload ``{"type", "data", "timestamp"}``,
    the same envelope the websocket fan-out uses for other post events.

    Args:
        redis_client: Async Redis connection.
    """

    def __init__(self, redis_client: "aioredis.Redis") -> None:
        self._redis = redis_client

    @staticmethod
    def channel(post_id: UUID) -> str:
        return f"post:{post_id}"

    async def publish(self, job: "MetadataJob", metadata: dict[str, Any]) -> int:
        """Publish the update. Returns the number of subscribers that received it."""
        payload = json.dumps(
            {
                "type": LINK_METADATA_UPDATED_EVENT,
                "data": {
                    "post_id": str(job.post_id),
                    "link_id": str(job.link_id),
                    "url": job.url,
                    "metadata": metadata,
                },
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
            default=str,
        )
        receivers = await self._redis.publish(self.channel(job.post_id), payload)
        logger.debug(
            "Published link metadata update",
            extra={"post_id": str(job.post_id), "receivers": receivers},
        )
        return int(receivers)
