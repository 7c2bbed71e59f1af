"""Producer side of the metadata queue, called after a post or comment is created."""

from __future__ import annotations

from typing import Iterable
from uuid import UUID

from clubhouse.links.urls import is_internal_upload_url
from clubhouse.main.exceptions import MetadataQueueError
from clubhouse.main.logging import get_logger
from clubhouse.metadata_queue.job import MetadataJob
from clubhouse.metadata_queue.queue import MetadataQueue
from clubhouse.observability.redaction import redact_url

logger = get_logger(__name__)


class LinkMetadataEnqueuer:
    """Enqueues one metadata job per link of a freshly created post.

    Metadata is enrichment only: enqueue failures are logged and swallowed so
    the create operation that called us still succeeds. There is no
    deduplication; the same URL posted twice is fetched twice.

    Args:
        queue: Metadata queue client.
        enabled: Feature switch (``link_metadata_enabled``).
    """

    def __init__(self, queue: MetadataQueue, enabled: bool = True) -> None:
        self._queue = queue
        self._enabled = enabled

    def should_enqueue(self, url: str) -> bool:
        return self._enabled and bool(url and url.strip()) and not is_internal_upload_url(url)

    async def enqueue_links(self, post_id: UUID, links: Iterable[tuple[UUID, str]]) -> int:
        """Enqueue jobs for ``(link_id, url)`` pairs of a post.

        Returns:
            Number of jobs enqueued.
        """
        if not self._enabled:
            return 0

        enqueued = 0
        for link_id, url in links:
            if not self.should_enqueue(url):
                continue

            try:
                job = MetadataJob(post_id=post_id, link_id=link_id, url=url.strip())
                await self._queue.enqueue(job)
            except (MetadataQueueError, ValueError) as exc:
                logger.warning(
                    "Failed to enqueue metadata job",
                    extra={
                        "post_id": str(post_id),
                        "link_id": str(link_id),
                        "url": redact_url(url),
                        "error_code": "METADATA_ENQUEUE_FAILED",
                        "error": str(exc),
                    },
                )
                continue

            enqueued += 1

        return enqueued
