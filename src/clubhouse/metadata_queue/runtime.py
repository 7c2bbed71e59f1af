"""Wires the metadata queue components from settings.

This is the only module of the pipeline that reads ``Settings``; everything
else receives its collaborators and configuration explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass

import redis.asyncio as aioredis

from clubhouse.database.database import DatabaseSessionManager
from clubhouse.links.fetcher import DEFAULT_TIMEOUT_SECONDS, HttpMetadataFetcher
from clubhouse.main.config import Settings, get_settings
from clubhouse.main.logging import get_logger
from clubhouse.metadata_queue.producer import LinkMetadataEnqueuer
from clubhouse.metadata_queue.queue import MetadataQueue
from clubhouse.metadata_queue.sink import LinkMetadataPublisher, LinkMetadataSink
from clubhouse.metadata_queue.store import RedisQueueStore
from clubhouse.metadata_queue.worker import MetadataWorkerPool, WorkerPoolConfig
from clubhouse.redis.connection import create_redis_client

logger = get_logger(__name__)


def build_queue(redis_client: aioredis.Redis, settings: Settings | None = None) -> MetadataQueue:
    resolved_settings = settings or get_settings()
    return MetadataQueue(
        RedisQueueStore(redis_client),
        namespace=resolved_settings.metadata_queue_namespace,
    )


def build_enqueuer(redis_client: aioredis.Redis, settings: Settings | None = None) -> LinkMetadataEnqueuer:
    resolved_settings = settings or get_settings()
    return LinkMetadataEnqueuer(
        build_queue(redis_client, resolved_settings),
        enabled=resolved_settings.link_metadata_enabled,
    )


@dataclass
class WorkerRuntime:
    """A worker pool plus the resources it owns."""

    pool: MetadataWorkerPool
    queue: MetadataQueue
    redis_client: aioredis.Redis
    fetcher: HttpMetadataFetcher
    session_manager: DatabaseSessionManager

    async def aclose(self) -> None:
        """Stop the pool, then release HTTP, database and Redis connections."""
        await self.pool.stop()
        await self.fetcher.aclose()
        await self.session_manager.close()
        await self.redis_client.aclose()


def build_worker_runtime(
    settings: Settings | None = None,
    worker_count: int | None = None,
) -> WorkerRuntime:
    """Build a ready-to-start worker pool backed by Redis and Postgres."""
    resolved_settings = settings or get_settings()
    if resolved_settings.database_url is None:
        raise ValueError("POSTGRES_* settings are required to run metadata workers")

    redis_client = create_redis_client(resolved_settings)
    queue = build_queue(redis_client, resolved_settings)

    session_manager = DatabaseSessionManager()
    session_manager.init(resolved_settings.database_url)

    # The fetcher's own request timeout never outlives the per-job budget
    fetcher = HttpMetadataFetcher(
        timeout=min(DEFAULT_TIMEOUT_SECONDS, resolved_settings.metadata_fetch_timeout_seconds),
        max_body_bytes=resolved_settings.metadata_fetch_max_body_bytes,
    )

    config = WorkerPoolConfig.from_settings(resolved_settings)
    if worker_count is not None:
        config = WorkerPoolConfig(
            worker_count=worker_count,
            reserve_timeout=config.reserve_timeout,
            fetch_timeout=config.fetch_timeout,
        )

    publisher = LinkMetadataPublisher(redis_client) if resolved_settings.metadata_publish_events else None

    logger.info(
        "Built metadata worker runtime",
        extra={
            "namespace": queue.namespace,
            "count": config.worker_count,
            "publish_events": publisher is not None,
        },
    )

    pool = MetadataWorkerPool(
        queue,
        fetcher,
        LinkMetadataSink(session_manager),
        config=config,
        publisher=publisher,
    )
    return WorkerRuntime(
        pool=pool,
        queue=queue,
        redis_client=redis_client,
        fetcher=fetcher,
        session_manager=session_manager,
    )
