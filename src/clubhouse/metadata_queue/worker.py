"""Worker pool draining the link metadata queue.

Each worker loops reserve -> fetch -> persist -> acknowledge until the pool's
stop event is set. Job failures are logged and acknowledged; they never stop
a worker or the pool. Only a process crash (or cancellation mid-job) leaves a
job in processing, which ``MetadataQueue.requeue_abandoned`` repairs.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from clubhouse.links.urls import classify_fetch_error
from clubhouse.main.exceptions import (
    JobSerializationError,
    LinkNotFoundError,
)
from clubhouse.main.log_context import log_context
from clubhouse.main.logging import get_logger
from clubhouse.metadata_queue.job import MetadataJob, ReservedJob
from clubhouse.metadata_queue.queue import MetadataQueue
from clubhouse.observability.redaction import redact_url

if TYPE_CHECKING:
    from clubhouse.main.config import Settings
    from clubhouse.metadata_queue.sink import LinkMetadataPublisher, ResultSink

logger = get_logger(__name__)

DEFAULT_WORKER_COUNT = 3
DEFAULT_RESERVE_TIMEOUT_SECONDS = 1.0
DEFAULT_FETCH_TIMEOUT_SECONDS = 30.0


class MetadataFetcher(Protocol):
    """Fetches preview metadata for a URL. Must honor cancellation."""

    async def fetch(self, url: str) -> dict[str, Any]: ...


@dataclass(frozen=True)
class WorkerPoolConfig:
    """Worker pool settings, validated once at construction.

    Defaulting rules:
        worker_count <= 0 falls back to DEFAULT_WORKER_COUNT (3).
        reserve_timeout and fetch_timeout must be positive.

    Worst-case shutdown latency is reserve_timeout + fetch_timeout.
    """

    worker_count: int = DEFAULT_WORKER_COUNT
    reserve_timeout: float = DEFAULT_RESERVE_TIMEOUT_SECONDS
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        if self.worker_count <= 0:
            object.__setattr__(self, "worker_count", DEFAULT_WORKER_COUNT)
        if self.reserve_timeout <= 0:
            raise ValueError("reserve_timeout must be greater than zero")
        if self.fetch_timeout <= 0:
            raise ValueError("fetch_timeout must be greater than zero")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "WorkerPoolConfig":
        return cls(
            worker_count=settings.metadata_worker_count,
            reserve_timeout=settings.metadata_reserve_timeout_seconds,
            fetch_timeout=settings.metadata_fetch_timeout_seconds,
        )


@dataclass
class WorkerPoolStats:
    """Counters shared by all workers of a pool (single event loop, no locking)."""

    stored: int = 0
    fetch_failed: int = 0
    persist_failed: int = 0
    ack_failed: int = 0
    reserve_failed: int = 0
    # Jobs acknowledged per worker id
    by_worker: dict[int, int] = field(default_factory=dict)

    @property
    def acknowledged(self) -> int:
        return self.stored + self.fetch_failed + self.persist_failed - self.ack_failed


class MetadataWorkerPool:
    """Runs ``config.worker_count`` concurrent consumers of a metadata queue.

    Args:
        queue: Queue client to reserve and acknowledge jobs with.
        fetcher: Fetches metadata for a job's URL.
        sink: Persists fetched metadata (idempotent overwrite per link).
        config: Pool size and timeouts.
        publisher: Optional realtime fan-out after a successful save.

    Example:
        pool = MetadataWorkerPool(queue, fetcher, sink, WorkerPoolConfig(worker_count=4))
        pool.start()
        ...
        await pool.stop()
    """

    def __init__(
        self,
        queue: MetadataQueue,
        fetcher: MetadataFetcher,
        sink: "ResultSink",
        config: WorkerPoolConfig | None = None,
        publisher: "LinkMetadataPublisher | None" = None,
    ) -> None:
        self._queue = queue
        self._fetcher = fetcher
        self._sink = sink
        self._publisher = publisher
        self.config = config or WorkerPoolConfig()
        self.stats = WorkerPoolStats()
        self._stop_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        """Spawn the worker tasks on the running event loop."""
        if self._tasks:
            raise RuntimeError("metadata worker pool already started")

        logger.info(
            "Starting metadata workers",
            extra={"count": self.config.worker_count},
        )
        self._stop_event.clear()
        self._tasks = [
            asyncio.create_task(self._run_worker(worker_id), name=f"metadata-worker-{worker_id}")
            for worker_id in range(self.config.worker_count)
        ]

    async def stop(self) -> None:
        """Signal every worker to stop and wait until all have left their loop.

        Workers finish the job they are processing; a worker blocked on
        reserve returns within one reserve timeout.
        """
        if not self._tasks:
            return

        logger.info("Stopping metadata workers")
        self._stop_event.set()

        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for worker_id, result in enumerate(results):
            if isinstance(result, asyncio.CancelledError):
                continue
            if isinstance(result, BaseException):
                logger.error(
                    "Metadata worker exited with an error",
                    extra={"worker_id": worker_id, "error": str(result)},
                )

        self._tasks = []
        logger.info("Metadata workers stopped")

    async def __aenter__(self) -> "MetadataWorkerPool":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def _pause(self, seconds: float) -> None:
        """Sleep, waking early if the pool is stopped."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), seconds)
        except asyncio.TimeoutError:
            pass

    async def _run_worker(self, worker_id: int) -> None:
        logger.info("Metadata worker started", extra={"worker_id": worker_id})

        while not self._stop_event.is_set():
            try:
                reserved = await self._queue.reserve(self.config.reserve_timeout)
            except asyncio.CancelledError:
                logger.info(
                    "Metadata worker cancelled during reserve",
                    extra={"worker_id": worker_id},
                )
                raise
            except JobSerializationError as exc:
                logger.error(
                    "Discarded malformed metadata job",
                    extra={
                        "worker_id": worker_id,
                        "error_code": "METADATA_JOB_MALFORMED",
                        "error": str(exc),
                    },
                )
                continue
            except Exception as exc:
                self.stats.reserve_failed += 1
                logger.error(
                    "Failed to dequeue metadata job",
                    extra={
                        "worker_id": worker_id,
                        "error_code": "METADATA_DEQUEUE_FAILED",
                        "error": str(exc),
                    },
                )
                # Back off instead of spinning on instant failures
                await self._pause(self.config.reserve_timeout)
                continue

            if reserved is None:
                continue

            await self._process_job(reserved, worker_id)

        logger.info("Metadata worker stopping", extra={"worker_id": worker_id})

    async def _process_job(self, reserved: ReservedJob, worker_id: int) -> None:
        job = reserved.job
        with log_context(
            worker_id=worker_id, post_id=str(job.post_id), link_id=str(job.link_id)
        ):
            logger.debug(
                "Processing metadata job",
                extra={"url": redact_url(job.url)},
            )
            try:
                await self._attempt(job)
            except asyncio.CancelledError:
                # Left in processing, same as a crash; requeue_abandoned recovers it
                logger.warning("Metadata job interrupted by cancellation, left in flight")
                raise

            if await self._acknowledge(reserved):
                self.stats.by_worker[worker_id] = self.stats.by_worker.get(worker_id, 0) + 1

    async def _attempt(self, job: MetadataJob) -> None:
        """Fetch and persist one job. Every failure ends the attempt without retry."""
        try:
            metadata = await asyncio.wait_for(
                self._fetcher.fetch(job.url), self.config.fetch_timeout
            )
        except asyncio.TimeoutError:
            self.stats.fetch_failed += 1
            logger.error(
                "Failed to fetch link metadata",
                extra={
                    "error_code": "METADATA_FETCH_FAILED",
                    "error_type": "timeout",
                    "url": redact_url(job.url),
                    "timeout_seconds": self.config.fetch_timeout,
                },
            )
            return
        except Exception as exc:
            self.stats.fetch_failed += 1
            logger.error(
                "Failed to fetch link metadata",
                extra={
                    "error_code": "METADATA_FETCH_FAILED",
                    "error_type": classify_fetch_error(exc),
                    "url": redact_url(job.url),
                    "error": str(exc),
                },
            )
            return

        if not metadata:
            self.stats.fetch_failed += 1
            logger.warning(
                "Link metadata fetch returned nothing",
                extra={
                    "error_code": "METADATA_FETCH_FAILED",
                    "error_type": "empty_metadata",
                    "url": redact_url(job.url),
                },
            )
            return

        try:
            await self._sink.save(job.link_id, metadata)
        except LinkNotFoundError as exc:
            self.stats.persist_failed += 1
            logger.warning(
                "Link removed before metadata could be stored",
                extra={"error_code": "METADATA_UPDATE_FAILED", "error": str(exc)},
            )
            return
        except Exception as exc:
            self.stats.persist_failed += 1
            logger.error(
                "Failed to update link metadata in database",
                extra={"error_code": "METADATA_UPDATE_FAILED", "error": str(exc)},
            )
            return

        self.stats.stored += 1
        logger.info("Metadata fetched and stored")

        if self._publisher is not None:
            try:
                await self._publisher.publish(job, metadata)
            except Exception as exc:
                logger.warning(
                    "Failed to publish link metadata update",
                    extra={"error_code": "METADATA_PUBLISH_FAILED", "error": str(exc)},
                )

    async def _acknowledge(self, reserved: ReservedJob) -> bool:
        """Acknowledge a finished job. Returns False if the store call failed."""
        try:
            await self._queue.acknowledge(reserved)
        except Exception as exc:
            self.stats.ack_failed += 1
            logger.error(
                "Failed to acknowledge metadata job",
                extra={"error_code": "METADATA_ACK_FAILED", "error": str(exc)},
            )
            return False
        return True


__all__ = [
    "DEFAULT_WORKER_COUNT",
    "MetadataFetcher",
    "MetadataWorkerPool",
    "WorkerPoolConfig",
    "WorkerPoolStats",
]
