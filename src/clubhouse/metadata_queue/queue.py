"""At-least-once job handoff between producers and metadata workers.

Jobs live in two lists of the queue store:

- ``{namespace}:pending``: FIFO, producers append at the tail.
- ``{namespace}:processing``: jobs reserved by a worker and not yet acknowledged.

``reserve`` moves a payload from pending to processing in one store
operation, so a job is only ever in one of the two lists. A worker that dies
between reserve and acknowledge leaves its job in processing until an
operator calls ``requeue_abandoned``.

None of the operations retry; store errors surface as ``QueueStoreError``.
"""

from __future__ import annotations

from clubhouse.main.exceptions import JobSerializationError
from clubhouse.main.logging import get_logger
from clubhouse.metadata_queue.job import MetadataJob, ReservedJob
from clubhouse.metadata_queue.store import QueueStore
from clubhouse.observability.redaction import redact_url

logger = get_logger(__name__)

DEFAULT_NAMESPACE = "metadata_queue"


class MetadataQueue:
    """Client for the link metadata job queue.

    Args:
        store: Queue store backend shared by every producer and worker.
        namespace: Prefix for the pending and processing list keys.
    """

    def __init__(self, store: QueueStore, namespace: str = DEFAULT_NAMESPACE) -> None:
        self._store = store
        self.namespace = namespace
        self.pending_key = f"{namespace}:pending"
        self.processing_key = f"{namespace}:processing"

    async def enqueue(self, job: MetadataJob) -> None:
        """Append a job to the tail of the pending list.

        Never waits for consumers. Raises ``JobSerializationError`` or
        ``QueueStoreError``; producers should treat either as non-fatal.
        """
        payload = job.to_payload()
        await self._store.append(self.pending_key, payload)

        logger.debug(
            "Enqueued metadata job",
            extra={
                "post_id": str(job.post_id),
                "link_id": str(job.link_id),
                "url": redact_url(job.url),
            },
        )

    async def reserve(self, timeout: float) -> ReservedJob | None:
        """Move the oldest pending job to processing and return it.

        Blocks up to ``timeout`` seconds. An empty queue is the normal idle
        state, so a timeout returns None instead of raising.

        Raises:
            JobSerializationError: The reserved payload was malformed. It is
                removed from processing before raising.
            QueueStoreError: The store could not be reached.
        """
        if timeout <= 0:
            raise ValueError("reserve timeout must be greater than zero")

        payload = await self._store.move_blocking(
            self.pending_key, self.processing_key, timeout
        )
        if payload is None:
            return None

        try:
            job = MetadataJob.from_payload(payload)
        except JobSerializationError:
            # Remove poison message so it is not requeued forever
            await self._store.remove(self.processing_key, payload)
            raise

        return ReservedJob(job=job, payload=payload)

    async def acknowledge(self, job: ReservedJob | MetadataJob) -> bool:
        """Remove a finished job from processing.

        Acknowledging a job that is no longer in processing is not an error,
        so duplicate acks after partial failures are harmless.

        Returns:
            True if an entry was removed, False if it was already gone.
        """
        payload = job.payload if isinstance(job, ReservedJob) else job.to_payload()
        removed = await self._store.remove(self.processing_key, payload)
        return removed > 0

    async def requeue_abandoned(self) -> int:
        """Move every in-flight job back to the tail of pending.

        WARNING: this cannot tell a job abandoned by a crashed worker from one
        a live worker is still processing. Only call it when no worker is
        running, otherwise live jobs get processed twice.

        Returns:
            Number of jobs moved.
        """
        moved = await self._store.move_all(self.processing_key, self.pending_key)
        if moved:
            logger.warning(
                f"Requeued {moved} in-flight metadata jobs",
                extra={"requeued_count": moved},
            )
        return moved

    async def queue_length(self) -> int:
        """Number of jobs waiting to be reserved."""
        return await self._store.length(self.pending_key)

    async def processing_length(self) -> int:
        """Number of reserved jobs not yet acknowledged."""
        return await self._store.length(self.processing_key)
