"""Exceptions raised by the link metadata pipeline."""

from __future__ import annotations

from uuid import UUID


class MetadataQueueError(Exception):
    """Base class for link metadata pipeline errors."""


class QueueStoreError(MetadataQueueError):
    """Raised when the queue store cannot be reached or rejects a command."""


class JobSerializationError(MetadataQueueError):
    """Raised when a job record cannot be encoded or a stored payload cannot be decoded."""

    def __init__(self, message: str, payload: bytes | None = None):
        self.payload = payload
        super().__init__(message)


class MetadataFetchError(MetadataQueueError):
    """Raised by fetchers when a URL yields no usable metadata.

    ``error_type`` is a short classification used in logs
    (timeout, invalid_url, blocked, http_status, dns, fetch_error).
    """

    def __init__(self, message: str, error_type: str = "fetch_error"):
        self.error_type = error_type
        super().__init__(message)


class MetadataPersistenceError(MetadataQueueError):
    """Raised when fetched metadata cannot be stored."""


class LinkNotFoundError(MetadataPersistenceError):
    """Raised when the link a job targets no longer exists."""

    def __init__(self, link_id: UUID):
        self.link_id = link_id
        super().__init__(f"link not found: {link_id}")


class MaintenanceModeRequiredError(MetadataQueueError):
    """Raised when in-flight jobs are requeued outside maintenance mode."""
