"""Job records exchanged through the metadata queue."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import NamedTuple
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from clubhouse.main.exceptions import JobSerializationError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MetadataJob(BaseModel):
    """Fetch metadata for ``url`` and attach it to link ``link_id`` of post ``post_id``.

    Jobs are frozen: workers read them and produce a separate metadata result.
    ``created_at`` is informational only; queue order does not depend on it.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    post_id: UUID
    link_id: UUID
    url: str = Field(min_length=1)
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("created_at")
    @classmethod
    def ensure_timezone(cls, value: datetime) -> datetime:
        # Naive timestamps are taken as UTC so payloads serialize the same way everywhere
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_payload(self) -> bytes:
        """Serialize to the flat JSON payload stored in the queue."""
        try:
            return json.dumps(
                self.model_dump(mode="json"), sort_keys=True, separators=(",", ":")
            ).encode()
        except (TypeError, ValueError) as exc:
            raise JobSerializationError(f"cannot serialize metadata job: {exc}") from exc

    @classmethod
    def from_payload(cls, payload: bytes | str) -> "MetadataJob":
        """Parse a stored payload, raising ``JobSerializationError`` if it is malformed."""
        raw = payload.encode() if isinstance(payload, str) else payload
        try:
            data = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise JobSerializationError(f"invalid metadata job payload: {exc}", payload=raw) from exc

        if not isinstance(data, dict):
            raise JobSerializationError("metadata job payload is not an object", payload=raw)

        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise JobSerializationError(
                f"invalid metadata job payload: {exc.error_count()} validation error(s)",
                payload=raw,
            ) from exc


class ReservedJob(NamedTuple):
    """A job handed to a worker together with the exact bytes held in-flight.

    Acknowledging with the original bytes avoids LREM misses caused by
    re-serialization differences.
    """

    job: MetadataJob
    payload: bytes
