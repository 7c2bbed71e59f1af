"""Unit tests for MetadataJob payload handling."""

import json
from datetime import datetime, timezone
from uuid import uuid4

import pytest


class TestMetadataJobPayload:
    """Tests for MetadataJob.to_payload / from_payload."""

    def test_payload_is_flat_json_with_all_fields(self):
        """Should serialize post_id, link_id, url and created_at as a flat object."""
        from clubhouse.metadata_queue.job import MetadataJob

        post_id, link_id = uuid4(), uuid4()
        created_at = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        job = MetadataJob(post_id=post_id, link_id=link_id, url="https://example.com", created_at=created_at)

        data = json.loads(job.to_payload())

        assert data == {
            "post_id": str(post_id),
            "link_id": str(link_id),
            "url": "https://example.com",
            "created_at": "2024-05-01T12:00:00Z",
        }

    def test_payload_is_stable_for_same_job(self):
        """Should produce identical bytes every time so LREM can match them."""
        from clubhouse.metadata_queue.job import MetadataJob

        job = MetadataJob(post_id=uuid4(), link_id=uuid4(), url="https://example.com")

        assert job.to_payload() == job.to_payload()
        assert MetadataJob.from_payload(job.to_payload()).to_payload() == job.to_payload()

    def test_from_payload_accepts_str(self):
        """Should parse payloads returned as text."""
        from clubhouse.metadata_queue.job import MetadataJob

        job = MetadataJob(post_id=uuid4(), link_id=uuid4(), url="https://example.com")

        assert MetadataJob.from_payload(job.to_payload().decode()) == job

    def test_naive_created_at_is_treated_as_utc(self):
        """Should attach UTC to naive timestamps."""
        from clubhouse.metadata_queue.job import MetadataJob

        job = MetadataJob(
            post_id=uuid4(),
            link_id=uuid4(),
            url="https://example.com",
            created_at=datetime(2024, 1, 1, 8, 30),
        )

        assert job.created_at.tzinfo == timezone.utc

    def test_job_is_immutable(self):
        """Should reject attribute assignment."""
        from pydantic import ValidationError

        from clubhouse.metadata_queue.job import MetadataJob

        job = MetadataJob(post_id=uuid4(), link_id=uuid4(), url="https://example.com")

        with pytest.raises(ValidationError):
            job.url = "https://other.example.com"


class TestMetadataJobMalformedPayload:
    """Tests for rejecting malformed payloads."""

    @pytest.mark.parametrize(
        "payload",
        [
            b"not valid json {",
            b"[1, 2, 3]",
            b'{"post_id": "nope", "link_id": "nope", "url": "https://example.com"}',
            b'{"link_id": "9b2b7b4e-6f3e-4b43-9c1c-2f8f1f0b6c11", "url": "https://example.com"}',
            b"\xff\xfe",
        ],
    )
    def test_raises_serialization_error(self, payload):
        """Should raise JobSerializationError carrying the raw payload."""
        from clubhouse.main.exceptions import JobSerializationError
        from clubhouse.metadata_queue.job import MetadataJob

        with pytest.raises(JobSerializationError) as exc_info:
            MetadataJob.from_payload(payload)

        assert exc_info.value.payload == payload

    def test_rejects_unknown_fields(self):
        """Should reject payloads with extra keys."""
        from clubhouse.main.exceptions import JobSerializationError
        from clubhouse.metadata_queue.job import MetadataJob

        payload = json.dumps(
            {"post_id": str(uuid4()), "link_id": str(uuid4()), "url": "https://x.io", "extra": 1}
        ).encode()

        with pytest.raises(JobSerializationError):
            MetadataJob.from_payload(payload)

    def test_rejects_empty_url(self):
        """Should reject an empty URL."""
        from clubhouse.main.exceptions import JobSerializationError
        from clubhouse.metadata_queue.job import MetadataJob

        payload = json.dumps({"post_id": str(uuid4()), "link_id": str(uuid4()), "url": ""}).encode()

        with pytest.raises(JobSerializationError):
            MetadataJob.from_payload(payload)
