import uuid

import pytest

from clubhouse.main.config import Settings
from clubhouse.metadata_queue.job import MetadataJob
from clubhouse.metadata_queue.queue import MetadataQueue
from clubhouse.metadata_queue.store import InMemoryQueueStore


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings with explicit values for unit tests.

    This provides a clean, isolated configuration that doesn't depend on
    .env file or environment variables.
    """
    return Settings(
        # Minimal database settings (not used in unit tests)
        postgres_user="unit_test_user",
        postgres_host="localhost",
        postgres_password="unit_test_password",
        postgres_port=5432,
        postgres_db="unit_test_db",

        # Redis settings (not used in unit tests)
        redis_host="localhost",
        redis_port=6379,
        redis_db=None,
        redis_password=None,
        redis_max_connections=None,

        # Metadata pipeline
        link_metadata_enabled=True,
        metadata_queue_namespace="metadata_queue",
        metadata_worker_count=3,
        metadata_reserve_timeout_seconds=1.0,
        metadata_fetch_timeout_seconds=30.0,
        metadata_publish_events=True,
        metadata_queue_maintenance_mode=False,
    )


@pytest.fixture
def memory_store() -> InMemoryQueueStore:
    return InMemoryQueueStore()


@pytest.fixture
def metadata_queue(memory_store: InMemoryQueueStore) -> MetadataQueue:
    return MetadataQueue(memory_store)


@pytest.fixture
def make_job():
    def _make_job(url: str = "https://example.com/article", **overrides) -> MetadataJob:
        return MetadataJob(
            post_id=overrides.pop("post_id", uuid.uuid4()),
            link_id=overrides.pop("link_id", uuid.uuid4()),
            url=url,
            **overrides,
        )

    return _make_job
