"""Integration test fixtures using testcontainers for Redis."""

import os
from typing import AsyncGenerator, Generator

import pytest
import pytest_asyncio
import redis.asyncio as aioredis
from testcontainers.redis import RedisContainer

from clubhouse.main.config import Settings
from clubhouse.redis.connection import create_redis_client

# Disable Ryuk (testcontainers cleanup container) in devcontainer environments
os.environ.setdefault("TESTCONTAINERS_RYUK_DISABLED", "true")

if not os.getenv("DOCKER_HOST") and os.path.exists("/var/run/docker.sock"):
    os.environ["DOCKER_HOST"] = "unix:///var/run/docker.sock"


@pytest.fixture(scope="session")
def redis_container() -> Generator[RedisContainer, None, None]:
    """Start a Redis container for the test session."""
    container = RedisContainer(image="redis:7-alpine")
    try:
        container.start()
    except Exception as exc:
        pytest.skip(f"Docker is not available for Redis integration tests: {exc}")

    try:
        yield container
    finally:
        container.stop()


@pytest.fixture(scope="session")
def integration_settings(redis_container: RedisContainer) -> Settings:
    return Settings(
        _env_file=None,
        redis_host=redis_container.get_container_host_ip(),
        redis_port=int(redis_container.get_exposed_port(6379)),
        metadata_queue_namespace="metadata_queue_it",
        metadata_reserve_timeout_seconds=0.2,
    )


@pytest_asyncio.fixture
async def redis_client(integration_settings: Settings) -> AsyncGenerator[aioredis.Redis, None]:
    client = create_redis_client(integration_settings)
    await client.flushdb()
    try:
        yield client
    finally:
        await client.flushdb()
        await client.aclose()
