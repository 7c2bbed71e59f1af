"""Queue store backends for the metadata queue.

A queue store holds named ordered lists of opaque payloads and offers the
handful of atomic operations the queue client is built on. The client never
locks on its own; all coordination between workers goes through
``move_blocking``.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from typing import TYPE_CHECKING

from redis.exceptions import RedisError

from clubhouse.main.exceptions import QueueStoreError
from clubhouse.main.logging import get_logger
from clubhouse.metadata_queue.lua_scripts import LuaScripts

if TYPE_CHECKING:
    import redis.asyncio as aioredis

logger = get_logger(__name__)


class QueueStore(ABC):
    """Ordered, atomically updatable lists shared by producers and workers."""

    @abstractmethod
    async def append(self, key: str, payload: bytes) -> None:
        """Append ``payload`` at the tail of list ``key``."""

    @abstractmethod
    async def move_blocking(
        self, source: str, destination: str, timeout: float
    ) -> bytes | None:
        """Atomically pop the head of ``source`` and push it to the tail of ``destination``.

        Waits up to ``timeout`` seconds for ``source`` to become non-empty.

        Returns:
            The moved payload, or None if nothing arrived before the timeout.
        """

    @abstractmethod
    async def remove(self, key: str, payload: bytes) -> int:
        """Remove one occurrence of ``payload`` from ``key``. Returns the number removed."""

    @abstractmethod
    async def move_all(self, source: str, destination: str) -> int:
        """Drain ``source`` into the tail of ``destination``, oldest first. Returns the count."""

    @abstractmethod
    async def length(self, key: str) -> int:
        """Return the number of entries in ``key``."""

    async def close(self) -> None:
        """Release underlying connections."""


class RedisQueueStore(QueueStore):
    """Queue store backed by Redis lists.

    Uses RPUSH/BLMOVE/LREM/LLEN, each atomic server-side. Blocking moves hold
    a pooled connection for up to ``timeout`` seconds, so the pool needs at
    least one connection per concurrent worker.

    Args:
        redis_client: Async Redis connection returning raw bytes.
    """

    def __init__(self, redis_client: aioredis.Redis) -> None:
        self._redis = redis_client

    async def append(self, key: str, payload: bytes) -> None:
        try:
            await self._redis.rpush(key, payload)
        except RedisError as exc:
            raise QueueStoreError(f"failed to append to {key}: {exc}") from exc

    async def move_blocking(
        self, source: str, destination: str, timeout: float
    ) -> bytes | None:
        try:
            result = await self._redis.blmove(source, destination, timeout, "LEFT", "RIGHT")
        except RedisError as exc:
            raise QueueStoreError(f"failed to move from {source}: {exc}") from exc

        if result is None:
            return None
        return result.encode() if isinstance(result, str) else result

    async def remove(self, key: str, payload: bytes) -> int:
        try:
            return int(await self._redis.lrem(key, 1, payload))
        except RedisError as exc:
            raise QueueStoreError(f"failed to remove from {key}: {exc}") from exc

    async def move_all(self, source: str, destination: str) -> int:
        try:
            return await LuaScripts.move_all(self._redis, source, destination)
        except RedisError as exc:
            raise QueueStoreError(f"failed to move {source} to {destination}: {exc}") from exc

    async def length(self, key: str) -> int:
        try:
            return int(await self._redis.llen(key))
        except RedisError as exc:
            raise QueueStoreError(f"failed to read length of {key}: {exc}") from exc

    async def close(self) -> None:
        try:
            await self._redis.aclose()
        except RedisError as exc:
            logger.warning(f"Error closing Redis client: {exc}")


class InMemoryQueueStore(QueueStore):
    """Queue store kept in process memory.

    Suitable when producers and workers share one event loop (embedded
    deployments, tests). Contents are lost when the process exits.
    """

    def __init__(self) -> None:
        self._lists: defaultdict[str, deque[bytes]] = defaultdict(deque)
        self._condition = asyncio.Condition()

    async def append(self, key: str, payload: bytes) -> None:
        async with self._condition:
            self._lists[key].append(payload)
            self._condition.notify_all()

    async def move_blocking(
        self, source: str, destination: str, timeout: float
    ) -> bytes | None:
        async with self._condition:
            try:
                await asyncio.wait_for(
                    self._condition.wait_for(lambda: bool(self._lists[source])),
                    timeout,
                )
            except asyncio.TimeoutError:
                return None

            payload = self._lists[source].popleft()
            self._lists[destination].append(payload)
            return payload

    async def remove(self, key: str, payload: bytes) -> int:
        async with self._condition:
            try:
                self._lists[key].remove(payload)
            except ValueError:
                return 0
            return 1

    async def move_all(self, source: str, destination: str) -> int:
        async with self._condition:
            moved = 0
            while self._lists[source]:
                self._lists[destination].append(self._lists[source].popleft())
                moved += 1
            if moved:
                self._condition.notify_all()
            return moved

    async def length(self, key: str) -> int:
        return len(self._lists[key])

    def snapshot(self, key: str) -> list[bytes]:
        """Return a copy of list ``key`` (oldest first)."""
        return list(self._lists[key])
