"""Lua scripts for atomic multi-key queue operations in Redis.

Single-command operations (RPUSH, BLMOVE, LREM, LLEN) are atomic on their
own; scripts are only needed where several commands must run as one.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from redis.asyncio import Redis


class LuaScripts:
    """Container for Redis Lua scripts used by the metadata queue.

    Usage:
        moved = await LuaScripts.move_all(redis, processing_key, pending_key)
    """

    # ─────────────────────────────────────────────────────────────────────────
    # RECOVERY: Return in-flight jobs to the pending list
    # ─────────────────────────────────────────────────────────────────────────

    MOVE_ALL: str = (
        # Drain one list into another, oldest entry first.
        #
        # KEYS[1]: source list (e.g., metadata_queue:processing)
        # KEYS[2]: destination list (e.g., metadata_queue:pending)
        #
        # Returns:
        #   Number of entries moved (0 if source was empty)
        #
        # INVARIANT: Entries keep their relative order and are appended at the
        # destination's tail, so a consumer popping from the head sees them
        # after anything already pending.
        "local moved = 0\n"
        "while true do\n"
        "  local item = redis.call('LMOVE', KEYS[1], KEYS[2], 'LEFT', 'RIGHT')\n"
        "  if not item then\n"
        "    break\n"
        "  end\n"
        "  moved = moved + 1\n"
        "end\n"
        "return moved\n"
    )

    @staticmethod
    async def move_all(redis: "Redis", source: str, destination: str) -> int:
        """Execute MOVE_ALL.

        Args:
            redis: Redis client instance
            source: List to drain
            destination: List receiving the entries at its tail

        Returns:
            Number of entries moved
        """
        result = await redis.eval(LuaScripts.MOVE_ALL, 2, source, destination)
        if isinstance(result, bytes):
            result = int(result)
        return int(result) if result else 0
