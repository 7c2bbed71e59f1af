"""Shared Redis connection utilities."""

from clubhouse.redis.connection import build_redis_pool_kwargs, create_redis_client

__all__ = ["build_redis_pool_kwargs", "create_redis_client"]
