"""Asynchronous link metadata fetch pipeline.

This package provides modular components:
- MetadataJob / ReservedJob: immutable job records and their queue payloads
- QueueStore: storage capability, with Redis and in-memory backends
- MetadataQueue: enqueue, reserve, acknowledge, requeue and length introspection
- MetadataWorkerPool: concurrent reserve -> fetch -> persist -> acknowledge loop
- LinkMetadataSink / LinkMetadataPublisher: persistence and realtime fan-out
- LinkMetadataEnqueuer: best-effort producer used by post creation
"""

from clubhouse.metadata_queue.job import MetadataJob, ReservedJob
from clubhouse.metadata_queue.producer import LinkMetadataEnqueuer
from clubhouse.metadata_queue.queue import MetadataQueue
from clubhouse.metadata_queue.sink import (
    LinkMetadataPublisher,
    LinkMetadataSink,
    ResultSink,
)
from clubhouse.metadata_queue.store import InMemoryQueueStore, QueueStore, RedisQueueStore
from clubhouse.metadata_queue.worker import (
    MetadataFetcher,
    MetadataWorkerPool,
    WorkerPoolConfig,
    WorkerPoolStats,
)

__all__ = [
    "InMemoryQueueStore",
    "LinkMetadataEnqueuer",
    "LinkMetadataPublisher",
    "LinkMetadataSink",
    "MetadataFetcher",
    "MetadataJob",
    "MetadataQueue",
    "MetadataWorkerPool",
    "QueueStore",
    "RedisQueueStore",
    "ReservedJob",
    "ResultSink",
    "WorkerPoolConfig",
    "WorkerPoolStats",
]
