#!/usr/bin/env python3
"""Operator commands for the link metadata queue.

Usage:
    python -m clubhouse.cli.metadata_queue stats
    python -m clubhouse.cli.metadata_queue requeue [--force]
    python -m clubhouse.cli.metadata_queue work [--workers N]
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from clubhouse.main.config import Settings, get_settings
from clubhouse.main.exceptions import MaintenanceModeRequiredError, MetadataQueueError
from clubhouse.main.logging import get_logger
from clubhouse.metadata_queue.runtime import build_queue, build_worker_runtime
from clubhouse.redis.connection import create_redis_client

logger = get_logger(__name__)


async def show_stats(settings: Settings) -> dict[str, int]:
    redis_client = create_redis_client(settings)
    try:
        queue = build_queue(redis_client, settings)
        return {
            "pending": await queue.queue_length(),
            "processing": await queue.processing_length(),
        }
    finally:
        await redis_client.aclose()


async def requeue_in_flight(settings: Settings, force: bool = False) -> int:
    """Move every processing job back to pending.

    Live workers would have their jobs processed twice, so this is refused
    unless the deployment is in maintenance mode or ``force`` is given.
    """
    if not (settings.metadata_queue_maintenance_mode or force):
        raise MaintenanceModeRequiredError(
            "requeue requires METADATA_QUEUE_MAINTENANCE_MODE=true or --force; "
            "stop all metadata workers first"
        )

    redis_client = create_redis_client(settings)
    try:
        return await build_queue(redis_client, settings).requeue_abandoned()
    finally:
        await redis_client.aclose()


async def run_workers(settings: Settings, worker_count: int | None = None) -> None:
    """Run a worker pool until SIGINT or SIGTERM."""
    runtime = build_worker_runtime(settings, worker_count=worker_count)
    stop_requested = asyncio.Event()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop_requested.set)

    try:
        runtime.pool.start()
        await stop_requested.wait()
        logger.info("Shutdown signal received")
    finally:
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)
        await runtime.aclose()

    stats = runtime.pool.stats
    logger.info(
        "Metadata worker pool finished",
        extra={
            "stored": stats.stored,
            "fetch_failed": stats.fetch_failed,
            "persist_failed": stats.persist_failed,
            "ack_failed": stats.ack_failed,
        },
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m clubhouse.cli.metadata_queue",
        description="Inspect and operate the link metadata queue.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("stats", help="Print pending and processing lengths")

    requeue = subparsers.add_parser(
        "requeue", help="Move in-flight jobs back to pending (workers must be stopped)"
    )
    requeue.add_argument(
        "--force",
        action="store_true",
        help="Requeue even when maintenance mode is not enabled",
    )

    work = subparsers.add_parser("work", help="Run metadata workers until interrupted")
    work.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of concurrent workers (defaults to METADATA_WORKER_COUNT)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()

    try:
        if args.command == "stats":
            lengths = asyncio.run(show_stats(settings))
            print(f"pending: {lengths['pending']}")
            print(f"processing: {lengths['processing']}")
        elif args.command == "requeue":
            moved = asyncio.run(requeue_in_flight(settings, force=args.force))
            print(f"requeued: {moved}")
        elif args.command == "work":
            asyncio.run(run_workers(settings, worker_count=args.workers))
    except MaintenanceModeRequiredError as exc:
        print(f"Refusing to requeue: {exc}", file=sys.stderr)
        return 2
    except ValueError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1
    except MetadataQueueError as exc:
        print(f"Metadata queue error: {exc}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
