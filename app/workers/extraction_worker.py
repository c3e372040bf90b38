"""Extraction queue worker process entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from contextlib import suppress

from app.core.database import close_db
from app.core.logging import setup_logging
from app.core.redis import close_redis
from app.services.extraction_task_manager import (
    ExtractionTaskWorker,
    get_extraction_task_manager,
)

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--poll-timeout",
        type=int,
        default=5,
        help="Redis blocking-pop timeout (seconds).",
    )
    parser.add_argument(
        "--requeue-delay",
        type=float,
        default=1.0,
        help="Delay before requeue when the entity is already being extracted.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Concurrent extraction workers (defaults to EXTRACTION_TASK_WORKERS).",
    )
    return parser.parse_args(argv)


async def run_workers(
    *,
    poll_timeout: int,
    requeue_delay: float,
    workers: int | None,
) -> None:
    """Start workers and block until a shutdown signal arrives."""
    setup_logging()

    worker = ExtractionTaskWorker(
        manager=get_extraction_task_manager(),
        poll_timeout_seconds=poll_timeout,
        requeue_delay_seconds=requeue_delay,
        worker_count=workers,
    )
    await worker.start()
    logger.info("Extraction worker process started", extra={"worker_count": worker.worker_count})

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _request_stop() -> None:
        if not stop_event.is_set():
            logger.info("Shutdown signal received")
            stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, _request_stop)

    try:
        await stop_event.wait()
    finally:
        logger.info("Stopping extraction worker process")
        await worker.stop()
        await close_redis()
        await close_db()


def main() -> int:
    """Run the worker process."""
    args = parse_args()
    try:
        asyncio.run(
            run_workers(
                poll_timeout=args.poll_timeout,
                requeue_delay=args.requeue_delay,
                workers=args.workers,
            )
        )
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
