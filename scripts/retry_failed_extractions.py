"""Queue resumption jobs for every failed entity of one type."""

from __future__ import annotations

import argparse
import asyncio
import logging

from app.core.database import close_db
from app.core.logging import setup_logging
from app.core.redis import close_redis
from app.services.extraction_service import get_extraction_service
from app.services.extraction_task_manager import ExtractionQueueFullError
from app.services.pipelines.registry import ENTITY_TYPES

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--entity-type", required=True, choices=ENTITY_TYPES)
    parser.add_argument("--limit", type=int, default=100, help="Maximum entities to queue.")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the entities that would be retried without queueing anything.",
    )
    return parser.parse_args(argv)


async def retry_failed(*, entity_type: str, limit: int, dry_run: bool) -> int:
    """Queue resumptions and return how many entities were queued (or listed)."""
    service = get_extraction_service()
    records = await service.list_entities(entity_type, status="failed", limit=limit)
    queued = 0
    try:
        for record in records:
            if dry_run:
                print(f"would retry {record.id} {record.name} (failed at {record.failed_step})")
                queued += 1
                continue
            await service.task_manager.enqueue_resume(entity_id=record.id)
            queued += 1
    except ExtractionQueueFullError:
        logger.warning(
            "Extraction queue full, stopping early",
            extra={"entity_type": entity_type, "queued": queued, "candidates": len(records)},
        )
    finally:
        await close_redis()
        await close_db()
    return queued


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging()
    count = asyncio.run(
        retry_failed(entity_type=args.entity_type, limit=args.limit, dry_run=args.dry_run)
    )
    verb = "Found" if args.dry_run else "Queued"
    print(f"{verb} {count} failed {args.entity_type} extraction(s)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
