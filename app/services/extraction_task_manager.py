"""Redis-backed queueing for extraction jobs."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Literal

from app.config import settings
from app.core.exceptions import AlreadyRunningError
from app.core.redis import get_redis_client

logger = logging.getLogger(__name__)

JobKind = Literal["start", "resume", "rerun"]
JOB_KINDS: frozenset[str] = frozenset({"start", "resume", "rerun"})


@dataclass(slots=True)
class ExtractionJob:
    """Queued extraction job."""

    kind: JobKind
    entity_id: str


class ExtractionQueueFullError(RuntimeError):
    """Raised when the extraction queue is full."""


class ExtractionTaskManager:
    """Redis-backed enqueue/dequeue manager for extraction jobs."""

    QUEUE_KEY = "extraction:queue"

    def __init__(self, *, worker_count: int, queue_size: int) -> None:
        self._worker_count = max(1, worker_count)
        self._queue_size_limit = max(1, queue_size)
        self._redis = get_redis_client()

    @property
    def worker_count(self) -> int:
        """Configured worker count."""
        return self._worker_count

    @property
    def queue_size_limit(self) -> int:
        """Configured queue size cap."""
        return self._queue_size_limit

    async def get_queue_size(self) -> int:
        """Get current queue length from Redis."""
        return int(await self._redis.llen(self.QUEUE_KEY))

    async def ensure_capacity(self) -> None:
        """Raise ``ExtractionQueueFullError`` when no job can be accepted."""
        if await self.get_queue_size() >= self._queue_size_limit:
            raise ExtractionQueueFullError("Extraction task queue is full")

    async def enqueue_start(self, *, entity_id: str) -> None:
        """Queue a first run for a newly created entity."""
        await self._enqueue(ExtractionJob(kind="start", entity_id=entity_id), enforce_capacity=True)

    async def enqueue_resume(self, *, entity_id: str) -> None:
        """Queue a resumption of a failed or interrupted run."""
        await self._enqueue(ExtractionJob(kind="resume", entity_id=entity_id), enforce_capacity=True)

    async def enqueue_rerun(self, *, entity_id: str) -> None:
        """Queue a forced re-run of every step."""
        await self._enqueue(ExtractionJob(kind="rerun", entity_id=entity_id), enforce_capacity=True)

    async def requeue(self, job: ExtractionJob) -> None:
        """Requeue a job without hard-failing on the configured queue cap."""
        await self._enqueue(job, enforce_capacity=False)

    async def _enqueue(self, job: ExtractionJob, *, enforce_capacity: bool) -> None:
        if enforce_capacity:
            await self.ensure_capacity()
        queue_size = int(await self._redis.rpush(self.QUEUE_KEY, self._serialize_job(job)))
        logger.info(
            "Extraction task queued",
            extra={"kind": job.kind, "entity_id": job.entity_id, "queue_size": queue_size},
        )

    async def pop_next(self, *, timeout_seconds: int = 5) -> ExtractionJob | None:
        """Pop the next queued job, waiting up to ``timeout_seconds``."""
        timeout = max(1, int(timeout_seconds))
        popped = await self._redis.blpop(self.QUEUE_KEY, timeout=timeout)
        if not popped:
            return None
        _, payload = popped
        try:
            return self._deserialize_job(payload)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            logger.warning("Dropping malformed extraction job payload", extra={"payload": payload})
            return None

    @staticmethod
    def _serialize_job(job: ExtractionJob) -> str:
        return json.dumps({"kind": job.kind, "entity_id": job.entity_id}, separators=(",", ":"))

    @staticmethod
    def _deserialize_job(payload: str) -> ExtractionJob:
        data = json.loads(payload)
        kind = data["kind"]
        entity_id = data["entity_id"]
        if kind not in JOB_KINDS:
            raise ValueError("Invalid extraction job kind")
        if not isinstance(entity_id, str) or not entity_id:
            raise ValueError("Invalid entity_id")
        return ExtractionJob(kind=kind, entity_id=entity_id)


class ExtractionTaskWorker:
    """Async worker pool consuming extraction jobs from Redis.

    Each job runs one entity's pipeline; different entities run concurrently
    across the pool.
    """

    def __init__(
        self,
        *,
        manager: ExtractionTaskManager,
        poll_timeout_seconds: int = 5,
        requeue_delay_seconds: float = 1.0,
        worker_count: int | None = None,
    ) -> None:
        self.manager = manager
        self.poll_timeout_seconds = max(1, int(poll_timeout_seconds))
        self.requeue_delay_seconds = max(0.1, float(requeue_delay_seconds))
        self.worker_count = max(1, worker_count or manager.worker_count)
        self._workers: list[asyncio.Task[None]] = []
        self._stopping = asyncio.Event()

    async def start(self) -> None:
        """Start worker tasks if not already running."""
        if self._workers:
            return
        self._stopping.clear()
        self._workers = [
            asyncio.create_task(
                self._worker_loop(index + 1),
                name=f"extraction-worker-{index + 1}",
            )
            for index in range(self.worker_count)
        ]
        logger.info("Extraction worker pool started", extra={"worker_count": self.worker_count})

    async def stop(self) -> None:
        """Stop worker tasks."""
        if not self._workers:
            return
        self._stopping.set()
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Extraction worker pool stopped")

    async def _worker_loop(self, worker_index: int) -> None:
        logger.info("Extraction worker started", extra={"worker_index": worker_index})
        try:
            while not self._stopping.is_set():
                try:
                    job = await self.manager.pop_next(timeout_seconds=self.poll_timeout_seconds)
                except Exception:
                    logger.exception(
                        "Extraction worker dequeue failed",
                        extra={"worker_index": worker_index},
                    )
                    await asyncio.sleep(self.requeue_delay_seconds)
                    continue
                if job is None:
                    continue
                try:
                    await self._execute(job)
                except AlreadyRunningError:
                    await self._handle_busy(job, worker_index)
                except Exception:
                    logger.exception(
                        "Extraction worker job failed",
                        extra={
                            "worker_index": worker_index,
                            "kind": job.kind,
                            "entity_id": job.entity_id,
                        },
                    )
        except asyncio.CancelledError:
            pass
        finally:
            logger.info("Extraction worker stopped", extra={"worker_index": worker_index})

    async def _handle_busy(self, job: ExtractionJob, worker_index: int) -> None:
        # Local import avoids a circular dependency at module import time.
        from app.services.run_lock import get_run_lock

        if not await get_run_lock().is_held(job.entity_id):
            # Lock is free: a fresh ``running`` step blocked the resume.
            logger.warning(
                "Entity has a fresh running step, dropping job",
                extra={"kind": job.kind, "entity_id": job.entity_id, "worker_index": worker_index},
            )
            return
        logger.info(
            "Entity run in progress, requeueing job",
            extra={"kind": job.kind, "entity_id": job.entity_id, "worker_index": worker_index},
        )
        await asyncio.sleep(self.requeue_delay_seconds)
        await self.manager.requeue(job)

    async def _execute(self, job: ExtractionJob) -> None:
        # Local import avoids a circular dependency at module import time.
        from app.services.extraction_service import run_extraction_job

        await run_extraction_job(job.kind, job.entity_id)


_extraction_task_manager: ExtractionTaskManager | None = None


def get_extraction_task_manager() -> ExtractionTaskManager:
    """Get singleton extraction task manager."""
    global _extraction_task_manager
    if _extraction_task_manager is None:
        _extraction_task_manager = ExtractionTaskManager(
            worker_count=settings.extraction_task_workers,
            queue_size=settings.extraction_task_queue_size,
        )
    return _extraction_task_manager
