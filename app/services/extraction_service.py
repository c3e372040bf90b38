"""Extraction use cases shared by the API, the worker and scripts."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

from app.config import settings
from app.core.exceptions import AlreadyRunningError
from app.services.extraction_orchestrator import (
    ExtractionOptions,
    ExtractionOrchestrator,
    ExtractionOutcome,
)
from app.services.extraction_task_manager import (
    ExtractionTaskManager,
    JobKind,
    get_extraction_task_manager,
)
from app.services.pipelines.registry import get_pipeline_definition
from app.services.progress_store import (
    EntityRecord,
    ProgressStore,
    derive_extraction_status,
    utc_now,
)
from app.services.resumption import ResumptionController, find_live_running_step
from app.services.run_lock import RunLock, get_run_lock
from app.services.status_reporter import ExtractionStatusReport, StatusReporter

logger = logging.getLogger(__name__)


class ExtractionService:
    """Start, inspect, retry and re-run extractions.

    Runs are never executed inline: this service creates records and hands
    jobs to the queue, and the worker pool executes them.
    """

    def __init__(
        self,
        *,
        store: ProgressStore,
        run_lock: RunLock,
        task_manager: ExtractionTaskManager,
    ) -> None:
        self.store = store
        self.run_lock = run_lock
        self.task_manager = task_manager
        self.reporter = StatusReporter(store, run_lock)

    async def start_extraction(
        self,
        *,
        entity_type: str,
        name: str,
        place_id: str | None = None,
        area: str | None = None,
        seed_data: Mapping[str, Any] | None = None,
    ) -> EntityRecord:
        """Create a ``pending`` record and queue its first run.

        Raises:
            UnknownEntityTypeError: no pipeline for ``entity_type``.
            DuplicateEntityError: ``place_id`` already catalogued for the type.
            ExtractionQueueFullError: the queue cannot take more work.
        """
        get_pipeline_definition(entity_type)
        await self.task_manager.ensure_capacity()
        record = await self.store.create_entity(
            entity_type=entity_type,
            name=name,
            place_id=place_id,
            area=area,
            seed_data=seed_data,
        )
        await self.task_manager.enqueue_start(entity_id=record.id)
        return record

    async def get_status(self, entity_id: str) -> ExtractionStatusReport:
        return await self.reporter.get_status(entity_id)

    async def retry_extraction(self, entity_id: str) -> bool:
        """Queue a resumption. Returns False when the entity is already complete.

        Raises:
            EntityNotFoundError: unknown entity.
            AlreadyRunningError: a run currently holds the entity's lock, or a
                step is still ``running`` inside the stale window, which the
                queued resume would refuse.
        """
        record = await self.store.load(entity_id)
        if await self.run_lock.is_held(entity_id):
            raise AlreadyRunningError(entity_id)

        definition = get_pipeline_definition(record.entity_type)
        live_step = find_live_running_step(
            record,
            definition,
            stale_after=timedelta(seconds=settings.extraction_stale_running_seconds),
            now=utc_now(),
        )
        if live_step is not None:
            logger.warning(
                "Retry refused, step still running",
                extra={"entity_id": entity_id, "step": live_step},
            )
            raise AlreadyRunningError(entity_id)
        if derive_extraction_status(record.progress, definition, run_active=False) == "completed":
            logger.info("Retry ignored, entity already complete", extra={"entity_id": entity_id})
            return False

        await self.task_manager.enqueue_resume(entity_id=entity_id)
        return True

    async def rerun_extraction(self, entity_id: str) -> None:
        """Queue an operator re-run of every step, including settled ones."""
        await self.store.load(entity_id)
        if await self.run_lock.is_held(entity_id):
            raise AlreadyRunningError(entity_id)
        await self.task_manager.enqueue_rerun(entity_id=entity_id)

    async def list_entities(
        self,
        entity_type: str,
        *,
        status: str | None = None,
        limit: int = 50,
    ) -> list[EntityRecord]:
        get_pipeline_definition(entity_type)
        return await self.store.list_entities(entity_type, status=status, limit=limit)


_progress_store: ProgressStore | None = None
_orchestrator: ExtractionOrchestrator | None = None
_extraction_service: ExtractionService | None = None


def get_progress_store() -> ProgressStore:
    """Get singleton SQL-backed progress store."""
    global _progress_store
    if _progress_store is None:
        _progress_store = ProgressStore()
    return _progress_store


def get_extraction_orchestrator() -> ExtractionOrchestrator:
    """Get singleton orchestrator using settings-driven retry policy."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = ExtractionOrchestrator(get_progress_store(), get_run_lock())
    return _orchestrator


def get_resumption_controller() -> ResumptionController:
    return ResumptionController(get_extraction_orchestrator())


def get_extraction_service() -> ExtractionService:
    """Get singleton extraction service."""
    global _extraction_service
    if _extraction_service is None:
        _extraction_service = ExtractionService(
            store=get_progress_store(),
            run_lock=get_run_lock(),
            task_manager=get_extraction_task_manager(),
        )
    return _extraction_service


async def run_extraction_job(kind: JobKind, entity_id: str) -> ExtractionOutcome:
    """Execute one queued job in the current process."""
    if kind == "resume":
        return await get_resumption_controller().resume(entity_id)

    orchestrator = get_extraction_orchestrator()
    record = await orchestrator.store.load(entity_id)
    definition = get_pipeline_definition(record.entity_type)
    options = ExtractionOptions(force_rerun=kind == "rerun")
    return await orchestrator.execute_extraction(entity_id, definition, options)
