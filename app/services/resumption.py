"""Resumption of failed or interrupted extraction runs."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from app.config import settings
from app.core.exceptions import AlreadyRunningError
from app.services.extraction_orchestrator import (
    ExtractionOptions,
    ExtractionOrchestrator,
    ExtractionOutcome,
)
from app.services.pipelines.definition import PipelineDefinition
from app.services.pipelines.registry import get_pipeline_definition
from app.services.progress_store import (
    EntityRecord,
    StepProgress,
    derive_extraction_status,
    utc_now,
)

logger = logging.getLogger(__name__)


def is_stale_running(entry: StepProgress, *, stale_after: timedelta, now: datetime) -> bool:
    """Whether a ``running`` entry is old enough to belong to a dead process."""
    if not entry.started_at:
        return True
    try:
        started = datetime.fromisoformat(entry.started_at)
    except ValueError:
        return True
    return now - started >= stale_after


def find_live_running_step(
    record: EntityRecord,
    definition: PipelineDefinition,
    *,
    stale_after: timedelta,
    now: datetime,
) -> str | None:
    """First step still ``running`` inside the stale window, if any."""
    for step in definition.steps:
        entry = record.step(step.name)
        if entry.status == "running" and not is_stale_running(entry, stale_after=stale_after, now=now):
            return step.name
    return None


class ResumptionController:
    """Replay only the unfinished suffix of an entity's pipeline.

    Under the run lock, ``failed`` steps and ``running`` steps older than the
    stale threshold go back to ``pending``; the orchestrator then runs with the
    same lease and skips everything already settled.
    """

    def __init__(
        self,
        orchestrator: ExtractionOrchestrator,
        stale_after_seconds: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.orchestrator = orchestrator
        self.store = orchestrator.store
        self.run_lock = orchestrator.run_lock
        self.stale_after = timedelta(
            seconds=stale_after_seconds or settings.extraction_stale_running_seconds
        )
        self._clock = clock

    def steps_to_reset(
        self,
        record: EntityRecord,
        definition: PipelineDefinition,
    ) -> list[str]:
        """Failed and stale running steps.

        Raises:
            AlreadyRunningError: a step is running and still fresh.
        """
        if find_live_running_step(record, definition, stale_after=self.stale_after, now=self._clock()):
            raise AlreadyRunningError(record.id)
        return [
            step.name
            for step in definition.steps
            if record.step(step.name).status in ("failed", "running")
        ]

    async def resume(
        self,
        entity_id: str,
        definition: PipelineDefinition | None = None,
    ) -> ExtractionOutcome:
        lease = await self.run_lock.acquire(entity_id)
        async with lease:
            record = await self.store.load(entity_id)
            definition = definition or get_pipeline_definition(record.entity_type)
            to_reset = self.steps_to_reset(record, definition)

            if not to_reset and derive_extraction_status(
                record.progress, definition, run_active=False
            ) == "completed":
                logger.info("Resume skipped, entity already complete", extra={"entity_id": entity_id})
                return ExtractionOutcome(
                    entity_id=entity_id,
                    status=record.extraction_status,
                    failed_step=record.failed_step,
                )

            if to_reset:
                logger.info(
                    "Resetting steps for resume",
                    extra={"entity_id": entity_id, "steps": to_reset},
                )
                await self.store.reset_steps(entity_id, to_reset, definition=definition)

            return await self.orchestrator.run_locked(
                entity_id,
                definition,
                ExtractionOptions(force_rerun=False),
                lease,
            )
