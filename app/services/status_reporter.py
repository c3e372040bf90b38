"""Read-only projection of extraction progress for operators and the API."""

from __future__ import annotations

from dataclasses import dataclass, field

from app.services.pipelines.definition import PipelineDefinition
from app.services.pipelines.registry import get_pipeline_definition
from app.services.progress_store import (
    SETTLED_STATUSES,
    EntityRecord,
    ProgressStore,
    derive_extraction_status,
    derive_failed_step,
)
from app.services.run_lock import RunLock


@dataclass(slots=True)
class StepStatusView:
    name: str
    status: str
    fatal: bool
    started_at: str | None = None
    completed_at: str | None = None
    error: str | None = None
    attempts: int = 0


@dataclass(slots=True)
class ExtractionStatusReport:
    entity_id: str
    entity_type: str
    name: str
    extraction_status: str
    failed_step: str | None
    percent_complete: float
    current_step: str | None
    error_message: str | None
    run_active: bool = False
    steps: list[StepStatusView] = field(default_factory=list)


def build_status_report(
    record: EntityRecord,
    definition: PipelineDefinition,
    *,
    run_active: bool = False,
) -> ExtractionStatusReport:
    """Project progress into a report.

    ``percent_complete`` counts settled steps (completed, skipped, or
    skipped_with_error). ``current_step`` is the first running step, else the
    last failed one. ``error_message`` is the failed step's error, else the
    last error recorded by any step.
    """
    steps = []
    for step in definition.steps:
        entry = record.step(step.name)
        steps.append(
            StepStatusView(
                name=step.name,
                status=entry.status,
                fatal=step.fatal,
                started_at=entry.started_at,
                completed_at=entry.completed_at,
                error=entry.error,
                attempts=entry.attempts,
            )
        )

    settled = sum(1 for view in steps if view.status in SETTLED_STATUSES)
    percent = round(settled / len(steps) * 100, 2) if steps else 0.0

    current = next((view for view in steps if view.status == "running"), None)
    if current is None:
        current = next((view for view in reversed(steps) if view.status == "failed"), None)

    if current is not None and current.status == "failed":
        error_message = current.error
    else:
        # Tolerated failures (skipped_with_error) still carry their error.
        error_message = next((view.error for view in reversed(steps) if view.error), None)

    return ExtractionStatusReport(
        entity_id=record.id,
        entity_type=record.entity_type,
        name=record.name,
        extraction_status=derive_extraction_status(record.progress, definition, run_active),
        failed_step=derive_failed_step(record.progress, definition),
        percent_complete=percent,
        current_step=current.name if current else None,
        error_message=error_message,
        run_active=run_active,
        steps=steps,
    )


class StatusReporter:
    def __init__(self, store: ProgressStore, run_lock: RunLock) -> None:
        self.store = store
        self.run_lock = run_lock

    async def get_status(self, entity_id: str) -> ExtractionStatusReport:
        record = await self.store.load(entity_id)
        definition = get_pipeline_definition(record.entity_type)
        run_active = await self.run_lock.is_held(entity_id)
        return build_status_report(record, definition, run_active=run_active)
