"""Durable per-entity, per-step extraction progress.

Progress lives in ``catalog_entities.extraction_progress`` as a step-name keyed
JSON object. Every write loads the row with ``SELECT ... FOR UPDATE``, applies
the change, recomputes the derived ``extraction_status`` / ``failed_step`` and
commits, so a step's entry, its field patch and the entity status always
change together.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db_kernel import ConflictError, db_read, db_write
from app.core.exceptions import DuplicateEntityError, EntityNotFoundError
from app.core.ids import generate_entity_id, slugify
from app.models.entity import CatalogEntity
from app.services.pipelines.definition import PipelineDefinition

logger = logging.getLogger(__name__)

StepStatus = Literal["pending", "running", "completed", "failed", "skipped", "skipped_with_error"]
ExtractionStatus = Literal["pending", "processing", "completed", "failed"]

STEP_STATUSES: frozenset[str] = frozenset(
    {"pending", "running", "completed", "failed", "skipped", "skipped_with_error"}
)
SETTLED_STATUSES: frozenset[str] = frozenset({"completed", "skipped", "skipped_with_error"})

# Step fields that live in their own column instead of ``data``.
COLUMN_FIELDS = ("name", "place_id")

_KNOWN_ENTRY_KEYS = ("status", "started_at", "completed_at", "error", "attempts", "result_digest")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def result_digest(raw: Any) -> str | None:
    """SHA-256 of the canonical JSON form of a provider payload."""
    if raw is None:
        return None
    canonical = json.dumps(raw, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass(slots=True)
class StepProgress:
    """One entry of the progress payload. Unknown keys are carried in ``extra``."""

    status: str = "pending"
    started_at: str | None = None
    completed_at: str | None = None
    error: str | None = None
    attempts: int = 0
    result_digest: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_settled(self) -> bool:
        return self.status in SETTLED_STATUSES

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> StepProgress:
        status = payload.get("status")
        return cls(
            status=status if status in STEP_STATUSES else "pending",
            started_at=payload.get("started_at") or payload.get("timestamp"),
            completed_at=payload.get("completed_at"),
            error=payload.get("error"),
            attempts=int(payload.get("attempts") or 0),
            result_digest=payload.get("result_digest"),
            extra={k: v for k, v in payload.items() if k not in _KNOWN_ENTRY_KEYS},
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            **self.extra,
            "status": self.status,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "error": self.error,
            "attempts": self.attempts,
            "result_digest": self.result_digest,
        }


@dataclass(slots=True)
class EntityRecord:
    """In-memory view of one ``catalog_entities`` row."""

    id: str
    entity_type: str
    name: str
    slug: str
    place_id: str | None = None
    extraction_status: str = "pending"
    failed_step: str | None = None
    progress: dict[str, StepProgress] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)
    published: bool = False
    # Progress payload values that are not step entries, preserved verbatim.
    progress_extras: dict[str, Any] = field(default_factory=dict)

    def step(self, name: str) -> StepProgress:
        """Progress for a step; steps absent from the payload read as pending."""
        return self.progress.get(name) or StepProgress()

    def snapshot(self) -> dict[str, Any]:
        """Entity fields as seen by step adapters."""
        return {
            **self.data,
            "id": self.id,
            "entity_type": self.entity_type,
            "name": self.name,
            "slug": self.slug,
            "place_id": self.place_id,
        }

    def progress_payload(self) -> dict[str, Any]:
        payload = dict(self.progress_extras)
        for name, entry in self.progress.items():
            payload[name] = entry.to_payload()
        return payload

    def apply_fields(self, fields: Mapping[str, Any]) -> None:
        """Merge a step's field patch into columns and ``data``."""
        merged = dict(self.data)
        for key, value in fields.items():
            if key == "name" and value:
                self.name = value
            elif key == "place_id" and value:
                if self.place_id is None:
                    self.place_id = value
                elif value != self.place_id:
                    merged["provider_place_id"] = value
            elif key not in COLUMN_FIELDS:
                merged[key] = value
        self.data = merged

    @classmethod
    def from_model(cls, row: CatalogEntity) -> EntityRecord:
        progress: dict[str, StepProgress] = {}
        extras: dict[str, Any] = {}
        for key, value in (row.extraction_progress or {}).items():
            if isinstance(value, Mapping):
                progress[key] = StepProgress.from_payload(value)
            else:
                extras[key] = value
        return cls(
            id=row.id,
            entity_type=row.entity_type,
            name=row.name,
            slug=row.slug,
            place_id=row.place_id,
            extraction_status=row.extraction_status,
            failed_step=row.failed_step,
            progress=progress,
            data=dict(row.data or {}),
            published=bool(row.published),
            progress_extras=extras,
        )

    def apply_to_model(self, row: CatalogEntity) -> None:
        # New containers so JSON column changes are detected.
        row.name = self.name
        row.place_id = self.place_id
        row.extraction_status = self.extraction_status
        row.failed_step = self.failed_step
        row.extraction_progress = self.progress_payload()
        row.data = dict(self.data)


def derive_extraction_status(
    progress: Mapping[str, StepProgress],
    definition: PipelineDefinition,
    run_active: bool,
) -> ExtractionStatus:
    """Entity status as a pure function of progress, definition and run state."""
    entries = [progress.get(step.name) or StepProgress() for step in definition.steps]
    if any(
        step.fatal and entry.status == "failed"
        for step, entry in zip(definition.steps, entries)
    ):
        return "failed"
    if all(entry.is_settled for entry in entries):
        return "completed"
    if run_active or any(entry.status == "running" for entry in entries):
        return "processing"
    return "pending"


def derive_failed_step(
    progress: Mapping[str, StepProgress],
    definition: PipelineDefinition,
) -> str | None:
    """First fatal step (in definition order) whose entry is ``failed``."""
    for step in definition.steps:
        entry = progress.get(step.name)
        if step.fatal and entry is not None and entry.status == "failed":
            return step.name
    return None


def refresh_derived_status(
    record: EntityRecord,
    definition: PipelineDefinition,
    run_active: bool,
) -> None:
    record.extraction_status = derive_extraction_status(record.progress, definition, run_active)
    record.failed_step = derive_failed_step(record.progress, definition)


class ProgressStore:
    """Reads and atomic writes of extraction progress.

    Storage access goes through ``_read``, ``_mutate``, ``_insert``,
    ``_find_by_place`` and ``_list``; everything else is storage-agnostic.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock

    def _now_iso(self) -> str:
        return self._clock().isoformat()

    # ------------------------------------------------------------------ reads

    async def load(self, entity_id: str) -> EntityRecord:
        """Load an entity record, raising ``EntityNotFoundError`` if absent."""
        return await self._read(entity_id)

    async def snapshot(self, entity_id: str) -> dict[str, Any]:
        record = await self._read(entity_id)
        return record.snapshot()

    async def list_entities(
        self,
        entity_type: str,
        *,
        status: str | None = None,
        limit: int = 50,
    ) -> list[EntityRecord]:
        return await self._list(entity_type, status=status, limit=limit)

    # ----------------------------------------------------------------- writes

    async def create_entity(
        self,
        *,
        entity_type: str,
        name: str,
        place_id: str | None = None,
        area: str | None = None,
        seed_data: Mapping[str, Any] | None = None,
    ) -> EntityRecord:
        """Create a bare ``pending`` record with identity fields and seed data."""
        if place_id:
            existing = await self._find_by_place(entity_type, place_id)
            if existing is not None:
                raise DuplicateEntityError(entity_type, place_id, existing.id)

        data = dict(seed_data or {})
        if area:
            data.setdefault("area", area)
        record = EntityRecord(
            id=generate_entity_id(entity_type),
            entity_type=entity_type,
            name=name,
            slug=slugify(name, area or ""),
            place_id=place_id,
            data=data,
        )
        try:
            await self._insert(record)
        except ConflictError:
            # Lost a race with a concurrent create for the same place id.
            existing = await self._find_by_place(entity_type, place_id) if place_id else None
            if existing is None:
                raise
            raise DuplicateEntityError(entity_type, place_id, existing.id) from None

        logger.info(
            "Entity created",
            extra={"entity_id": record.id, "entity_type": entity_type, "place_id": place_id},
        )
        return record

    async def record_step_start(
        self,
        entity_id: str,
        step: str,
        *,
        definition: PipelineDefinition,
    ) -> EntityRecord:
        """Mark a step ``running`` and the entity ``processing``."""
        started_at = self._now_iso()

        def _start(record: EntityRecord) -> None:
            previous = record.step(step)
            record.progress[step] = StepProgress(
                status="running",
                started_at=started_at,
                attempts=0,
                extra=previous.extra,
            )
            refresh_derived_status(record, definition, run_active=True)

        return await self._mutate(entity_id, _start, operation_name="progress.record_step_start")

    async def record_step_result(
        self,
        entity_id: str,
        step: str,
        status: StepStatus,
        *,
        definition: PipelineDefinition,
        error: str | None = None,
        fields: Mapping[str, Any] | None = None,
        raw: Any = None,
        attempts: int | None = None,
        run_active: bool = True,
    ) -> EntityRecord:
        """Record a step outcome, merging ``fields`` when the step completed."""
        if status not in STEP_STATUSES or status in ("pending", "running"):
            raise ValueError(f"Not a step result status: {status}")
        completed_at = self._now_iso()
        digest = result_digest(raw)

        def _finish(record: EntityRecord) -> None:
            previous = record.step(step)
            record.progress[step] = StepProgress(
                status=status,
                started_at=previous.started_at or completed_at,
                completed_at=completed_at,
                error=error,
                attempts=attempts if attempts is not None else previous.attempts,
                result_digest=digest,
                extra=previous.extra,
            )
            if status == "completed" and fields:
                record.apply_fields(fields)
            refresh_derived_status(record, definition, run_active=run_active)

        return await self._mutate(entity_id, _finish, operation_name="progress.record_step_result")

    async def reset_steps(
        self,
        entity_id: str,
        steps: Iterable[str],
        *,
        definition: PipelineDefinition,
        run_active: bool = True,
    ) -> EntityRecord:
        """Return steps to ``pending``, keeping their attempt history in ``extra``."""
        names = list(steps)

        def _reset(record: EntityRecord) -> None:
            for name in names:
                previous = record.step(name)
                extra = dict(previous.extra)
                extra["previous_status"] = previous.status
                if previous.error:
                    extra["previous_error"] = previous.error
                record.progress[name] = StepProgress(status="pending", extra=extra)
            refresh_derived_status(record, definition, run_active=run_active)

        return await self._mutate(entity_id, _reset, operation_name="progress.reset_steps")

    async def finalize(
        self,
        entity_id: str,
        *,
        definition: PipelineDefinition,
    ) -> EntityRecord:
        """Recompute the derived status once no run is active."""

        def _finalize(record: EntityRecord) -> None:
            refresh_derived_status(record, definition, run_active=False)

        return await self._mutate(entity_id, _finalize, operation_name="progress.finalize")

    # ------------------------------------------------------------ storage hooks

    async def _read(self, entity_id: str) -> EntityRecord:
        async def _op(session: AsyncSession) -> EntityRecord:
            row = await session.get(CatalogEntity, entity_id)
            if row is None:
                raise EntityNotFoundError(entity_id)
            return EntityRecord.from_model(row)

        return await db_read(_op, operation_name="progress.load")

    async def _mutate(
        self,
        entity_id: str,
        mutator: Callable[[EntityRecord], None],
        *,
        operation_name: str,
    ) -> EntityRecord:
        async def _op(session: AsyncSession) -> EntityRecord:
            result = await session.execute(
                select(CatalogEntity).where(CatalogEntity.id == entity_id).with_for_update()
            )
            row = result.scalar_one_or_none()
            if row is None:
                raise EntityNotFoundError(entity_id)
            record = EntityRecord.from_model(row)
            mutator(record)
            record.apply_to_model(row)
            return record

        return await db_write(_op, operation_name=operation_name)

    async def _insert(self, record: EntityRecord) -> None:
        async def _op(session: AsyncSession) -> None:
            row = CatalogEntity(
                id=record.id,
                entity_type=record.entity_type,
                slug=record.slug,
                published=False,
            )
            record.apply_to_model(row)
            session.add(row)
            await session.flush()

        await db_write(_op, operation_name="progress.create_entity", attempts=1)

    async def _find_by_place(self, entity_type: str, place_id: str) -> EntityRecord | None:
        async def _op(session: AsyncSession) -> EntityRecord | None:
            result = await session.execute(
                select(CatalogEntity).where(
                    CatalogEntity.entity_type == entity_type,
                    CatalogEntity.place_id == place_id,
                )
            )
            row = result.scalar_one_or_none()
            return EntityRecord.from_model(row) if row is not None else None

        return await db_read(_op, operation_name="progress.find_by_place")

    async def _list(
        self,
        entity_type: str,
        *,
        status: str | None,
        limit: int,
    ) -> list[EntityRecord]:
        async def _op(session: AsyncSession) -> list[EntityRecord]:
            query = select(CatalogEntity).where(CatalogEntity.entity_type == entity_type)
            if status:
                query = query.where(CatalogEntity.extraction_status == status)
            query = query.order_by(CatalogEntity.created_at.desc()).limit(limit)
            result = await session.execute(query)
            return [EntityRecord.from_model(row) for row in result.scalars().all()]

        return await db_read(_op, operation_name="progress.list_entities")
