"""Extraction schemas."""

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

EntityType = Literal["restaurant", "hotel", "mall", "attraction", "school", "fitness"]
ExtractionStatus = Literal["pending", "processing", "completed", "failed"]


class ExtractionStartRequest(BaseModel):
    """Identity and optional seed data for a new catalog entity."""

    name: str = Field(min_length=1, max_length=255)
    place_id: str | None = Field(
        default=None,
        max_length=255,
        description="Google place id. When omitted the place is searched by name and area.",
    )
    area: str | None = Field(default=None, max_length=120)
    seed_data: dict[str, Any] = Field(
        default_factory=dict,
        description="Known facts (e.g. website) merged into the record before extraction.",
    )

    @field_validator("name", "place_id", "area")
    @classmethod
    def _strip(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None


class ExtractionStartResponse(BaseModel):
    entity_id: str
    entity_type: str
    slug: str
    extraction_status: ExtractionStatus
    queued: bool = True


class ExtractionJobResponse(BaseModel):
    """Response for retry/rerun requests."""

    entity_id: str
    queued: bool
    detail: str


class StepStatusResponse(BaseModel):
    name: str
    status: str
    fatal: bool
    started_at: str | None = None
    completed_at: str | None = None
    error: str | None = None
    attempts: int = 0


class ExtractionStatusResponse(BaseModel):
    """Progress projection for one entity."""

    entity_id: str
    entity_type: str
    name: str
    extraction_status: ExtractionStatus
    failed_step: str | None = None
    percent_complete: float
    current_step: str | None = None
    error_message: str | None = None
    run_active: bool = False
    steps: list[StepStatusResponse] = Field(default_factory=list)


class EntitySummaryResponse(BaseModel):
    """Row of the entity list view."""

    entity_id: str
    entity_type: str
    name: str
    slug: str
    place_id: str | None = None
    extraction_status: ExtractionStatus
    failed_step: str | None = None
    published: bool = False
