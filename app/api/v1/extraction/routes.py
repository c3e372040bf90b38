"""Extraction API endpoints."""

import logging
from dataclasses import asdict

from fastapi import APIRouter, HTTPException, Query, status

from app.api.v1.dependencies import ExtractionServiceDep
from app.api.v1.extraction.constants import (
    DEFAULT_ENTITY_LIMIT,
    ENTITY_NOT_FOUND_DETAIL,
    EXTRACTION_ALREADY_RUNNING_DETAIL,
    EXTRACTION_QUEUE_FULL_DETAIL,
    MAX_ENTITY_LIMIT,
    RERUN_QUEUED_DETAIL,
    RETRY_NOT_NEEDED_DETAIL,
    RETRY_QUEUED_DETAIL,
)
from app.core.exceptions import (
    AlreadyRunningError,
    DuplicateEntityError,
    EntityNotFoundError,
    UnknownEntityTypeError,
)
from app.schemas.extraction import (
    EntitySummaryResponse,
    EntityType,
    ExtractionJobResponse,
    ExtractionStartRequest,
    ExtractionStartResponse,
    ExtractionStatus,
    ExtractionStatusResponse,
)
from app.services.extraction_task_manager import ExtractionQueueFullError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/{entity_type}/start",
    response_model=ExtractionStartResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start extraction",
    description=(
        "Create a pending catalog entity and queue its extraction pipeline. "
        "Returns immediately; poll the status endpoint for progress."
    ),
)
async def start_extraction(
    entity_type: EntityType,
    request: ExtractionStartRequest,
    service: ExtractionServiceDep,
) -> ExtractionStartResponse:
    """Start extraction for a new entity."""
    logger.info(
        "Extraction start requested",
        extra={"entity_type": entity_type, "name": request.name, "place_id": request.place_id},
    )
    try:
        record = await service.start_extraction(
            entity_type=entity_type,
            name=request.name,
            place_id=request.place_id,
            area=request.area,
            seed_data=request.seed_data,
        )
    except DuplicateEntityError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": exc.message, "existing_id": exc.existing_id},
        ) from exc
    except ExtractionQueueFullError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=EXTRACTION_QUEUE_FULL_DETAIL,
        ) from exc
    except UnknownEntityTypeError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message) from exc

    return ExtractionStartResponse(
        entity_id=record.id,
        entity_type=record.entity_type,
        slug=record.slug,
        extraction_status=record.extraction_status,
    )


@router.get(
    "/entities/{entity_id}/status",
    response_model=ExtractionStatusResponse,
    summary="Get extraction status",
    description="Return overall status, percent complete and per-step progress for an entity.",
)
async def get_extraction_status(
    entity_id: str,
    service: ExtractionServiceDep,
) -> ExtractionStatusResponse:
    """Get extraction progress for an entity."""
    try:
        report = await service.get_status(entity_id)
    except EntityNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=ENTITY_NOT_FOUND_DETAIL,
        ) from exc
    return ExtractionStatusResponse.model_validate(asdict(report))


@router.post(
    "/entities/{entity_id}/retry",
    response_model=ExtractionJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Retry extraction",
    description=(
        "Queue a resumption that re-runs failed and stale steps only. "
        "Completed steps are never repeated."
    ),
)
async def retry_extraction(
    entity_id: str,
    service: ExtractionServiceDep,
) -> ExtractionJobResponse:
    """Resume a failed or interrupted extraction."""
    try:
        queued = await service.retry_extraction(entity_id)
    except EntityNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=ENTITY_NOT_FOUND_DETAIL,
        ) from exc
    except AlreadyRunningError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=EXTRACTION_ALREADY_RUNNING_DETAIL,
        ) from exc
    except ExtractionQueueFullError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=EXTRACTION_QUEUE_FULL_DETAIL,
        ) from exc

    return ExtractionJobResponse(
        entity_id=entity_id,
        queued=queued,
        detail=RETRY_QUEUED_DETAIL if queued else RETRY_NOT_NEEDED_DETAIL,
    )


@router.post(
    "/entities/{entity_id}/rerun",
    response_model=ExtractionJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Re-run extraction",
    description="Queue a forced re-run of every step, including completed ones.",
)
async def rerun_extraction(
    entity_id: str,
    service: ExtractionServiceDep,
) -> ExtractionJobResponse:
    """Force a full re-run."""
    try:
        await service.rerun_extraction(entity_id)
    except EntityNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=ENTITY_NOT_FOUND_DETAIL,
        ) from exc
    except AlreadyRunningError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=EXTRACTION_ALREADY_RUNNING_DETAIL,
        ) from exc
    except ExtractionQueueFullError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=EXTRACTION_QUEUE_FULL_DETAIL,
        ) from exc

    return ExtractionJobResponse(entity_id=entity_id, queued=True, detail=RERUN_QUEUED_DETAIL)


@router.get(
    "/{entity_type}/entities",
    response_model=list[EntitySummaryResponse],
    summary="List entities",
    description="List entities of a type, newest first, optionally filtered by extraction status.",
)
async def list_entities(
    entity_type: EntityType,
    service: ExtractionServiceDep,
    status_filter: ExtractionStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=DEFAULT_ENTITY_LIMIT, ge=1, le=MAX_ENTITY_LIMIT),
) -> list[EntitySummaryResponse]:
    """List entities for the extraction queue view."""
    records = await service.list_entities(entity_type, status=status_filter, limit=limit)
    return [
        EntitySummaryResponse(
            entity_id=record.id,
            entity_type=record.entity_type,
            name=record.name,
            slug=record.slug,
            place_id=record.place_id,
            extraction_status=record.extraction_status,
            failed_step=record.failed_step,
            published=record.published,
        )
        for record in records
    ]
