"""Lookup of pipeline definitions by entity type."""

from __future__ import annotations

from collections.abc import Callable
from functools import lru_cache

from app.core.exceptions import UnknownEntityTypeError
from app.services.pipelines import attraction, fitness, hotel, mall, restaurant, school
from app.services.pipelines.definition import PipelineDefinition

PIPELINE_BUILDERS: dict[str, Callable[[], PipelineDefinition]] = {
    "restaurant": restaurant.build_pipeline,
    "hotel": hotel.build_pipeline,
    "mall": mall.build_pipeline,
    "attraction": attraction.build_pipeline,
    "school": school.build_pipeline,
    "fitness": fitness.build_pipeline,
}

ENTITY_TYPES: tuple[str, ...] = tuple(PIPELINE_BUILDERS)


@lru_cache
def get_pipeline_definition(entity_type: str) -> PipelineDefinition:
    """Get the (cached) pipeline definition for an entity type."""
    builder = PIPELINE_BUILDERS.get(entity_type)
    if builder is None:
        raise UnknownEntityTypeError(entity_type)
    return builder()
