"""Fitness venue extraction pipeline."""

from app.services.pipelines.common import (
    ai_enhancement_step,
    images_step,
    place_details_step,
    rating_step,
    reviews_step,
    social_media_step,
    website_scrape_step,
)
from app.services.pipelines.definition import PipelineDefinition


def build_pipeline() -> PipelineDefinition:
    return PipelineDefinition(
        entity_type="fitness",
        steps=(
            place_details_step(),
            website_scrape_step(),
            social_media_step(),
            reviews_step(),
            images_step(),
            ai_enhancement_step(),
            rating_step(),
        ),
    )
