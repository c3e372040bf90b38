"""School extraction pipeline.

Schools are described mostly from their own website, so the scrape is fatal
and a school without a website fails instead of being skipped.
"""

from app.services.pipelines.common import (
    ai_enhancement_step,
    images_step,
    place_details_step,
    rating_step,
    social_media_step,
    website_scrape_step,
)
from app.services.pipelines.definition import PipelineDefinition


def build_pipeline() -> PipelineDefinition:
    return PipelineDefinition(
        entity_type="school",
        steps=(
            place_details_step(),
            website_scrape_step(fatal=True, skip_if_missing=False),
            social_media_step(),
            images_step(),
            ai_enhancement_step(),
            rating_step(fatal=False),
        ),
    )
