"""Rating step: applies the directory rating formula to gathered data."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone

from app.services.rating_calculator import calculate_rating
from app.services.steps.base_step import StepAdapter, StepContext, StepResult


class RatingAdapter(StepAdapter):
    """Score the listing from provider rating, price, features and sentiment."""

    async def execute(self, context: StepContext) -> StepResult:
        result = calculate_rating(
            rating=context.get("google_rating"),
            review_count=context.get("google_review_count"),
            price_level=context.get("price_level"),
            features=context.get("suggested_features", []),
            sentiment=context.get("sentiment_modifiers"),
        )
        return StepResult(
            fields={
                "overall_rating": result.overall,
                "rating_breakdown": result.components,
                "score_label": result.label,
                "rating_updated_at": datetime.now(timezone.utc).isoformat(),
            },
            raw=asdict(result),
        )
