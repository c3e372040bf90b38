"""Reviews step: newest Google Maps reviews via the Apify reviews actor."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from app.core.exceptions import PermanentInputError
from app.integrations.apify import ApifyClient
from app.services.steps.base_step import StepAdapter, StepContext, StepResult

logger = logging.getLogger(__name__)


def map_review(item: dict[str, Any]) -> dict[str, Any]:
    return {
        "author": item.get("name"),
        "rating": item.get("stars"),
        "text": (item.get("text") or "").strip(),
        "published_at": item.get("publishedAtDate"),
        "likes": item.get("likesCount") or 0,
    }


class ReviewsAdapter(StepAdapter):
    def __init__(self, client_factory: Callable[[], ApifyClient] = ApifyClient) -> None:
        self._client_factory = client_factory

    async def execute(self, context: StepContext) -> StepResult:
        place_id = context.get("place_id")
        if not place_id:
            raise PermanentInputError("Reviews need a place id")

        async with self._client_factory() as client:
            items = await client.fetch_reviews(place_id)

        reviews = [map_review(item) for item in items if item.get("stars") is not None]
        logger.info(
            "Reviews fetched",
            extra={"entity_id": context.entity_id, "place_id": place_id, "reviews": len(reviews)},
        )
        return StepResult(
            fields={"reviews": reviews, "review_count_fetched": len(reviews)},
            raw=items,
        )
