"""Review sentiment step."""

from __future__ import annotations

import logging
from collections.abc import Callable

from app.agents.review_sentiment import ReviewSentimentAgent, ReviewSentimentInput
from app.core.exceptions import PermanentInputError
from app.services.steps.base_step import StepAdapter, StepContext, StepResult

logger = logging.getLogger(__name__)

MAX_REVIEWS_ANALYZED = 20


class ReviewSentimentAdapter(StepAdapter):
    def __init__(
        self,
        agent_factory: Callable[[], ReviewSentimentAgent] = ReviewSentimentAgent,
    ) -> None:
        self._agent_factory = agent_factory

    async def execute(self, context: StepContext) -> StepResult:
        texts = [
            review.get("text", "")
            for review in context.get("reviews", [])
            if isinstance(review, dict) and review.get("text")
        ][:MAX_REVIEWS_ANALYZED]
        if not texts:
            raise PermanentInputError("No review text to analyse")

        agent = self._agent_factory()
        sentiment = await agent.run(
            ReviewSentimentInput(
                entity_name=context.get("name", ""),
                entity_type=context.entity_type,
                reviews=texts,
            )
        )
        logger.info(
            "Review sentiment analysed",
            extra={"entity_id": context.entity_id, "reviews": len(texts)},
        )
        return StepResult(
            fields={
                "review_sentiment": sentiment.summary,
                "sentiment_highlights": sentiment.highlights,
                "sentiment_modifiers": {
                    "quality": sentiment.quality_modifier,
                    "service": sentiment.service_modifier,
                    "ambience": sentiment.ambience_modifier,
                    "value": sentiment.value_modifier,
                    "accessibility": sentiment.accessibility_modifier,
                },
            },
            raw=sentiment.model_dump(),
        )
