"""AI enhancement step: description, SEO copy and FAQs for the listing."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from app.agents.listing_enhancer import ListingEnhancerAgent, ListingEnhancerInput
from app.core.exceptions import PermanentInputError
from app.services.steps.base_step import StepAdapter, StepContext, StepResult

logger = logging.getLogger(__name__)

# Snapshot keys passed to the agent as extra facts when present.
_EXTRA_FACT_KEYS = ("opening_hours", "google_categories", "price_level", "instagram", "menu_link")


class ListingEnhancementAdapter(StepAdapter):
    def __init__(
        self,
        agent_factory: Callable[[], ListingEnhancerAgent] = ListingEnhancerAgent,
    ) -> None:
        self._agent_factory = agent_factory

    async def execute(self, context: StepContext) -> StepResult:
        name = context.get("name")
        if not name:
            raise PermanentInputError("Cannot enhance a listing without a name")

        reviews = context.get("reviews", [])
        agent_input = ListingEnhancerInput(
            entity_type=context.entity_type,
            name=name,
            address=context.get("address"),
            area=context.get("area"),
            google_rating=context.get("google_rating"),
            google_review_count=context.get("google_review_count"),
            website=context.get("website"),
            website_text=context.get("website_text"),
            review_snippets=[r["text"] for r in reviews if isinstance(r, dict) and r.get("text")],
            sentiment_summary=context.get("review_sentiment"),
            extra_facts={
                key: context.get(key) for key in _EXTRA_FACT_KEYS if context.get(key) is not None
            },
        )

        enhancement = await self._agent_factory().run(agent_input)
        logger.info(
            "Listing enhanced",
            extra={"entity_id": context.entity_id, "faqs": len(enhancement.faqs)},
        )

        fields = enhancement.model_dump()
        fields["ai_enhanced_at"] = datetime.now(timezone.utc).isoformat()
        return StepResult(fields=fields, raw=enhancement.model_dump())
