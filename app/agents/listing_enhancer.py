"""Listing enhancer agent: writes directory copy from gathered provider data."""

import json
import logging
from typing import Any

from pydantic import BaseModel, Field

from app.agents.base_agent import BaseAgent

logger = logging.getLogger(__name__)

_MAX_WEBSITE_CHARS = 6000
_MAX_REVIEW_SNIPPETS = 10


class ListingEnhancerInput(BaseModel):
    """Input for the listing enhancer agent."""

    entity_type: str
    name: str
    address: str | None = None
    area: str | None = None
    google_rating: float | None = None
    google_review_count: int | None = None
    website: str | None = None
    website_text: str | None = None
    review_snippets: list[str] = Field(default_factory=list)
    sentiment_summary: str | None = None
    extra_facts: dict[str, Any] = Field(default_factory=dict)


class FAQ(BaseModel):
    """A question and answer shown on the listing page."""

    question: str
    answer: str
    category: str = "general"


class ListingEnhancement(BaseModel):
    """Directory copy and classification suggestions for one listing."""

    description: str = Field(description="Three to five paragraph listing description")
    short_description: str = Field(description="One sentence, under 160 characters")
    meta_title: str = Field(description="SEO title, under 60 characters")
    meta_description: str = Field(description="SEO description, under 160 characters")
    faqs: list[FAQ] = Field(default_factory=list)
    suggested_categories: list[str] = Field(default_factory=list)
    suggested_features: list[str] = Field(default_factory=list)


class ListingEnhancerAgent(BaseAgent[ListingEnhancerInput, ListingEnhancement]):
    """Agent that writes the public listing copy for a catalog entity.

    Grounds all statements in the supplied provider data; missing inputs are
    simply left out of the prompt.
    """

    @property
    def system_prompt(self) -> str:
        return """You write listings for a local business directory.

Rules:
- Use only facts present in the provided data. Do not invent prices, awards or opening hours.
- Write in a warm, informative third-person voice.
- FAQs must answer questions a visitor would actually ask (parking, booking, timings, facilities).
- Suggested categories and features are short labels (e.g. "Family Friendly", "Outdoor Seating").
- Respect the length limits on short_description, meta_title and meta_description."""

    @property
    def output_type(self) -> type[ListingEnhancement]:
        return ListingEnhancement

    def _build_prompt(self, input_data: ListingEnhancerInput) -> str:
        lines = [
            f"Listing type: {input_data.entity_type}",
            f"Name: {input_data.name}",
        ]
        if input_data.address:
            lines.append(f"Address: {input_data.address}")
        if input_data.area:
            lines.append(f"Area: {input_data.area}")
        if input_data.google_rating is not None:
            lines.append(
                f"Google rating: {input_data.google_rating} "
                f"({input_data.google_review_count or 0} reviews)"
            )
        if input_data.website:
            lines.append(f"Website: {input_data.website}")
        if input_data.sentiment_summary:
            lines.append(f"\nGuest sentiment: {input_data.sentiment_summary}")
        if input_data.review_snippets:
            snippets = input_data.review_snippets[:_MAX_REVIEW_SNIPPETS]
            lines.append("\nReview excerpts:\n" + "\n".join(f"- {s}" for s in snippets))
        if input_data.website_text:
            lines.append("\nWebsite content:\n" + input_data.website_text[:_MAX_WEBSITE_CHARS])
        if input_data.extra_facts:
            lines.append("\nOther facts:\n" + json.dumps(input_data.extra_facts, default=str))
        return "\n".join(lines)
