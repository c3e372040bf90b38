"""Review sentiment agent: turns guest reviews into rating modifiers."""

import logging

from pydantic import BaseModel, Field, field_validator

from app.agents.base_agent import BaseAgent

logger = logging.getLogger(__name__)

MODIFIER_LIMIT = 3.0


class ReviewSentimentInput(BaseModel):
    """Input for the review sentiment agent."""

    entity_name: str
    entity_type: str
    reviews: list[str] = Field(default_factory=list)


class KeywordCounts(BaseModel):
    """Keywords found in reviews, grouped by impact."""

    critical_negative: list[str] = Field(default_factory=list)
    moderate_negative: list[str] = Field(default_factory=list)
    minor_negative: list[str] = Field(default_factory=list)
    positive: list[str] = Field(default_factory=list)


class ReviewSentiment(BaseModel):
    """Sentiment analysis output, one modifier per rating component."""

    quality_modifier: float = 0.0
    service_modifier: float = 0.0
    ambience_modifier: float = 0.0
    value_modifier: float = 0.0
    accessibility_modifier: float = 0.0
    summary: str = Field(description="Two or three sentences summarising guest sentiment")
    highlights: list[str] = Field(
        default_factory=list,
        description="Short phrases guests repeatedly praise or criticise",
    )
    keyword_counts: KeywordCounts = Field(default_factory=KeywordCounts)

    @field_validator(
        "quality_modifier",
        "service_modifier",
        "ambience_modifier",
        "value_modifier",
        "accessibility_modifier",
    )
    @classmethod
    def _clamp_modifier(cls, value: float) -> float:
        return max(-MODIFIER_LIMIT, min(MODIFIER_LIMIT, value))


class ReviewSentimentAgent(BaseAgent[ReviewSentimentInput, ReviewSentiment]):
    """Scores guest reviews per rating component using keyword impact rules."""

    model_tier = "fast"

    @property
    def system_prompt(self) -> str:
        return """You analyse guest reviews for a local business directory.

Apply these keyword impact rules to EACH review:
- Critical negative (dirty, food poisoning, rude, worst, terrible, awful): -0.8 per occurrence
- Moderate negative (slow service, overpriced, disappointing, mediocre): -0.4 per occurrence
- Minor negative (average, nothing special, okay): -0.2 per occurrence
- Positive (excellent, amazing, highly recommend, outstanding, perfect): +0.3 per occurrence

Assign each keyword to one component:
- quality: the core offering (food, rooms, exhibits, classes, shops)
- service: staff, speed, attentiveness, friendliness
- ambience: atmosphere, decor, cleanliness, setting
- value: prices, portions, worth it
- accessibility: parking, wheelchair access, facilities, location

Sum modifiers per component across all reviews and cap each between -3.0 and +3.0.
Write a neutral summary. Never invent details that are not in the reviews."""

    @property
    def output_type(self) -> type[ReviewSentiment]:
        return ReviewSentiment

    def _build_prompt(self, input_data: ReviewSentimentInput) -> str:
        numbered = "\n\n".join(
            f"{index}. {text}" for index, text in enumerate(input_data.reviews, start=1)
        )
        return (
            f"Business: {input_data.entity_name} ({input_data.entity_type})\n\n"
            f"Reviews:\n{numbered}"
        )
