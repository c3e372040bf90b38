"""Directory rating formula.

Pure function of the provider rating, review count, price level, suggested
features and review sentiment modifiers. Scores are on a 0-10 scale.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

DEFAULT_BASE_SCORE = 7.0

COMPONENT_WEIGHTS = {
    "quality": 0.35,
    "service": 0.25,
    "ambience": 0.20,
    "value": 0.15,
    "accessibility": 0.05,
}

# Share of the sentiment modifier applied to each component.
SENTIMENT_IMPACT = {
    "quality": 1.0,
    "service": 0.8,
    "ambience": 0.8,
    "value": 0.6,
    "accessibility": 0.3,
}

FEATURE_BOOSTS: dict[str, tuple[tuple[str, float], ...]] = {
    "service": (("reservation", 0.1), ("table service", 0.15), ("valet", 0.1)),
    "ambience": (("outdoor", 0.15), ("live music", 0.1), ("romantic", 0.1), ("sea view", 0.15)),
    "accessibility": (("wheelchair", 0.3), ("parking", 0.15), ("restroom", 0.1), ("wifi", 0.1)),
}

SCORE_LABELS = (
    (9.0, "Exceptional"),
    (8.0, "Excellent"),
    (7.0, "Very Good"),
    (6.0, "Good"),
    (5.0, "Average"),
)


@dataclass(frozen=True, slots=True)
class RatingResult:
    overall: float
    components: dict[str, float]
    label: str
    base_score: float
    review_count: int
    sentiment_analyzed: bool


def _clamp(score: float) -> float:
    return min(max(score, 0.0), 10.0)


def score_label(score: float) -> str:
    for threshold, label in SCORE_LABELS:
        if score >= threshold:
            return label
    return "Below Average"


def base_score(rating: float | None, review_count: int | None, scale: float = 5.0) -> float:
    """Normalize a provider rating to 0-10, falling back to the default base."""
    if not rating or not review_count:
        return DEFAULT_BASE_SCORE
    return _clamp(rating / scale * 10)


def calculate_rating(
    *,
    rating: float | None,
    review_count: int | None,
    price_level: int | None = None,
    features: Iterable[str] = (),
    sentiment: Mapping[str, float] | None = None,
) -> RatingResult:
    base = base_score(rating, review_count)
    lowered_features = [feature.lower() for feature in features]
    level = price_level or 2

    components: dict[str, float] = {}
    for component in COMPONENT_WEIGHTS:
        score = base
        for keyword, boost in FEATURE_BOOSTS.get(component, ()):
            if any(keyword in feature for feature in lowered_features):
                score += boost
        if component == "service" and level >= 3:
            score += 0.15
        if component == "value":
            if level == 1:
                score += 0.1
            elif level == 4:
                score -= 0.1
        if sentiment:
            score += float(sentiment.get(component, 0.0)) * SENTIMENT_IMPACT[component]
        components[component] = round(_clamp(score), 1)

    overall = sum(components[name] * weight for name, weight in COMPONENT_WEIGHTS.items())
    overall = round(_clamp(overall), 1)
    return RatingResult(
        overall=overall,
        components=components,
        label=score_label(overall),
        base_score=round(base, 2),
        review_count=int(review_count or 0),
        sentiment_analyzed=bool(sentiment),
    )
