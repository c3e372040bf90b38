"""Step builders shared across entity pipelines."""

from app.services.pipelines.definition import StepDefinition
from app.services.steps.enhancement import ListingEnhancementAdapter
from app.services.steps.images import ImageCollectionAdapter
from app.services.steps.place_details import PlaceDetailsAdapter
from app.services.steps.rating import RatingAdapter
from app.services.steps.reviews import ReviewsAdapter
from app.services.steps.sentiment import ReviewSentimentAdapter
from app.services.steps.social_media import SocialMediaSearchAdapter
from app.services.steps.website_scrape import WebsiteScrapeAdapter


def place_details_step() -> StepDefinition:
    return StepDefinition(name="place_details", adapter=PlaceDetailsAdapter(), fatal=True)


def website_scrape_step(*, fatal: bool = False, skip_if_missing: bool = True) -> StepDefinition:
    return StepDefinition(
        name="website_scrape",
        adapter=WebsiteScrapeAdapter(),
        fatal=fatal,
        requires=("website",),
        skip_if_missing=skip_if_missing,
    )


def social_media_step() -> StepDefinition:
    return StepDefinition(
        name="social_media_search",
        adapter=SocialMediaSearchAdapter(),
        fatal=False,
        requires=("name",),
    )


def reviews_step() -> StepDefinition:
    return StepDefinition(
        name="reviews",
        adapter=ReviewsAdapter(),
        fatal=False,
        requires=("place_id",),
        skip_if_missing=True,
    )


def images_step() -> StepDefinition:
    return StepDefinition(name="images", adapter=ImageCollectionAdapter(), fatal=False)


def review_sentiment_step() -> StepDefinition:
    return StepDefinition(
        name="review_sentiment",
        adapter=ReviewSentimentAdapter(),
        fatal=False,
        requires=("reviews",),
        skip_if_missing=True,
    )


def ai_enhancement_step() -> StepDefinition:
    return StepDefinition(
        name="ai_enhancement",
        adapter=ListingEnhancementAdapter(),
        fatal=True,
        requires=("name",),
    )


def rating_step(*, fatal: bool = True) -> StepDefinition:
    return StepDefinition(name="rating", adapter=RatingAdapter(), fatal=fatal)
