"""Place details step: Google Places data via the Apify places crawler."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from app.core.exceptions import PermanentInputError
from app.integrations.apify import ApifyClient
from app.services.steps.base_step import StepAdapter, StepContext, StepResult

logger = logging.getLogger(__name__)


def _price_level(raw_price: Any) -> int | None:
    """Convert "$$"-style price strings to a 1-4 level."""
    if isinstance(raw_price, int):
        return raw_price
    if isinstance(raw_price, str):
        symbols = sum(1 for char in raw_price if char in "$€£₹")
        if symbols:
            return min(symbols, 4)
    return None


def map_place_payload(place: dict[str, Any]) -> dict[str, Any]:
    """Map one crawler item to entity fields, dropping absent values."""
    location = place.get("location") or {}
    fields = {
        "name": place.get("title"),
        "address": place.get("address"),
        "area": place.get("neighborhood") or place.get("city"),
        "latitude": location.get("lat"),
        "longitude": location.get("lng"),
        "phone": place.get("phone") or place.get("phoneUnformatted"),
        "website": place.get("website"),
        "google_rating": place.get("totalScore"),
        "google_review_count": place.get("reviewsCount"),
        "price_level": _price_level(place.get("price")),
        "place_id": place.get("placeId"),
        "google_maps_url": place.get("url"),
        "photo_urls": list(place.get("imageUrls") or []),
        "opening_hours": list(place.get("openingHours") or []),
        "google_categories": list(place.get("categories") or []),
    }
    mapped = {key: value for key, value in fields.items() if value not in (None, "", [])}
    mapped["apify_output"] = place
    return mapped


class PlaceDetailsAdapter(StepAdapter):
    """Fetch the place by id, or search by name and area when no id is known."""

    def __init__(self, client_factory: Callable[[], ApifyClient] = ApifyClient) -> None:
        self._client_factory = client_factory

    async def execute(self, context: StepContext) -> StepResult:
        place_id = context.get("place_id")
        name = context.get("name")
        area = context.get("area", "")

        async with self._client_factory() as client:
            if place_id:
                items = await client.fetch_place(place_id)
            elif name:
                items = await client.search_places(f"{name} {area}".strip(), max_places=1)
            else:
                raise PermanentInputError("Entity has neither a place id nor a name")

        if not items:
            raise PermanentInputError(
                "Places provider returned no result",
                details={"place_id": place_id, "name": name},
            )

        place = items[0]
        logger.info(
            "Place details fetched",
            extra={
                "entity_id": context.entity_id,
                "place_id": place.get("placeId"),
                "title": place.get("title"),
            },
        )
        return StepResult(fields=map_place_payload(place), raw=place)
