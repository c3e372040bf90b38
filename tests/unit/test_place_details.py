"""Unit tests for the place details and reviews steps."""

from __future__ import annotations

from typing import Any

import pytest

from app.core.exceptions import APIKeyMissingError, ExternalAPIError, PermanentInputError
from app.integrations.apify import ApifyClient
from app.services.steps.base_step import StepContext
from app.services.steps.place_details import PlaceDetailsAdapter, map_place_payload
from app.services.steps.reviews import ReviewsAdapter, map_review

_PLACE = {
    "title": "Fisherman's Wharf",
    "address": "Cavelossim, Goa 403731",
    "neighborhood": "Cavelossim",
    "city": "Salcete",
    "location": {"lat": 15.17, "lng": 73.94},
    "phone": "+91 832 287 1077",
    "website": "https://thefishermanswharf.in/",
    "totalScore": 4.4,
    "reviewsCount": 18234,
    "price": "₹₹",
    "placeId": "ChIJwharf",
    "url": "https://maps.google.com/?cid=1",
    "imageUrls": ["https://lh3.googleusercontent.com/p/1"],
    "openingHours": [{"day": "Monday", "hours": "11:30 AM to 11:30 PM"}],
    "categories": ["Seafood restaurant", "Goan restaurant"],
    "description": "",
}


class _FakeApify:
    def __init__(self, *, places: list[dict[str, Any]] | None = None, reviews=None) -> None:
        self.places = places or []
        self.reviews = reviews or []
        self.calls: list[tuple[str, Any]] = []

    async def __aenter__(self) -> "_FakeApify":
        return self

    async def __aexit__(self, *args: Any) -> None:
        return None

    async def fetch_place(self, place_id: str) -> list[dict[str, Any]]:
        self.calls.append(("fetch_place", place_id))
        return self.places

    async def search_places(self, query: str, *, max_places: int = 1) -> list[dict[str, Any]]:
        self.calls.append(("search_places", query))
        return self.places

    async def fetch_reviews(self, place_id: str) -> list[dict[str, Any]]:
        self.calls.append(("fetch_reviews", place_id))
        return self.reviews


def _context(step_name: str, **snapshot: Any) -> StepContext:
    return StepContext(
        entity_id="rst_1",
        entity_type="restaurant",
        step_name=step_name,
        snapshot=snapshot,
    )


def test_map_place_payload() -> None:
    fields = map_place_payload(_PLACE)

    assert fields["name"] == "Fisherman's Wharf"
    assert fields["area"] == "Cavelossim"
    assert (fields["latitude"], fields["longitude"]) == (15.17, 73.94)
    assert fields["google_rating"] == 4.4
    assert fields["google_review_count"] == 18234
    assert fields["price_level"] == 2
    assert fields["place_id"] == "ChIJwharf"
    assert fields["google_categories"] == ["Seafood restaurant", "Goan restaurant"]
    assert fields["apify_output"] is _PLACE


def test_map_place_payload_drops_missing_values() -> None:
    fields = map_place_payload({"title": "Tiny Cafe", "city": "Panjim", "price": None, "imageUrls": []})

    assert fields == {
        "name": "Tiny Cafe",
        "area": "Panjim",
        "apify_output": {"title": "Tiny Cafe", "city": "Panjim", "price": None, "imageUrls": []},
    }


@pytest.mark.asyncio
async def test_place_details_fetches_by_place_id() -> None:
    fake = _FakeApify(places=[_PLACE])
    adapter = PlaceDetailsAdapter(client_factory=lambda: fake)

    result = await adapter.execute(_context("place_details", place_id="ChIJwharf", name="Wharf"))

    assert fake.calls == [("fetch_place", "ChIJwharf")]
    assert result.raw is _PLACE
    assert result.fields["website"] == "https://thefishermanswharf.in/"


@pytest.mark.asyncio
async def test_place_details_searches_by_name_and_area() -> None:
    fake = _FakeApify(places=[_PLACE])
    adapter = PlaceDetailsAdapter(client_factory=lambda: fake)

    await adapter.execute(_context("place_details", name="Fisherman's Wharf", area="Cavelossim"))

    assert fake.calls == [("search_places", "Fisherman's Wharf Cavelossim")]


@pytest.mark.asyncio
async def test_place_details_without_result_is_permanent() -> None:
    adapter = PlaceDetailsAdapter(client_factory=lambda: _FakeApify(places=[]))

    with pytest.raises(PermanentInputError) as exc_info:
        await adapter.execute(_context("place_details", place_id="ChIJgone"))

    assert exc_info.value.details["place_id"] == "ChIJgone"


@pytest.mark.asyncio
async def test_place_details_without_identity_is_permanent() -> None:
    adapter = PlaceDetailsAdapter(client_factory=lambda: _FakeApify())

    with pytest.raises(PermanentInputError):
        await adapter.execute(_context("place_details"))


def test_map_review() -> None:
    review = map_review(
        {
            "name": "Priya",
            "stars": 5,
            "text": "  Best prawn curry in South Goa.  ",
            "publishedAtDate": "2026-09-12T10:00:00Z",
            "likesCount": None,
        }
    )

    assert review == {
        "author": "Priya",
        "rating": 5,
        "text": "Best prawn curry in South Goa.",
        "published_at": "2026-09-12T10:00:00Z",
        "likes": 0,
    }


@pytest.mark.asyncio
async def test_reviews_adapter_skips_unrated_items() -> None:
    fake = _FakeApify(reviews=[{"name": "A", "stars": 4, "text": "Good"}, {"name": "B", "text": "??"}])
    adapter = ReviewsAdapter(client_factory=lambda: fake)

    result = await adapter.execute(_context("reviews", place_id="ChIJwharf"))

    assert result.fields["review_count_fetched"] == 1
    assert result.fields["reviews"][0]["author"] == "A"
    assert len(result.raw) == 2


@pytest.mark.asyncio
async def test_reviews_adapter_requires_place_id() -> None:
    adapter = ReviewsAdapter(client_factory=lambda: _FakeApify())

    with pytest.raises(PermanentInputError):
        await adapter.execute(_context("reviews"))


def test_apify_client_requires_token(monkeypatch: Any) -> None:
    monkeypatch.setattr("app.integrations.apify.settings.apify_api_token", None)

    with pytest.raises(APIKeyMissingError):
        ApifyClient()


@pytest.mark.asyncio
async def test_apify_run_actor_polls_until_success(monkeypatch: Any) -> None:
    client = ApifyClient(api_token="token", poll_interval_seconds=0.001)
    requests: list[tuple[str, str]] = []
    statuses = iter(["RUNNING", "SUCCEEDED"])

    async def _fake_request(method: str, path: str, **kwargs: Any) -> Any:
        requests.append((method, path))
        if method == "POST":
            return {"data": {"id": "run1"}}
        if path.startswith("/datasets/"):
            return [{"placeId": "ChIJwharf"}]
        return {"data": {"status": next(statuses), "defaultDatasetId": "ds1"}}

    monkeypatch.setattr(client, "_request", _fake_request)

    items = await client.run_actor("compass/crawler-google-places", {"placeIds": ["ChIJwharf"]})

    assert items == [{"placeId": "ChIJwharf"}]
    assert requests == [
        ("POST", "/acts/compass~crawler-google-places/runs"),
        ("GET", "/acts/compass~crawler-google-places/runs/run1"),
        ("GET", "/acts/compass~crawler-google-places/runs/run1"),
        ("GET", "/datasets/ds1/items"),
    ]


@pytest.mark.asyncio
async def test_apify_failed_run_is_provider_error(monkeypatch: Any) -> None:
    client = ApifyClient(api_token="token", poll_interval_seconds=0.001)

    async def _fake_request(method: str, path: str, **kwargs: Any) -> Any:
        if method == "POST":
            return {"data": {"id": "run1"}}
        return {"data": {"status": "FAILED"}}

    monkeypatch.setattr(client, "_request", _fake_request)

    with pytest.raises(ExternalAPIError) as exc_info:
        await client.run_actor("compass~google-maps-reviews-scraper", {})

    assert "actor run failed" in exc_info.value.message
