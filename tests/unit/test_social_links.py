"""Unit tests for social profile discovery."""

from __future__ import annotations

from typing import Any

import pytest

from app.services.steps.base_step import StepContext
from app.services.steps.social_media import (
    SocialMediaSearchAdapter,
    extract_handle,
    extract_social_links,
    is_profile_url,
    matches_entity_name,
)


class _FakeFirecrawl:
    def __init__(self, results: dict[str, list[dict[str, Any]]]) -> None:
        self._results = results
        self.queries: list[str] = []

    async def __aenter__(self) -> "_FakeFirecrawl":
        return self

    async def __aexit__(self, *args: Any) -> None:
        return None

    async def search(self, query: str, *, limit: int = 5) -> list[dict[str, Any]]:
        self.queries.append(query)
        for platform, items in self._results.items():
            if platform in query:
                return items
        return []


def _context(**snapshot: Any) -> StepContext:
    return StepContext(
        entity_id="rst_1",
        entity_type="restaurant",
        step_name="social_media_search",
        snapshot=snapshot,
    )


def test_extract_handle() -> None:
    assert extract_handle("https://www.instagram.com/thefishermanswharf/", "instagram") == "thefishermanswharf"
    assert extract_handle("https://www.tiktok.com/@gunpowdergoa", "tiktok") == "gunpowdergoa"
    assert extract_handle("https://x.com/taj_hotels", "twitter") == "taj_hotels"
    assert extract_handle("https://example.com", "instagram") is None


@pytest.mark.parametrize(
    ("url", "platform", "expected"),
    [
        ("https://instagram.com/gunpowdergoa", "instagram", True),
        ("https://instagram.com/p/C1xYz", "instagram", False),
        ("https://www.facebook.com/sharer/sharer.php?u=x", "facebook", False),
        ("https://www.facebook.com/MallDeGoa", "facebook", True),
        ("https://www.tiktok.com/video/123", "tiktok", False),
        ("https://www.facebook.com/MallDeGoa", "instagram", False),
        ("https://x.com/gunpowdergoa", "twitter", True),
        ("https://mobile.twitter.com/gunpowdergoa", "twitter", True),
        ("https://www.fedex.com/en-in", "twitter", False),
        ("https://www.netflix.com/browse", "twitter", False),
        ("https://box.com/shared", "twitter", False),
        ("https://notinstagram.com/gunpowdergoa", "instagram", False),
        ("https://example.com/redirect/instagram.com/gunpowdergoa", "instagram", False),
        ("https://www.tiktok.com/@gunpowdergoa/video/123", "tiktok", False),
    ],
)
def test_is_profile_url(url: str, platform: str, expected: bool) -> None:
    assert is_profile_url(url, platform) is expected


def test_matches_entity_name_ignores_stopwords_and_area() -> None:
    assert matches_entity_name("https://instagram.com/gunpowder.goa", "Gunpowder Goa")
    assert not matches_entity_name("https://instagram.com/goa_eats", "The Gunpowder Restaurant Goa")
    assert matches_entity_name("https://instagram.com/anything", "The Hotel")


def test_extract_social_links_from_links_and_text() -> None:
    found = extract_social_links(
        [
            "https://instagram.com/p/C1xYz",
            "https://www.instagram.com/gunpowdergoa/",
            "Follow us at https://facebook.com/GunpowderGoa, or call.",
        ]
    )

    assert found["instagram"] == {
        "url": "https://www.instagram.com/gunpowdergoa/",
        "handle": "gunpowdergoa",
        "source": "website",
    }
    assert found["facebook"]["url"] == "https://facebook.com/GunpowderGoa"
    assert "tiktok" not in found


@pytest.mark.asyncio
async def test_adapter_prefers_website_links_then_searches_missing() -> None:
    fake = _FakeFirecrawl(
        {
            "facebook": [
                {"url": "https://www.facebook.com/someone_else"},
                {"url": "https://www.facebook.com/GunpowderAssagao"},
            ],
            "tiktok": [{"url": "https://www.tiktok.com/@goa_food_random"}],
        }
    )
    adapter = SocialMediaSearchAdapter(client_factory=lambda: fake)

    result = await adapter.execute(
        _context(
            name="Gunpowder",
            area="Assagao",
            website_links=["https://instagram.com/gunpowdergoa"],
        )
    )

    assert result.fields["instagram"] == "https://instagram.com/gunpowdergoa"
    assert result.fields["facebook"] == "https://www.facebook.com/GunpowderAssagao"
    assert "tiktok" not in result.fields
    assert result.fields["social_media_search"]["results"]["facebook"]["source"] == "web_search"
    assert fake.queries == ['"Gunpowder" facebook Assagao', '"Gunpowder" tiktok Assagao']


@pytest.mark.asyncio
async def test_adapter_skips_search_when_all_platforms_found() -> None:
    def _factory() -> _FakeFirecrawl:
        raise AssertionError("search should not run")

    adapter = SocialMediaSearchAdapter(client_factory=_factory)

    result = await adapter.execute(
        _context(
            name="Thalassa",
            website_links=[
                "https://instagram.com/thalassagoa",
                "https://facebook.com/thalassagoa",
                "https://tiktok.com/@thalassagoa",
            ],
        )
    )

    assert set(result.raw) == {"instagram", "facebook", "tiktok"}


def test_extract_social_links_ignores_lookalike_hosts() -> None:
    found = extract_social_links(
        [
            "https://www.fedex.com/en-in/home",
            "https://www.netflix.com/title/8123",
            "https://twitter.com/intent/tweet?text=hi",
            "https://twitter.com/GunpowderGoa",
        ]
    )

    assert found == {
        "twitter": {
            "url": "https://twitter.com/GunpowderGoa",
            "handle": "GunpowderGoa",
            "source": "website",
        }
    }
