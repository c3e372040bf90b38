"""Social media step: profile discovery from website links, then web search."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlparse

from app.config import settings
from app.integrations.firecrawl import FirecrawlClient
from app.services.steps.base_step import StepAdapter, StepContext, StepResult

logger = logging.getLogger(__name__)

PLATFORMS = ("instagram", "facebook", "tiktok", "twitter", "youtube")
SEARCHED_PLATFORMS = ("instagram", "facebook", "tiktok")

_PLATFORM_DOMAINS = {
    "instagram": ("instagram.com",),
    "facebook": ("facebook.com",),
    "tiktok": ("tiktok.com",),
    "twitter": ("twitter.com", "x.com"),
    "youtube": ("youtube.com",),
}

# Matched against the URL path once the host is known to be the platform's.
_HANDLE_PATTERNS = {
    "instagram": re.compile(r"^/([^/?#&\s\"')]+)", re.IGNORECASE),
    "facebook": re.compile(r"^/([^/?#&\s\"')]+)", re.IGNORECASE),
    "tiktok": re.compile(r"^/@?([^/?#&\s\"')]+)", re.IGNORECASE),
    "twitter": re.compile(r"^/([^/?#&\s\"')]+)", re.IGNORECASE),
    "youtube": re.compile(r"^/(?:@|c/|channel/)([^/?#&\s\"')]+)", re.IGNORECASE),
}

# Paths that point at content rather than a profile.
_NON_PROFILE_PATHS = {
    "instagram": ("/p/", "/reel/", "/explore/", "/stories/"),
    "tiktok": ("/discover/", "/search/", "/tag/", "/video/"),
    "facebook": ("/sharer", "/share.php", "/events/", "/groups/"),
    "twitter": ("/intent/", "/share", "/hashtag/"),
}

_NAME_STOPWORDS = {"the", "a", "an", "hotel", "restaurant", "cafe", "mall", "school", "gym"}

_URL_PATTERN = re.compile(r"https?://[^\s)\"'<>]+")


def _platform_path(url: str, platform: str) -> str | None:
    """URL path when the host is one of the platform's domains, else None."""
    if "://" not in url:
        url = f"https://{url}"
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    domains = _PLATFORM_DOMAINS.get(platform, ())
    if not any(host == domain or host.endswith(f".{domain}") for domain in domains):
        return None
    return parsed.path or "/"


def extract_handle(url: str, platform: str) -> str | None:
    pattern = _HANDLE_PATTERNS.get(platform)
    path = _platform_path(url, platform)
    if pattern is None or path is None:
        return None
    match = pattern.search(path)
    return match.group(1) if match else None


def is_profile_url(url: str, platform: str) -> bool:
    path = _platform_path(url, platform)
    if path is None:
        return False
    lowered = path.lower()
    if any(marker in lowered for marker in _NON_PROFILE_PATHS.get(platform, ())):
        return False
    return extract_handle(url, platform) is not None


def matches_entity_name(url: str, entity_name: str) -> bool:
    """Require a meaningful word of the entity name to appear in the URL."""
    words = [
        word
        for word in re.split(r"\s+", entity_name.lower())
        if word and word not in _NAME_STOPWORDS and word not in {settings.default_area.lower()}
    ]
    if not words:
        return True
    lowered = url.lower()
    return any(len(word) >= 3 and word in lowered for word in words)


def extract_social_links(candidates: Iterable[str]) -> dict[str, dict[str, Any]]:
    """Pick the first profile URL per platform from links or free text."""
    found: dict[str, dict[str, Any]] = {}
    for candidate in candidates:
        urls = _URL_PATTERN.findall(candidate) if " " in candidate or "\n" in candidate else [candidate]
        for raw_url in urls:
            url = raw_url.rstrip(",;.!?")
            for platform in PLATFORMS:
                if platform in found or not is_profile_url(url, platform):
                    continue
                found[platform] = {
                    "url": url,
                    "handle": extract_handle(url, platform),
                    "source": "website",
                }
    return found


class SocialMediaSearchAdapter(StepAdapter):
    """Find social profiles.

    Links scraped from the entity's website are trusted first. Platforms still
    missing are searched on the web and accepted only when the URL carries a
    word of the entity name.
    """

    def __init__(self, client_factory: Callable[[], FirecrawlClient] = FirecrawlClient) -> None:
        self._client_factory = client_factory

    async def execute(self, context: StepContext) -> StepResult:
        name = context.get("name", "")
        area = context.get("area", settings.default_area)

        candidates = list(context.get("website_links", []))
        website_text = context.get("website_text")
        if website_text:
            candidates.append(website_text)
        found = extract_social_links(candidates)

        missing = [platform for platform in SEARCHED_PLATFORMS if platform not in found]
        if missing and name:
            async with self._client_factory() as client:
                for platform in missing:
                    result = await self._search_platform(client, name, area, platform)
                    if result:
                        found[platform] = result

        fields: dict[str, Any] = {platform: found[platform]["url"] for platform in found}
        fields["social_media_search"] = {
            "searched_at": datetime.now(timezone.utc).isoformat(),
            "query": name,
            "results": found,
        }
        logger.info(
            "Social media search finished",
            extra={"entity_id": context.entity_id, "platforms": sorted(found)},
        )
        return StepResult(fields=fields, raw=found)

    @staticmethod
    async def _search_platform(
        client: FirecrawlClient,
        name: str,
        area: str,
        platform: str,
    ) -> dict[str, Any] | None:
        results = await client.search(f'"{name}" {platform} {area}', limit=5)
        for item in results:
            url = str(item.get("url") or "").rstrip(",;.!?")
            if is_profile_url(url, platform) and matches_entity_name(url, name):
                return {
                    "url": url,
                    "handle": extract_handle(url, platform),
                    "source": "web_search",
                }
        return None
