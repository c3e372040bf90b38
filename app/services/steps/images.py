"""Image collection step: candidate image URLs from place photos and the website."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from app.core.exceptions import PermanentInputError
from app.services.steps.base_step import StepAdapter, StepContext, StepResult

logger = logging.getLogger(__name__)

MAX_IMAGES = 20

EXCLUDED_DOMAINS = (
    "instagram.com",
    "lookaside.instagram.com",
    "facebook.com",
    "fbsbx.com",
    "tiktok.com",
    "encrypted-tbn0.gstatic.com",
)
_SKIPPED_EXTENSIONS = (".svg", ".gif", ".ico")
_SKIPPED_MARKERS = ("logo", "icon", "sprite", "favicon", "placeholder", "avatar")


def is_usable_image_url(url: str) -> bool:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return False
    host = parsed.netloc.lower()
    if any(host == domain or host.endswith(f".{domain}") for domain in EXCLUDED_DOMAINS):
        return False
    path = parsed.path.lower()
    if path.endswith(_SKIPPED_EXTENSIONS):
        return False
    return not any(marker in path for marker in _SKIPPED_MARKERS)


def extract_website_images(html: str, base_url: str | None) -> list[str]:
    """Return og:image first, then <img> sources, resolved to absolute URLs."""
    if not html:
        return []
    soup = BeautifulSoup(html, "lxml")
    found: list[str] = []

    for attrs in ({"property": "og:image"}, {"name": "twitter:image"}):
        meta = soup.find("meta", attrs=attrs)
        content = meta.get("content") if meta else None
        if isinstance(content, str) and content:
            found.append(content)

    for img in soup.find_all("img"):
        src = img.get("src") or img.get("data-src")
        if isinstance(src, str) and src and not src.startswith("data:"):
            found.append(src)

    if base_url:
        found = [urljoin(base_url, src) for src in found]
    return found


class ImageCollectionAdapter(StepAdapter):
    """Collect and filter image URLs; storage and resizing happen elsewhere."""

    async def execute(self, context: StepContext) -> StepResult:
        photo_urls = list(context.get("photo_urls", []))
        website_images = extract_website_images(
            context.get("website_html_excerpt", ""),
            context.get("website"),
        )

        images: list[dict[str, Any]] = []
        seen: set[str] = set()
        for source, urls in (("google_places", photo_urls), ("official_website", website_images)):
            for url in urls:
                if len(images) >= MAX_IMAGES:
                    break
                if url in seen or not is_usable_image_url(url):
                    continue
                seen.add(url)
                images.append({"url": url, "source": source})

        if not images:
            raise PermanentInputError("No usable images found")

        logger.info(
            "Images collected",
            extra={"entity_id": context.entity_id, "images": len(images)},
        )
        return StepResult(
            fields={"images": images, "hero_image": images[0]["url"]},
            raw={"candidates": len(photo_urls) + len(website_images)},
        )
