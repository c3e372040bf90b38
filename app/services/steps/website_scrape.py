"""Website scrape step: main content of the entity's own website."""

from __future__ import annotations

import logging
from collections.abc import Callable

from app.core.exceptions import PermanentInputError
from app.integrations.firecrawl import FirecrawlClient
from app.services.steps.base_step import StepAdapter, StepContext, StepResult

logger = logging.getLogger(__name__)

MAX_TEXT_CHARS = 20000
MAX_HTML_CHARS = 100000
_MENU_MARKERS = ("menu", "carte", "food")


def find_menu_link(links: list[str]) -> str | None:
    for link in links:
        lowered = link.lower()
        if any(marker in lowered for marker in _MENU_MARKERS) and not lowered.endswith(".jpg"):
            return link
    return None


class WebsiteScrapeAdapter(StepAdapter):
    def __init__(self, client_factory: Callable[[], FirecrawlClient] = FirecrawlClient) -> None:
        self._client_factory = client_factory

    async def execute(self, context: StepContext) -> StepResult:
        website = context.get("website")
        if not website:
            raise PermanentInputError("No website to scrape")
        if not website.startswith(("http://", "https://")):
            website = f"https://{website}"

        async with self._client_factory() as client:
            data = await client.scrape(website)

        links = [link for link in data.get("links") or [] if isinstance(link, str)]
        metadata = data.get("metadata") or {}
        fields = {
            "website_text": (data.get("markdown") or "")[:MAX_TEXT_CHARS],
            "website_links": links,
            "website_html_excerpt": (data.get("html") or "")[:MAX_HTML_CHARS],
            "firecrawl_output": {"url": website, "metadata": metadata},
        }
        menu_link = find_menu_link(links)
        if menu_link:
            fields["menu_link"] = menu_link

        logger.info(
            "Website scraped",
            extra={
                "entity_id": context.entity_id,
                "url": website,
                "text_chars": len(fields["website_text"]),
                "links": len(links),
            },
        )
        return StepResult(fields=fields, raw=data)
