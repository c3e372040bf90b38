"""Firecrawl client for website scraping and web search."""

import logging
from typing import Any

import httpx

from app.config import settings
from app.core.exceptions import APIKeyMissingError, ExternalAPIError, PermanentInputError
from app.integrations.http_errors import raise_for_provider_status, translate_transport_error

logger = logging.getLogger(__name__)


class FirecrawlClient:
    """Client for the Firecrawl scrape and search endpoints."""

    API_NAME = "Firecrawl"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.api_key = api_key or settings.firecrawl_api_key
        self.base_url = (base_url or settings.firecrawl_base_url).rstrip("/")
        self.timeout = timeout or settings.firecrawl_timeout_seconds
        self._client: httpx.AsyncClient | None = None

        if not self.api_key:
            raise APIKeyMissingError(self.API_NAME)

    async def __aenter__(self) -> "FirecrawlClient":
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Client must be used as async context manager")
        return self._client

    async def _post(self, endpoint: str, body: dict[str, Any]) -> dict[str, Any]:
        logger.info("Firecrawl API request", extra={"endpoint": endpoint})
        try:
            response = await self.client.post(f"{self.base_url}/{endpoint}", json=body)
        except httpx.HTTPError as e:
            raise translate_transport_error(self.API_NAME, e) from e
        raise_for_provider_status(self.API_NAME, response)
        return response.json()

    async def scrape(
        self,
        url: str,
        *,
        formats: list[str] | None = None,
        only_main_content: bool = True,
        wait_for_ms: int = 2000,
    ) -> dict[str, Any]:
        """Scrape a page and return Firecrawl's ``data`` object.

        Returns:
            Dict with markdown, html, metadata and links (when requested).
        """
        result = await self._post(
            "scrape",
            {
                "url": url,
                "formats": formats or ["markdown", "html", "links"],
                "onlyMainContent": only_main_content,
                "waitFor": wait_for_ms,
            },
        )
        if not result.get("success"):
            error = result.get("error") or "scrape unsuccessful"
            raise ExternalAPIError(self.API_NAME, str(error))

        data = result.get("data") or {}
        if not data.get("markdown") and not data.get("html"):
            raise PermanentInputError(
                "Firecrawl returned no content for page",
                details={"url": url},
            )
        return data

    async def search(self, query: str, *, limit: int = 5) -> list[dict[str, Any]]:
        """Run a web search, returning result dicts with url, title and description."""
        result = await self._post("search", {"query": query, "limit": limit})
        return list(result.get("data") or [])
