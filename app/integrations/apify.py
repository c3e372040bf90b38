"""Apify actor client for Google Places details and reviews."""

import asyncio
import logging
from time import monotonic
from typing import Any

import httpx

from app.config import settings
from app.core.exceptions import APIKeyMissingError, ExternalAPIError
from app.integrations.http_errors import raise_for_provider_status, translate_transport_error

logger = logging.getLogger(__name__)

_TERMINAL_FAILURES = {"FAILED", "ABORTED", "TIMED-OUT"}


class ApifyClient:
    """Client for running Apify actors and reading their datasets.

    An actor run is started, polled until it reaches a terminal status, and
    its default dataset is returned as a list of items.
    """

    API_NAME = "Apify"

    def __init__(
        self,
        api_token: str | None = None,
        base_url: str | None = None,
        timeout: float = 30.0,
        run_timeout_seconds: float | None = None,
        poll_interval_seconds: float | None = None,
    ) -> None:
        self.api_token = api_token or settings.apify_api_token
        self.base_url = (base_url or settings.apify_base_url).rstrip("/")
        self.timeout = timeout
        self.run_timeout_seconds = run_timeout_seconds or settings.apify_run_timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds or settings.apify_poll_interval_seconds
        self._client: httpx.AsyncClient | None = None

        if not self.api_token:
            raise APIKeyMissingError(self.API_NAME)

    async def __aenter__(self) -> "ApifyClient":
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers={"Authorization": f"Bearer {self.api_token}"},
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

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise translate_transport_error(self.API_NAME, e) from e
        raise_for_provider_status(self.API_NAME, response)
        return response.json()

    async def run_actor(self, actor_id: str, run_input: dict[str, Any]) -> list[dict[str, Any]]:
        """Run an actor to completion and return its dataset items."""
        # The API addresses actors as "user~name".
        normalized_id = actor_id.replace("/", "~")
        logger.info("Starting Apify actor", extra={"actor_id": normalized_id})

        started = await self._request("POST", f"/acts/{normalized_id}/runs", json=run_input)
        run = started.get("data") or {}
        run_id = run.get("id")
        if not run_id:
            raise ExternalAPIError(self.API_NAME, "no run id returned")

        run = await self._wait_for_run(normalized_id, run_id)
        dataset_id = run.get("defaultDatasetId")
        if not dataset_id:
            return []

        items = await self._request(
            "GET",
            f"/datasets/{dataset_id}/items",
            params={"format": "json", "clean": "true"},
        )
        logger.info(
            "Apify dataset retrieved",
            extra={"actor_id": normalized_id, "run_id": run_id, "items": len(items or [])},
        )
        return list(items or [])

    async def _wait_for_run(self, actor_id: str, run_id: str) -> dict[str, Any]:
        deadline = monotonic() + self.run_timeout_seconds
        while monotonic() < deadline:
            payload = await self._request("GET", f"/acts/{actor_id}/runs/{run_id}")
            run = payload.get("data") or {}
            status = run.get("status")
            if status == "SUCCEEDED":
                return run
            if status in _TERMINAL_FAILURES:
                raise ExternalAPIError(self.API_NAME, f"actor run {str(status).lower()}")
            await asyncio.sleep(self.poll_interval_seconds)

        raise ExternalAPIError(self.API_NAME, "actor run timed out")

    async def search_places(
        self,
        query: str,
        *,
        max_places: int = 1,
        max_images: int | None = None,
        language: str = "en",
    ) -> list[dict[str, Any]]:
        """Search Google Places and return crawled place payloads."""
        run_input = {
            "searchStringsArray": [query],
            "maxCrawledPlaces": max_places,
            "language": language,
            "maxReviews": 0,
            "maxImages": max_images if max_images is not None else settings.apify_max_images,
        }
        return await self.run_actor(settings.apify_places_actor_id, run_input)

    async def fetch_place(self, place_id: str, *, language: str = "en") -> list[dict[str, Any]]:
        """Fetch one place by Google place id."""
        run_input = {
            "placeIds": [place_id],
            "maxCrawledPlaces": 1,
            "language": language,
            "maxReviews": 0,
            "maxImages": settings.apify_max_images,
        }
        return await self.run_actor(settings.apify_places_actor_id, run_input)

    async def fetch_reviews(
        self,
        place_id: str,
        *,
        max_reviews: int | None = None,
        language: str = "en",
    ) -> list[dict[str, Any]]:
        """Fetch the newest Google Maps reviews for a place."""
        run_input = {
            "placeIds": [place_id],
            "maxReviews": max_reviews if max_reviews is not None else settings.apify_max_reviews,
            "reviewsSort": "newest",
            "language": language,
        }
        return await self.run_actor(settings.apify_reviews_actor_id, run_input)
