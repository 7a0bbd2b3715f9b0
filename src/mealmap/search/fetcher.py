"""
Search service client.

Performs the remote query for one position + filter value and parses the body
into `SearchResultItem`s. It does not touch map state; see
`mealmap.search.controller` for that.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from mealmap.config.settings import SearchSettings
from mealmap.core.errors import MalformedResponse
from mealmap.core.geo import GeoPoint
from mealmap.core.http import build_async_client, get_json
from mealmap.domain.models import SearchResultItem, parse_search_results

logger = logging.getLogger(__name__)


class ResultFetcher:
    """Queries the search endpoint with `lat`, `lng` and the filter value."""

    def __init__(self, settings: SearchSettings, *, client: httpx.AsyncClient | None = None):
        self._settings = settings
        self._owns_client = client is None
        self._client = client or build_async_client(timeout_seconds=settings.timeout_seconds)

    async def __aenter__(self) -> "ResultFetcher":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def build_params(self, point: GeoPoint, min_value: float) -> dict[str, float]:
        return {
            "lat": float(point.lat),
            "lng": float(point.lng),
            self._settings.filter_param: float(min_value),
        }

    async def fetch(self, point: GeoPoint, *, min_value: float = 0.0) -> list[SearchResultItem]:
        """Fetch results around `point` with at least `min_value`.

        Raises:
            FetchFailed: Non-200 status, transport error or timeout.
            MalformedResponse: Body is not JSON or not an array of valid items.
        """
        url = self._settings.endpoint
        params = self.build_params(point, min_value)
        logger.info("Fetching from URL: %s", httpx.URL(url, params=params))

        payload = await get_json(self._client, url, params=params)

        try:
            items = parse_search_results(payload)
        except ValidationError as exc:
            raise MalformedResponse(f"Unexpected response shape: {exc.error_count()} error(s)") from exc

        logger.info("Successfully parsed %d items.", len(items))
        return items
