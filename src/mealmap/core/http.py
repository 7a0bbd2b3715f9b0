"""
HTTP helpers.

This module centralizes the minimal HTTP client logic used by the search fetcher.

Design goals:
- Small surface area (build a client, GET JSON).
- Deterministic defaults (timeout + User-Agent).
- Translate httpx failures into our own error types so callers never see httpx.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from mealmap.core.errors import FetchFailed, MalformedResponse

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "mealmap/0.1.0 (+https://local)"


def build_async_client(
    *,
    timeout_seconds: float | None = 15,
    headers: dict[str, str] | None = None,
) -> httpx.AsyncClient:
    """Create an `httpx.AsyncClient` with our default headers.

    `timeout_seconds=None` disables the timeout entirely.
    """
    request_headers = {"User-Agent": DEFAULT_USER_AGENT}
    if headers:
        request_headers.update(headers)
    return httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds), headers=request_headers)


async def get_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    expected_status: int = 200,
) -> Any:
    """GET `url` and return the decoded JSON response.

    Raises:
        FetchFailed: On transport errors, timeouts or a status other than `expected_status`.
        MalformedResponse: If the response body is not valid JSON.
    """
    try:
        resp = await client.get(url, params=params)
    except httpx.TimeoutException as exc:
        raise FetchFailed(f"Request to {url} timed out") from exc
    except httpx.HTTPError as exc:
        raise FetchFailed(f"Request to {url} failed: {exc}") from exc

    logger.info("API Response Status Code: %s", resp.status_code)
    logger.debug("API Response Body: %s", resp.text)

    if resp.status_code != expected_status:
        raise FetchFailed(
            f"Unexpected status {resp.status_code} from {resp.request.url}",
            status_code=resp.status_code,
        )

    try:
        return resp.json()
    except ValueError as exc:
        raise MalformedResponse(f"Response from {resp.request.url} is not valid JSON") from exc
