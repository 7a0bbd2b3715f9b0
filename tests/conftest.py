from __future__ import annotations

import asyncio

import pytest

from mealmap.config.settings import Settings, get_settings
from mealmap.core.geo import GeoPoint
from mealmap.domain.models import SearchResultItem
from mealmap.location.provider import LocationPermission, Position

HOME = Position(lat=35.6812, lng=139.7671)


def result_item(name: str, lat: float, lng: float, address: str = "1 Main St") -> SearchResultItem:
    return SearchResultItem.model_validate(
        {"name": name, "address": address, "location": {"lat": lat, "lng": lng}}
    )


async def settle(rounds: int = 10) -> None:
    """Let every ready task on the loop run a few steps."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def _drain(queue: asyncio.Queue):
    while True:
        item = await queue.get()
        if item is None:
            return
        if isinstance(item, Exception):
            raise item
        yield item


class FakeLocationProvider:
    """Scriptable stand-in for the platform location API."""

    def __init__(
        self,
        *,
        permission: LocationPermission = LocationPermission.GRANTED,
        request_result: LocationPermission = LocationPermission.GRANTED,
        service_enabled: bool = True,
        positions: list[Position] | None = None,
        position_error: Exception | None = None,
    ):
        self.permission = permission
        self.request_result = request_result
        self.service_enabled = service_enabled
        self.positions = list(positions or [HOME])
        self.position_error = position_error
        self.calls: list[str] = []
        self.streams: list[asyncio.Queue] = []
        self.stream_args: list[tuple[str, float]] = []
        # Method name -> future the call waits on before answering.
        self.gates: dict[str, asyncio.Future] = {}

    async def _pass_gate(self, name: str) -> None:
        self.calls.append(name)
        gate = self.gates.get(name)
        if gate is not None:
            await gate

    async def check_permission(self) -> LocationPermission:
        await self._pass_gate("check_permission")
        return self.permission

    async def request_permission(self) -> LocationPermission:
        await self._pass_gate("request_permission")
        self.permission = self.request_result
        return self.permission

    async def is_location_service_enabled(self) -> bool:
        await self._pass_gate("is_location_service_enabled")
        return self.service_enabled

    async def get_current_position(self) -> Position:
        await self._pass_gate("get_current_position")
        if self.position_error is not None:
            raise self.position_error
        if len(self.positions) > 1:
            return self.positions.pop(0)
        return self.positions[0]

    def get_position_stream(self, *, accuracy: str, min_distance_m: float):
        self.calls.append("get_position_stream")
        queue: asyncio.Queue = asyncio.Queue()
        self.streams.append(queue)
        self.stream_args.append((accuracy, min_distance_m))
        return _drain(queue)


class FakeFetcher:
    """Returns scripted responses; an Exception is raised, a Future is awaited first."""

    def __init__(self, responses: list | None = None):
        self.responses = list(responses or [])
        self.calls: list[tuple[GeoPoint, float]] = []
        self.closed = False

    async def fetch(self, point: GeoPoint, *, min_value: float = 0.0) -> list[SearchResultItem]:
        self.calls.append((point, min_value))
        if not self.responses:
            return []
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, asyncio.Future):
            response = await response
        if isinstance(response, BaseException):
            raise response
        return response

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def settings() -> Settings:
    base = get_settings()
    search = base.search.model_copy(
        update={"endpoint": "https://search.test/meals", "debounce_seconds": 0.0}
    )
    return base.model_copy(update={"search": search})


@pytest.fixture
def provider() -> FakeLocationProvider:
    return FakeLocationProvider()
