"""
In-process location providers.

No GPS is available on a desktop, so the CLI (and anyone scripting the app) uses:
- `StaticLocationProvider`: always at one point, permission already granted.
- `ReplayLocationProvider`: replays a recorded track, applying the same
  minimum-displacement filter a platform stream applies.

Tracks are JSON arrays of `{"lat": .., "lng": ..}` objects.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import AsyncIterator

from pydantic import TypeAdapter

from mealmap.core.env import resolve_project_path
from mealmap.core.geo import GeoPoint, haversine_m
from mealmap.domain.models import Coordinates
from mealmap.location.provider import LocationPermission, Position

_TRACK_ADAPTER = TypeAdapter(list[Coordinates])


def load_track(path: str | Path) -> list[GeoPoint]:
    """Load and validate a recorded track file."""
    p = Path(path).expanduser()
    if not p.exists():
        p = resolve_project_path(path)
    payload = json.loads(p.read_text(encoding="utf-8"))
    return [c.to_point() for c in _TRACK_ADAPTER.validate_python(payload)]


def filter_by_displacement(points: list[GeoPoint], min_distance_m: float) -> list[GeoPoint]:
    """Keep points at least `min_distance_m` away from the previously kept one."""
    kept: list[GeoPoint] = []
    for point in points:
        if kept and haversine_m(kept[-1], point) < min_distance_m:
            continue
        kept.append(point)
    return kept


class StaticLocationProvider:
    """Provider pinned to a single coordinate."""

    def __init__(self, point: GeoPoint, *, permission: LocationPermission = LocationPermission.GRANTED):
        self._point = point
        self._permission = permission

    async def check_permission(self) -> LocationPermission:
        return self._permission

    async def request_permission(self) -> LocationPermission:
        return self._permission

    async def is_location_service_enabled(self) -> bool:
        return True

    async def get_current_position(self) -> Position:
        return Position(lat=self._point.lat, lng=self._point.lng)

    async def get_position_stream(self, *, accuracy: str, min_distance_m: float) -> AsyncIterator[Position]:
        yield await self.get_current_position()


class ReplayLocationProvider:
    """Provider that walks through a recorded track at a fixed interval."""

    def __init__(self, track: list[GeoPoint], *, interval_seconds: float = 1.0):
        if not track:
            raise ValueError("track must contain at least one point")
        self._track = list(track)
        self._interval_seconds = float(interval_seconds)

    async def check_permission(self) -> LocationPermission:
        return LocationPermission.GRANTED

    async def request_permission(self) -> LocationPermission:
        return LocationPermission.GRANTED

    async def is_location_service_enabled(self) -> bool:
        return True

    async def get_current_position(self) -> Position:
        first = self._track[0]
        return Position(lat=first.lat, lng=first.lng)

    async def get_position_stream(self, *, accuracy: str, min_distance_m: float) -> AsyncIterator[Position]:
        for i, point in enumerate(filter_by_displacement(self._track, min_distance_m)):
            if i and self._interval_seconds > 0:
                await asyncio.sleep(self._interval_seconds)
            yield Position(lat=point.lat, lng=point.lng)
