"""
Location provider contract (platform collaborator).

The permission dialog, the OS location service and the GPS stream all live outside
this package. Anything that offers the methods of `LocationProvider` can be plugged
in: a platform bridge in the app, `StaticLocationProvider`/`ReplayLocationProvider`
for the CLI, or fakes in tests.

`acquire_position()` and `ensure_location_access()` implement the permission flow
shared by the one-shot locate and the tracker.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Protocol

from mealmap.core.errors import LocationServiceDisabled, PermissionDenied, PermissionDeniedForever
from mealmap.core.geo import GeoPoint

logger = logging.getLogger(__name__)


class LocationPermission(str, Enum):
    GRANTED = "granted"
    WHILE_IN_USE = "while_in_use"
    DENIED = "denied"
    DENIED_FOREVER = "denied_forever"

    @property
    def allows_access(self) -> bool:
        return self in (LocationPermission.GRANTED, LocationPermission.WHILE_IN_USE)


@dataclass(frozen=True)
class Position:
    """One fix reported by the platform."""

    lat: float
    lng: float
    accuracy_m: float | None = None
    timestamp: datetime | None = None

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(lat=self.lat, lng=self.lng)


class LocationProvider(Protocol):
    async def check_permission(self) -> LocationPermission: ...

    async def request_permission(self) -> LocationPermission: ...

    async def is_location_service_enabled(self) -> bool: ...

    async def get_current_position(self) -> Position: ...

    def get_position_stream(self, *, accuracy: str, min_distance_m: float) -> AsyncIterator[Position]:
        """Return positions in arrival order, each at least `min_distance_m` from the previous one."""
        ...


async def ensure_location_access(provider: LocationProvider) -> LocationPermission:
    """Make sure we may read the position, prompting the user at most once.

    Raises:
        LocationServiceDisabled: The OS location service is off.
        PermissionDenied: The user declined the prompt.
        PermissionDeniedForever: The user blocked access; no prompt is shown.
    """
    if not await provider.is_location_service_enabled():
        raise LocationServiceDisabled()

    permission = await provider.check_permission()
    if permission is LocationPermission.DENIED:
        logger.info("Location permission denied, requesting it")
        permission = await provider.request_permission()
        if permission is LocationPermission.DENIED:
            raise PermissionDenied()

    if permission is LocationPermission.DENIED_FOREVER:
        raise PermissionDeniedForever()
    return permission


async def acquire_position(provider: LocationProvider) -> GeoPoint:
    """One-shot position read behind the permission gate."""
    await ensure_location_access(provider)
    position = await provider.get_current_position()
    logger.info("Current position %s", position.point)
    return position.point
