"""
Live position tracking.

`PositionTracker` bridges the provider's (possibly endless) position stream into
SELF overlay updates on the `MapStateStore`.

Lifecycle rules:
- At most one `TrackingSession` is active. `start()` cancels the previous session
  before the new stream is opened. Overlapping `start()`/`stop()` calls run one
  after another, in call order.
- Cancellation is cooperative: a cancelled session never writes to the store again,
  even if its stream already produced the next position.
- Positions are forwarded in arrival order. Duplicates are forwarded too; the store
  treats an identical upsert as a no-op.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import AsyncIterator, Callable

from mealmap.config.settings import SelfMarkerSettings, TrackingSettings
from mealmap.core.geo import GeoPoint
from mealmap.location.provider import LocationProvider, Position, ensure_location_access
from mealmap.mapstate.markers import build_self_overlay
from mealmap.mapstate.store import MapStateStore

logger = logging.getLogger(__name__)

_session_ids = itertools.count(1)


class TrackingSession:
    """One subscription to the position stream, from start to cancellation."""

    def __init__(self, stream: AsyncIterator[Position], on_position: Callable[[GeoPoint], None]):
        self.id = next(_session_ids)
        self.events_delivered = 0
        self._stream = stream
        self._on_position = on_position
        self._cancelled = False
        self._task = asyncio.create_task(self._run(), name=f"tracking-session-{self.id}")

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._task.done()

    async def _run(self) -> None:
        try:
            async for position in self._stream:
                if self._cancelled:
                    break
                self._on_position(position.point)
                self.events_delivered += 1
        except Exception:
            logger.exception("Position stream for session %d failed", self.id)
        finally:
            logger.debug("Tracking session %d ended after %d events", self.id, self.events_delivered)

    async def cancel(self) -> None:
        """Stop delivering events and wait for the stream task to wind down."""
        if self._cancelled:
            return
        self._cancelled = True
        self._task.cancel()
        await asyncio.wait({self._task})
        aclose = getattr(self._stream, "aclose", None)
        if aclose is not None:
            await aclose()

    async def wait(self) -> None:
        """Wait until the stream is exhausted (or the session is cancelled)."""
        await asyncio.wait({self._task})


class PositionTracker:
    """Keeps the SELF marker/circle in the store in sync with the live position."""

    def __init__(
        self,
        provider: LocationProvider,
        store: MapStateStore,
        *,
        tracking: TrackingSettings,
        self_marker: SelfMarkerSettings,
    ):
        self._provider = provider
        self._store = store
        self._tracking = tracking
        self._self_marker = self_marker
        self._session: TrackingSession | None = None
        # Serializes start/stop so the session swap is never interleaved.
        self._lock = asyncio.Lock()

    @property
    def active_session(self) -> TrackingSession | None:
        return self._session

    @property
    def is_tracking(self) -> bool:
        return self._session is not None and not self._session.done

    async def start(self, config: TrackingSettings | None = None) -> TrackingSession:
        """Begin a new session, replacing the current one.

        Raises:
            LocationError: Access was refused or the location service is off.
                The current session, if any, keeps running.
        """
        config = config or self._tracking
        async with self._lock:
            await ensure_location_access(self._provider)
            await self._cancel_current()

            stream = self._provider.get_position_stream(
                accuracy=config.accuracy, min_distance_m=config.min_distance_m
            )
            session = TrackingSession(stream, self._on_position)
            self._session = session
        logger.info(
            "Tracking session %d started (accuracy=%s, min_distance_m=%s)",
            session.id,
            config.accuracy,
            config.min_distance_m,
        )
        return session

    async def stop(self) -> None:
        """Cancel the current session. A `start()` in progress finishes first."""
        async with self._lock:
            await self._cancel_current()

    async def _cancel_current(self) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        await session.cancel()
        logger.info("Tracking session %d stopped", session.id)

    def _on_position(self, point: GeoPoint) -> None:
        marker, circle = build_self_overlay(point, self._self_marker)
        self._store.upsert_self(marker, circle)
