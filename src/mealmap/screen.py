"""
Map screen wiring.

`MapScreen` is what a view layer binds to. It owns one `MapStateStore` and connects
the live tracker and the search controller to it. The view reads `snapshot()`,
`status`, `filter_state` and `camera`, and forwards user input to the `on_*`
actions.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from mealmap.config.settings import Settings, get_settings
from mealmap.core.errors import LocationError
from mealmap.location.provider import LocationProvider
from mealmap.location.tracker import PositionTracker
from mealmap.mapstate.store import MapSnapshot, MapStateStore
from mealmap.search.controller import CameraTarget, FilterState, SearchController, SearchStatus
from mealmap.search.fetcher import ResultFetcher

logger = logging.getLogger(__name__)


class MapScreen:
    def __init__(
        self,
        *,
        settings: Settings,
        provider: LocationProvider,
        fetcher: ResultFetcher | None = None,
        store: MapStateStore | None = None,
    ):
        self._settings = settings
        self._store = store or MapStateStore()
        self._fetcher = fetcher or ResultFetcher(settings.search)
        self._tracker = PositionTracker(
            provider,
            self._store,
            tracking=settings.tracking,
            self_marker=settings.self_marker,
        )
        self._controller = SearchController(
            store=self._store,
            provider=provider,
            fetcher=self._fetcher,
            settings=settings,
        )
        self._disposed = False

    @classmethod
    def from_settings(cls, provider: LocationProvider, settings: Settings | None = None) -> "MapScreen":
        return cls(settings=settings or get_settings(), provider=provider)

    @property
    def store(self) -> MapStateStore:
        return self._store

    @property
    def tracker(self) -> PositionTracker:
        return self._tracker

    @property
    def controller(self) -> SearchController:
        return self._controller

    @property
    def status(self) -> SearchStatus:
        return self._controller.status

    @property
    def filter_state(self) -> FilterState:
        return self._controller.filter_state

    @property
    def camera(self) -> CameraTarget | None:
        return self._controller.camera

    @property
    def is_map_ready(self) -> bool:
        # No camera target means the initial locate failed; the view shows the error alone.
        return self._controller.camera is not None

    def snapshot(self) -> MapSnapshot:
        return self._store.snapshot()

    def subscribe(self, listener: Callable[[MapSnapshot], None]) -> Callable[[], None]:
        return self._store.subscribe(listener)

    async def activate(self) -> None:
        """Run the initial locate+fetch and start live tracking side by side."""
        await asyncio.gather(self._controller.activate(), self._start_tracking())

    async def _start_tracking(self) -> None:
        if self._disposed:
            return
        try:
            await self._tracker.start()
        except LocationError as exc:
            logger.warning("Live tracking not started: %s", exc)
            return
        except Exception:
            logger.exception("Live tracking failed to start")
            return
        if self._disposed:
            await self._tracker.stop()

    def on_slider_change(self, value: float) -> FilterState:
        return self._controller.on_slider_change(value)

    def on_apply_filter(self, value: float | None = None) -> asyncio.Task[None] | None:
        return self._controller.apply_filter(value)

    async def on_recenter(self) -> CameraTarget | None:
        return await self._controller.recenter()

    async def dispose(self) -> None:
        """Stop tracking, abandon any search in progress and release the fetcher."""
        self._disposed = True
        await self._tracker.stop()
        await self._controller.close()
        await self._fetcher.aclose()
