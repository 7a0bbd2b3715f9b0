"""
Search orchestration.

`SearchController` runs "determine position -> fetch results -> merge into the map
state" and owns what the screen shows around it: loading/error status, the filter
slider, and the camera target.

Phases: IDLE -> LOCATING -> FETCHING -> IDLE.
- `activate()` enters LOCATING, then FETCHING with the committed filter (0 by default).
- `apply_filter()` reuses the last known position and goes straight to FETCHING.
  It is debounced and last-writer-wins: a newer apply cancels the older fetch, and
  a superseded response is never applied.

Errors never escape into the event loop. They end up in `status.error_message`
and in the log.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum

from mealmap.config.settings import Settings
from mealmap.core.geo import GeoPoint
from mealmap.location.provider import LocationProvider, acquire_position
from mealmap.mapstate.markers import build_result_markers, build_self_overlay
from mealmap.mapstate.store import MapStateStore
from mealmap.search.fetcher import ResultFetcher

logger = logging.getLogger(__name__)


class SearchPhase(str, Enum):
    IDLE = "idle"
    LOCATING = "locating"
    FETCHING = "fetching"


@dataclass(frozen=True)
class SearchStatus:
    phase: SearchPhase = SearchPhase.IDLE
    error_message: str | None = None

    @property
    def is_loading(self) -> bool:
        return self.phase is not SearchPhase.IDLE


@dataclass(frozen=True)
class FilterState:
    """Slider value being dragged (`pending`) vs. value last sent to the service (`committed`)."""

    pending: float
    committed: float


@dataclass(frozen=True)
class CameraTarget:
    center: GeoPoint
    zoom: float


_KEEP = object()


class SearchController:
    def __init__(
        self,
        *,
        store: MapStateStore,
        provider: LocationProvider,
        fetcher: ResultFetcher,
        settings: Settings,
    ):
        self._store = store
        self._provider = provider
        self._fetcher = fetcher
        self._settings = settings

        self._status = SearchStatus()
        self._filter = FilterState(
            pending=settings.filter.initial_slider_value,
            committed=settings.filter.default_value,
        )
        self._position: GeoPoint | None = None
        self._camera: CameraTarget | None = None
        self._generation = 0
        self._closes = 0
        self._fetch_task: asyncio.Task[None] | None = None

    @property
    def status(self) -> SearchStatus:
        return self._status

    @property
    def filter_state(self) -> FilterState:
        return self._filter

    @property
    def position(self) -> GeoPoint | None:
        return self._position

    @property
    def camera(self) -> CameraTarget | None:
        return self._camera

    @property
    def filter_label(self) -> str:
        return self._settings.filter.label_template.format(value=self._filter.pending)

    async def activate(self) -> None:
        """Initial orchestration: locate once, show the SELF overlay, fetch with the committed filter."""
        if self._status.is_loading:
            logger.warning("Activation ignored: already %s", self._status.phase.value)
            return

        closes = self._closes
        self._set_status(SearchPhase.LOCATING)
        try:
            point = await acquire_position(self._provider)
        except asyncio.CancelledError:
            self._set_status(SearchPhase.IDLE)
            raise
        except Exception as exc:
            if closes != self._closes:
                return
            logger.error("Error in location/fetching orchestration: %s", exc)
            self._set_status(SearchPhase.IDLE, error_message=str(exc))
            return

        if closes != self._closes:
            logger.info("Activation dropped: controller closed while locating")
            return
        self._move_to(point)
        task = self._start_fetch(point, self._filter.committed, delay_seconds=0.0)
        await asyncio.wait({task})

    def on_slider_change(self, value: float) -> FilterState:
        """Track the slider while it is dragged; the committed value is untouched."""
        self._filter = replace(self._filter, pending=self._normalize(value))
        return self._filter

    def apply_filter(self, value: float | None = None) -> asyncio.Task[None] | None:
        """Commit `value` (default: the pending slider value) and schedule a fetch.

        Returns the scheduled task, or None when no position is known yet.
        """
        if self._position is None:
            logger.warning("Apply filter ignored: position unknown")
            return None

        committed = self._normalize(self._filter.pending if value is None else value)
        self._filter = replace(self._filter, committed=committed)
        logger.info("Applying filter %s=%s", self._settings.search.filter_param, committed)
        return self._start_fetch(
            self._position,
            committed,
            delay_seconds=self._settings.search.debounce_seconds,
        )

    async def recenter(self) -> CameraTarget | None:
        """Re-read the position and move the camera there.

        When no position was ever acquired, this re-runs the initial orchestration.
        """
        if self._position is None:
            if not self._status.is_loading:
                await self.activate()
            return self._camera

        closes = self._closes
        try:
            point = await acquire_position(self._provider)
        except Exception as exc:
            logger.warning("Recenter failed: %s", exc)
            if closes == self._closes:
                self._set_status(self._status.phase, error_message=str(exc))
            return None

        if closes != self._closes:
            return None
        self._move_to(point)
        return self._camera

    async def close(self) -> None:
        """Cancel any scheduled or in-flight fetch and return to IDLE.

        A locate still in progress is abandoned: when it resolves, nothing is
        written to the store and no fetch is started.
        """
        task, self._fetch_task = self._fetch_task, None
        self._generation += 1
        self._closes += 1
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})
        self._set_status(SearchPhase.IDLE)

    def _normalize(self, value: float) -> float:
        cfg = self._settings.filter
        value = min(max(float(value), cfg.min_value), cfg.max_value)
        if cfg.step > 0:
            steps = round((value - cfg.min_value) / cfg.step)
            value = min(cfg.min_value + steps * cfg.step, cfg.max_value)
        return value

    def _move_to(self, point: GeoPoint) -> None:
        self._position = point
        self._camera = CameraTarget(center=point, zoom=self._settings.camera.zoom)
        self._store.upsert_self(*build_self_overlay(point, self._settings.self_marker))

    def _start_fetch(self, point: GeoPoint, min_value: float, *, delay_seconds: float) -> asyncio.Task[None]:
        self._generation += 1
        previous = self._fetch_task
        if previous is not None and not previous.done():
            logger.info("Superseding in-flight fetch")
            previous.cancel()
        self._fetch_task = asyncio.create_task(
            self._run_fetch(self._generation, point, min_value, delay_seconds),
            name=f"search-fetch-{self._generation}",
        )
        return self._fetch_task

    async def _run_fetch(self, generation: int, point: GeoPoint, min_value: float, delay_seconds: float) -> None:
        try:
            if delay_seconds > 0:
                await asyncio.sleep(delay_seconds)
            self._set_status(SearchPhase.FETCHING)
            items = await self._fetcher.fetch(point, min_value=min_value)
        except asyncio.CancelledError:
            # Only the current generation owns the status; a superseded fetch leaves it to its successor.
            if generation == self._generation:
                self._set_status(SearchPhase.IDLE)
            raise
        except Exception as exc:
            if generation != self._generation:
                return
            logger.error("Error fetching results: %s", exc)
            self._set_status(SearchPhase.IDLE, error_message=self._settings.search.fetch_failed_message)
            return

        if generation != self._generation:
            logger.info("Discarding superseded fetch response (%d items)", len(items))
            return

        self._store.replace_results(build_result_markers(items))
        self._set_status(SearchPhase.IDLE, error_message=None)

    def _set_status(self, phase: SearchPhase, *, error_message: object = _KEEP) -> None:
        if phase is not self._status.phase:
            logger.debug("Search phase %s -> %s", self._status.phase.value, phase.value)
        if error_message is _KEEP:
            self._status = replace(self._status, phase=phase)
        else:
            self._status = replace(self._status, phase=phase, error_message=error_message)
