"""
Map state store.

The single owner of what the map shows. Two writers feed it independently:
- the position tracker (and the one-shot locate) via `upsert_self`,
- the search controller via `replace_results`.

They touch disjoint parts of the state, so their updates can interleave freely.
Every mutation is one synchronous read-modify-write step on the event loop thread;
readers only ever get immutable `MapSnapshot`s.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable

from mealmap.mapstate.markers import (
    SELF_CIRCLE_ID,
    SELF_MARKER_ID,
    MapCircle,
    MapMarker,
    MarkerKind,
)

logger = logging.getLogger(__name__)

SnapshotListener = Callable[["MapSnapshot"], None]


@dataclass(frozen=True)
class MapSnapshot:
    """Immutable view of the reconciled marker and circle sets."""

    markers: frozenset[MapMarker]
    circles: frozenset[MapCircle]
    version: int = field(default=0, compare=False)

    @property
    def self_marker(self) -> MapMarker | None:
        for marker in self.markers:
            if marker.kind is MarkerKind.SELF:
                return marker
        return None

    @property
    def result_markers(self) -> frozenset[MapMarker]:
        return frozenset(m for m in self.markers if m.kind is MarkerKind.RESULT)

    def marker(self, marker_id: str, *, kind: MarkerKind | None = None) -> MapMarker | None:
        for m in self.markers:
            if m.id == marker_id and (kind is None or m.kind is kind):
                return m
        return None


class MapStateStore:
    """Owns the canonical SELF overlay and RESULT marker set."""

    def __init__(self) -> None:
        self._self_marker: MapMarker | None = None
        self._self_circle: MapCircle | None = None
        self._results: dict[str, MapMarker] = {}
        self._version = 0
        self._snapshot = MapSnapshot(markers=frozenset(), circles=frozenset())
        self._listeners: list[SnapshotListener] = []

    @property
    def version(self) -> int:
        return self._version

    def snapshot(self) -> MapSnapshot:
        return self._snapshot

    def upsert_self(self, marker: MapMarker, circle: MapCircle) -> MapSnapshot:
        """Replace the SELF marker and circle; RESULT markers are left alone."""
        if marker.kind is not MarkerKind.SELF or marker.id != SELF_MARKER_ID:
            raise ValueError(f"upsert_self expects the '{SELF_MARKER_ID}' SELF marker, got {marker.id!r}")
        if circle.id != SELF_CIRCLE_ID:
            raise ValueError(f"upsert_self expects the '{SELF_CIRCLE_ID}' circle, got {circle.id!r}")

        if marker == self._self_marker and circle == self._self_circle:
            return self._snapshot

        self._self_marker = marker
        self._self_circle = circle
        return self._commit()

    def replace_results(self, markers: Iterable[MapMarker]) -> MapSnapshot:
        """Replace the whole RESULT subset; the SELF overlay is left alone.

        Duplicate ids resolve to the last marker in iteration order. The SELF id is
        reserved, so a RESULT marker using it is rejected.
        """
        results: dict[str, MapMarker] = {}
        for marker in markers:
            if marker.kind is not MarkerKind.RESULT:
                raise ValueError(f"replace_results only accepts RESULT markers, got {marker.kind.value} {marker.id!r}")
            if marker.id == SELF_MARKER_ID:
                raise ValueError(f"RESULT marker id {marker.id!r} is reserved for the SELF marker")
            results[marker.id] = marker

        if results == self._results:
            return self._snapshot

        self._results = results
        return self._commit()

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register `listener` for snapshots after each effective change; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self) -> MapSnapshot:
        markers: set[MapMarker] = set(self._results.values())
        if self._self_marker is not None:
            markers.add(self._self_marker)
        circles = {self._self_circle} if self._self_circle is not None else set()

        self._version += 1
        self._snapshot = MapSnapshot(
            markers=frozenset(markers),
            circles=frozenset(circles),
            version=self._version,
        )
        logger.debug(
            "Map state v%d: %d result markers, self=%s",
            self._version,
            len(self._results),
            self._self_marker.location if self._self_marker else None,
        )

        for listener in list(self._listeners):
            try:
                listener(self._snapshot)
            except Exception:
                logger.exception("Map state listener failed")
        return self._snapshot
