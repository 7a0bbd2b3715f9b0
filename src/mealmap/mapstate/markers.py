"""
Map overlay types and builders.

The rendering widget is outside this package; it receives these plain, frozen
records and decides how to draw them. Everything here is hashable so snapshots can
be `frozenset`s and compared by value.

Two layers exist:
- SELF: the user's own position (marker `"me"` + circle `"me_radius"`).
- RESULT: one marker per search hit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from mealmap.config.settings import SelfMarkerSettings
from mealmap.core.geo import GeoPoint
from mealmap.domain.models import SearchResultItem

logger = logging.getLogger(__name__)

SELF_MARKER_ID = "me"
SELF_CIRCLE_ID = "me_radius"

DEFAULT_ANCHOR: tuple[float, float] = (0.5, 1.0)


class MarkerKind(str, Enum):
    SELF = "self"
    RESULT = "result"


@dataclass(frozen=True)
class IconRef:
    """Describes an icon for the renderer to draw (the bitmap itself is not built here)."""

    name: str
    size_px: float
    fill_color: str
    ring_color: str


@dataclass(frozen=True)
class MapMarker:
    id: str
    kind: MarkerKind
    location: GeoPoint
    z_order: int = 0
    title: str = ""
    subtitle: str = ""
    icon: IconRef | None = None
    anchor: tuple[float, float] = DEFAULT_ANCHOR


@dataclass(frozen=True)
class CircleStyle:
    stroke_width: int
    stroke_color: str
    fill_color: str
    z_order: int


@dataclass(frozen=True)
class MapCircle:
    id: str
    center: GeoPoint
    radius_m: float
    style: CircleStyle


def build_self_marker(point: GeoPoint, style: SelfMarkerSettings) -> MapMarker:
    """Blue-dot marker for the user's position, drawn above every result marker."""
    icon = style.icon
    return MapMarker(
        id=SELF_MARKER_ID,
        kind=MarkerKind.SELF,
        location=point,
        z_order=style.z_order,
        title=style.title,
        icon=IconRef(
            name=icon.name,
            size_px=icon.size_px,
            fill_color=icon.fill_color,
            ring_color=icon.ring_color,
        ),
        anchor=tuple(icon.anchor),
    )


def build_self_circle(point: GeoPoint, style: SelfMarkerSettings) -> MapCircle:
    circle = style.circle
    return MapCircle(
        id=SELF_CIRCLE_ID,
        center=point,
        radius_m=float(style.radius_m),
        style=CircleStyle(
            stroke_width=circle.stroke_width,
            stroke_color=circle.stroke_color,
            fill_color=circle.fill_color,
            z_order=circle.z_order,
        ),
    )


def build_self_overlay(point: GeoPoint, style: SelfMarkerSettings) -> tuple[MapMarker, MapCircle]:
    """Return the SELF marker and its highlight circle for `point`."""
    return build_self_marker(point, style), build_self_circle(point, style)


def build_result_marker(item: SearchResultItem) -> MapMarker:
    return MapMarker(
        id=item.id,
        kind=MarkerKind.RESULT,
        location=item.point,
        title=item.label,
        subtitle=item.detail,
    )


def build_result_markers(items: Iterable[SearchResultItem]) -> list[MapMarker]:
    """Build RESULT markers keyed by item label.

    Items sharing a label collapse into one marker; the last one in input order wins.
    An item labelled like the SELF marker is dropped, since marker ids are unique.
    """
    by_id: dict[str, MapMarker] = {}
    for item in items:
        if item.id == SELF_MARKER_ID:
            logger.warning("Dropping result %r: label collides with the SELF marker id", item.label)
            continue
        marker = build_result_marker(item)
        by_id.pop(marker.id, None)
        by_id[marker.id] = marker
    return list(by_id.values())
