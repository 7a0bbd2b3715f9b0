"""
mealmap CLI entrypoint.

This CLI is intended for quick local demos and debugging without a map view.
It drives the same `MapScreen`/`PositionTracker` code the app uses, with an
in-process location provider in place of the device GPS.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any

from pydantic import ValidationError

from mealmap.config.settings import FilterSettings, Settings, get_settings
from mealmap.core.geo import GeoPoint
from mealmap.core.logging import configure_logging
from mealmap.location.replay import ReplayLocationProvider, StaticLocationProvider, load_track
from mealmap.location.tracker import PositionTracker
from mealmap.mapstate.markers import MapMarker
from mealmap.mapstate.store import MapSnapshot, MapStateStore
from mealmap.screen import MapScreen


def _marker_to_dict(marker: MapMarker) -> dict[str, Any]:
    return {
        "id": marker.id,
        "kind": marker.kind.value,
        "title": marker.title,
        "subtitle": marker.subtitle,
        "lat": marker.location.lat,
        "lng": marker.location.lng,
    }


async def _run_search(settings: Settings, point: GeoPoint) -> MapScreen:
    screen = MapScreen.from_settings(StaticLocationProvider(point), settings)
    try:
        await screen.controller.activate()
    finally:
        await screen.dispose()
    return screen


def _cmd_search(args: argparse.Namespace) -> int:
    """Handle the `search` subcommand."""
    settings = get_settings()
    if args.min_protein is not None:
        try:
            filter_settings = FilterSettings.model_validate(
                {**settings.filter.model_dump(), "default_value": float(args.min_protein)}
            )
        except ValidationError as exc:
            print(f"Invalid --min-protein: {exc.errors()[0]['msg']}")
            return 2
        settings = settings.model_copy(update={"filter": filter_settings})

    screen = asyncio.run(_run_search(settings, GeoPoint(lat=float(args.lat), lng=float(args.lng))))

    status = screen.status
    results = sorted(screen.snapshot().result_markers, key=lambda m: m.title)
    if args.json:
        payload = {
            "error": status.error_message,
            "filter": screen.filter_state.committed,
            "results": [_marker_to_dict(m) for m in results],
        }
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 1 if status.error_message else 0

    if status.error_message:
        print(f"Error: {status.error_message}")
        return 1

    print(f"{len(results)} result(s) near {GeoPoint(lat=float(args.lat), lng=float(args.lng))}:")
    for i, marker in enumerate(results, start=1):
        print(f"{i:>2}. {marker.title}  {marker.subtitle}  {marker.location}")
    return 0


async def _run_track(settings: Settings, provider: ReplayLocationProvider) -> int:
    store = MapStateStore()
    tracker = PositionTracker(
        provider,
        store,
        tracking=settings.tracking,
        self_marker=settings.self_marker,
    )

    def on_change(snapshot: MapSnapshot) -> None:
        me = snapshot.self_marker
        if me is not None:
            print(f"v{snapshot.version}: {me.title} at {me.location}")

    store.subscribe(on_change)
    session = await tracker.start()
    try:
        await session.wait()
    finally:
        await tracker.stop()
    return session.events_delivered


def _cmd_track(args: argparse.Namespace) -> int:
    """Handle the `track` subcommand."""
    settings = get_settings()
    if args.min_distance is not None:
        tracking = settings.tracking.model_copy(update={"min_distance_m": float(args.min_distance)})
        settings = settings.model_copy(update={"tracking": tracking})

    provider = ReplayLocationProvider(load_track(args.replay), interval_seconds=float(args.interval))
    delivered = asyncio.run(_run_track(settings, provider))
    print(f"{delivered} position update(s) delivered")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the mealmap CLI."""
    parser = argparse.ArgumentParser(prog="mealmap")
    parser.add_argument("--log-level", dest="log_level", default=None, help="Override app.log_level (e.g. DEBUG)")
    sub = parser.add_subparsers(dest="command", required=True)

    search = sub.add_parser("search", help="Query the search service once from a fixed position.")
    search.add_argument("--lat", required=True, type=float)
    search.add_argument("--lng", required=True, type=float)
    search.add_argument("--min-protein", dest="min_protein", type=float, default=None, help="Filter value (0..100)")
    search.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    search.set_defaults(func=_cmd_search)

    track = sub.add_parser("track", help="Replay a recorded track through the live position tracker.")
    track.add_argument("--replay", required=True, help="JSON file: array of {lat, lng} objects")
    track.add_argument("--min-distance", dest="min_distance", type=float, default=None, help="Meters between updates")
    track.add_argument("--interval", type=float, default=0.5, help="Seconds between replayed points")
    track.set_defaults(func=_cmd_track)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m mealmap.cli`."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(level=args.log_level)
    func: Any = getattr(args, "func")
    return int(func(args))


if __name__ == "__main__":
    raise SystemExit(main())
