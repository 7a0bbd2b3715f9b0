import asyncio

import pytest

from mealmap.core.errors import FetchFailed, MalformedResponse
from mealmap.core.geo import GeoPoint
from mealmap.location.provider import LocationPermission, Position
from mealmap.mapstate.markers import MarkerKind
from mealmap.mapstate.store import MapStateStore
from mealmap.search.controller import SearchController, SearchPhase

from conftest import HOME, FakeFetcher, FakeLocationProvider, result_item, settle

FETCH_FAILED = "Failed to fetch data. Please check your connection."


def _controller(settings, provider, fetcher, store=None) -> SearchController:
    return SearchController(
        store=store or MapStateStore(),
        provider=provider,
        fetcher=fetcher,
        settings=settings,
    )


@pytest.mark.asyncio
async def test_activate_locates_then_fetches_with_default_filter(settings, provider):
    store = MapStateStore()
    fetcher = FakeFetcher([[result_item("Cafe", 1.0, 2.0)]])
    controller = _controller(settings, provider, fetcher, store)

    await controller.activate()

    assert fetcher.calls == [(HOME.point, 0.0)]
    snap = store.snapshot()
    cafe = snap.marker("Cafe", kind=MarkerKind.RESULT)
    assert cafe is not None and cafe.location == GeoPoint(lat=1.0, lng=2.0)
    assert cafe.title == "Cafe" and cafe.subtitle == "1 Main St"
    assert snap.self_marker.location == HOME.point
    assert controller.status.phase is SearchPhase.IDLE
    assert not controller.status.is_loading
    assert controller.status.error_message is None
    assert controller.camera.center == HOME.point
    assert controller.camera.zoom == 17


@pytest.mark.asyncio
async def test_permission_denied_then_granted_proceeds_to_fetch(settings):
    provider = FakeLocationProvider(
        permission=LocationPermission.DENIED, request_result=LocationPermission.WHILE_IN_USE
    )
    fetcher = FakeFetcher([[result_item("Cafe", 1.0, 2.0)]])
    controller = _controller(settings, provider, fetcher)

    await controller.activate()

    assert provider.calls.count("request_permission") == 1
    assert len(fetcher.calls) == 1
    assert controller.status.error_message is None


@pytest.mark.asyncio
async def test_service_disabled_ends_idle_with_error_and_untouched_store(settings):
    provider = FakeLocationProvider(service_enabled=False)
    store = MapStateStore()
    fetcher = FakeFetcher()
    controller = _controller(settings, provider, fetcher, store)

    await controller.activate()

    assert controller.status.phase is SearchPhase.IDLE
    assert controller.status.error_message == "Location services are disabled."
    assert fetcher.calls == []
    assert store.version == 0
    assert controller.camera is None


@pytest.mark.asyncio
async def test_denied_forever_reports_terminal_message_without_prompt(settings):
    provider = FakeLocationProvider(permission=LocationPermission.DENIED_FOREVER)
    controller = _controller(settings, provider, FakeFetcher())

    await controller.activate()

    assert "permanently denied" in controller.status.error_message
    assert "request_permission" not in provider.calls


@pytest.mark.asyncio
async def test_platform_error_while_locating_is_reported(settings):
    provider = FakeLocationProvider(position_error=RuntimeError("no fix"))
    controller = _controller(settings, provider, FakeFetcher())

    await controller.activate()

    assert controller.status.error_message == "no fix"
    assert not controller.status.is_loading


@pytest.mark.asyncio
async def test_failed_refetch_keeps_previous_results_and_sets_generic_message(settings, provider):
    store = MapStateStore()
    fetcher = FakeFetcher(
        [
            [result_item("Cafe", 1.0, 2.0)],
            FetchFailed("Unexpected status 404", status_code=404),
        ]
    )
    controller = _controller(settings, provider, fetcher, store)
    await controller.activate()
    before = store.snapshot()

    await controller.apply_filter(40)

    assert controller.status.error_message == FETCH_FAILED
    assert not controller.status.is_loading
    assert store.snapshot() == before
    assert controller.filter_state.committed == 40


@pytest.mark.asyncio
async def test_malformed_response_uses_generic_message(settings, provider):
    fetcher = FakeFetcher([MalformedResponse("bad shape")])
    controller = _controller(settings, provider, fetcher)

    await controller.activate()

    assert controller.status.error_message == FETCH_FAILED
    # The locate succeeded, so the map is still shown.
    assert controller.camera is not None


@pytest.mark.asyncio
async def test_success_after_failure_clears_error(settings, provider):
    fetcher = FakeFetcher([FetchFailed("down"), [result_item("Cafe", 1.0, 2.0)]])
    controller = _controller(settings, provider, fetcher)
    await controller.activate()
    assert controller.status.error_message == FETCH_FAILED

    await controller.apply_filter()

    assert controller.status.error_message is None


@pytest.mark.asyncio
async def test_same_label_items_collapse_last_wins(settings, provider):
    store = MapStateStore()
    fetcher = FakeFetcher([[result_item("A", 1.0, 1.0), result_item("A", 2.0, 2.0)]])
    controller = _controller(settings, provider, fetcher, store)

    await controller.activate()

    (marker,) = store.snapshot().result_markers
    assert marker.location == GeoPoint(lat=2.0, lng=2.0)


@pytest.mark.asyncio
async def test_new_apply_supersedes_in_flight_fetch(settings, provider):
    loop = asyncio.get_running_loop()
    store = MapStateStore()
    slow = loop.create_future()
    fast = loop.create_future()
    fetcher = FakeFetcher([[], slow, fast])
    controller = _controller(settings, provider, fetcher, store)
    await controller.activate()

    first = controller.apply_filter(30)
    await settle()
    assert controller.status.phase is SearchPhase.FETCHING

    second = controller.apply_filter(60)
    fast.set_result([result_item("Fresh", 3.0, 3.0)])
    await second

    assert first.cancelled()
    assert {m.id for m in store.snapshot().result_markers} == {"Fresh"}
    assert [call[1] for call in fetcher.calls] == [0.0, 30.0, 60.0]
    assert not controller.status.is_loading


class StubbornFetcher(FakeFetcher):
    """Finishes its request even when the caller cancels it."""

    async def fetch(self, point, *, min_value=0.0):
        try:
            return await super().fetch(point, min_value=min_value)
        except asyncio.CancelledError:
            return [result_item("Stale", 1.0, 1.0)]


@pytest.mark.asyncio
async def test_superseded_response_is_discarded_even_if_it_completes(settings, provider):
    store = MapStateStore()
    gate = asyncio.get_running_loop().create_future()
    fetcher = StubbornFetcher([[], gate, [result_item("Fresh", 2.0, 2.0)]])
    controller = _controller(settings, provider, fetcher, store)
    await controller.activate()

    first = controller.apply_filter(10)
    await settle()
    second = controller.apply_filter(20)
    await second
    await settle()

    assert first.done() and not first.cancelled()
    assert {m.id for m in store.snapshot().result_markers} == {"Fresh"}
    assert not controller.status.is_loading


@pytest.mark.asyncio
async def test_apply_is_debounced(settings, provider):
    search = settings.search.model_copy(update={"debounce_seconds": 0.05})
    settings = settings.model_copy(update={"search": search})
    fetcher = FakeFetcher([[]])
    controller = _controller(settings, provider, fetcher)
    await controller.activate()

    tasks = [controller.apply_filter(v) for v in (10, 20, 30)]
    await tasks[-1]

    assert all(t.cancelled() for t in tasks[:-1])
    assert [call[1] for call in fetcher.calls] == [0.0, 30.0]


@pytest.mark.asyncio
async def test_slider_drag_changes_pending_only(settings, provider):
    controller = _controller(settings, provider, FakeFetcher())

    assert controller.filter_state.pending == 20
    assert controller.filter_state.committed == 0

    controller.on_slider_change(42)
    assert controller.filter_state.pending == 40
    assert controller.filter_state.committed == 0
    assert controller.filter_label == "At least 40g of protein"

    controller.on_slider_change(250)
    assert controller.filter_state.pending == 100
    controller.on_slider_change(-3)
    assert controller.filter_state.pending == 0


@pytest.mark.asyncio
async def test_apply_without_known_position_is_ignored(settings, provider):
    fetcher = FakeFetcher()
    controller = _controller(settings, provider, fetcher)

    assert controller.apply_filter(50) is None
    assert controller.filter_state.committed == 0
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_apply_commits_pending_value_by_default(settings, provider):
    fetcher = FakeFetcher([[]])
    controller = _controller(settings, provider, fetcher)
    await controller.activate()

    controller.on_slider_change(65)
    await controller.apply_filter()

    assert controller.filter_state.committed == 65
    assert fetcher.calls[-1][1] == 65


@pytest.mark.asyncio
async def test_loading_spans_locating_and_fetching(settings, provider):
    gate = asyncio.get_running_loop().create_future()
    controller = _controller(settings, provider, FakeFetcher([gate]))

    activation = asyncio.create_task(controller.activate())
    await settle()
    assert controller.status.phase is SearchPhase.FETCHING
    assert controller.status.is_loading

    gate.set_result([])
    await activation
    assert not controller.status.is_loading


@pytest.mark.asyncio
async def test_close_cancels_in_flight_fetch_and_clears_loading(settings, provider):
    gate = asyncio.get_running_loop().create_future()
    fetcher = FakeFetcher([[], gate])
    controller = _controller(settings, provider, fetcher)
    await controller.activate()

    task = controller.apply_filter(50)
    await settle()
    await controller.close()

    assert task.cancelled()
    assert controller.status.phase is SearchPhase.IDLE


@pytest.mark.asyncio
async def test_recenter_moves_camera_and_self_marker(settings):
    moved = Position(lat=35.7, lng=139.8)
    provider = FakeLocationProvider(positions=[HOME, moved])
    store = MapStateStore()
    fetcher = FakeFetcher([[result_item("Cafe", 1.0, 2.0)]])
    controller = _controller(settings, provider, fetcher, store)
    await controller.activate()

    camera = await controller.recenter()

    assert camera.center == moved.point
    assert controller.position == moved.point
    assert store.snapshot().self_marker.location == moved.point
    assert store.snapshot().marker("Cafe") is not None
    assert len(fetcher.calls) == 1


@pytest.mark.asyncio
async def test_recenter_after_failed_activation_retries_orchestration(settings):
    provider = FakeLocationProvider(service_enabled=False)
    fetcher = FakeFetcher([[result_item("Cafe", 1.0, 2.0)]])
    controller = _controller(settings, provider, fetcher)
    await controller.activate()
    assert controller.camera is None

    provider.service_enabled = True
    camera = await controller.recenter()

    assert camera is not None
    assert len(fetcher.calls) == 1
    assert controller.status.error_message is None


@pytest.mark.asyncio
async def test_recenter_failure_sets_error_but_keeps_map(settings, provider):
    store = MapStateStore()
    controller = _controller(settings, provider, FakeFetcher([[]]), store)
    await controller.activate()
    before = store.snapshot()

    provider.permission = LocationPermission.DENIED_FOREVER
    assert await controller.recenter() is None

    assert "permanently denied" in controller.status.error_message
    assert controller.camera is not None
    assert store.snapshot() == before


@pytest.mark.asyncio
async def test_close_during_locate_drops_the_activation(settings, provider):
    store = MapStateStore()
    fetcher = FakeFetcher([[result_item("Cafe", 1.0, 2.0)]])
    controller = _controller(settings, provider, fetcher, store)
    gate = asyncio.get_running_loop().create_future()
    provider.gates["get_current_position"] = gate

    activation = asyncio.create_task(controller.activate())
    await settle()
    assert controller.status.phase is SearchPhase.LOCATING

    await controller.close()
    gate.set_result(None)
    await activation

    assert fetcher.calls == []
    assert store.version == 0
    assert controller.camera is None
    assert controller.status.phase is SearchPhase.IDLE
    assert controller.status.error_message is None
