from __future__ import annotations

import asyncio
import dataclasses
import json

import httpx
import pytest

from routemap.common.config_loader import GeocoderSettings, default_settings
from routemap.common.models import GeoPoint, NamedGeometry, Provenance
from routemap.geocode.synthetic import synthesize
from routemap.pipeline.factory import build_services
from routemap.pipeline.processor import PipelineState, RoutePipeline

ANCHORS = {
    "Osu": GeoPoint(5.556, -0.182),
    "Airport": GeoPoint(5.605, -0.167),
    "Madina": GeoPoint(5.668, -0.166),
}


class RecordingRenderer:
    def __init__(self):
        self.processed = []
        self.progress: list[float] = []
        self.errors: list[str] = []
        self.drivers = []

    def on_routes_processed(self, routes):
        self.processed.append(list(routes))

    def on_progress(self, fraction):
        self.progress.append(fraction)

    def on_error(self, message):
        self.errors.append(message)

    def on_driver_locations_changed(self, drivers):
        self.drivers = list(drivers)


class StraightLineRouter:
    async def route_between(self, start, end):
        return [start, end]


class FakeGeocoder:
    def __init__(
        self,
        failing_streets=(),
        location_error: Exception | None = None,
        slow: dict | None = None,
        failing_locations=(),
        street_delay: float = 0.0,
        extra_locations: dict | None = None,
    ):
        self.settings = GeocoderSettings(request_delay_seconds=0.0)
        self.failing_streets = set(failing_streets)
        self.location_error = location_error
        self.slow = slow or {}
        self.failing_locations = set(failing_locations)
        self.street_delay = street_delay
        self.locations = {**ANCHORS, **(extra_locations or {})}
        self.location_calls: list[str] = []
        self.street_calls: list[str] = []
        self.gate = asyncio.Event()

    async def resolve_location(self, query):
        self.location_calls.append(query)
        if self.location_error is not None:
            raise self.location_error
        if query in self.failing_locations:
            raise RuntimeError(f"anchor lookup exploded for {query}")
        if query in self.slow:
            await asyncio.sleep(self.slow[query])
        if query == "Blocked":
            await self.gate.wait()
        return self.locations.get(query)

    async def resolve_street(self, name, context=None, *, index=0, total=1, start_anchor=None, end_anchor=None):
        self.street_calls.append(name)
        if self.street_delay:
            await asyncio.sleep(self.street_delay)
        if name in self.failing_streets:
            raise RuntimeError(f"lookup exploded for {name}")
        base = start_anchor or GeoPoint(5.6, -0.19)
        points = (base.offset(0.001 * (index + 1), 0), base.offset(0.001 * (index + 1), 0.001))
        return NamedGeometry(name, points, Provenance.GEOCODED)


def _pipeline(geocoder, renderer) -> RoutePipeline:
    return RoutePipeline(geocoder, StraightLineRouter(), renderer, request_delay_seconds=0.0)


@pytest.mark.integration
def test_pipeline_isolates_single_street_failure():
    renderer = RecordingRenderer()
    pipeline = _pipeline(FakeGeocoder(failing_streets={"Oxford St"}), renderer)
    routes = [{"start": "Osu", "end": "Airport", "path": "Ring Road → Oxford St → Liberation Rd"}]

    result = asyncio.run(pipeline.run(routes))

    assert pipeline.state is PipelineState.DONE
    assert pipeline.loading is False
    geometries = result[0].geometries
    assert [g.name for g in geometries] == ["Ring Road", "Oxford St", "Liberation Rd"]
    assert [g.provenance for g in geometries] == [Provenance.GEOCODED, Provenance.SYNTHETIC, Provenance.GEOCODED]
    assert geometries[1] == synthesize("Oxford St", 1, ANCHORS["Osu"], ANCHORS["Airport"], total=3)
    assert renderer.processed == [result]
    assert renderer.errors == []


@pytest.mark.integration
def test_pipeline_progress_is_monotonic_and_completes():
    renderer = RecordingRenderer()
    pipeline = _pipeline(FakeGeocoder(), renderer)
    routes = [
        {"start": "Osu", "end": "Airport", "path": "Ring Road → Oxford St"},
        {"start": "Madina", "end": "Airport", "path": "Liberation Rd"},
    ]

    asyncio.run(pipeline.run(routes))

    assert renderer.progress[0] == 0.0
    assert renderer.progress[-1] == 1.0
    assert renderer.progress == sorted(renderer.progress)
    assert pipeline.progress == 1.0


@pytest.mark.integration
def test_pipeline_preserves_input_order():
    renderer = RecordingRenderer()
    pipeline = _pipeline(FakeGeocoder(slow={"Osu": 0.05}), renderer)
    routes = [
        {"start": "Osu", "end": "Airport", "path": "Ring Road"},
        {"start": "Madina", "end": "Airport", "path": "Liberation Rd"},
    ]

    result = asyncio.run(pipeline.run(routes))

    assert [r.route.start for r in result] == ["Osu", "Madina"]
    assert result[0].start_point == ANCHORS["Osu"]


@pytest.mark.integration
def test_pipeline_unresolved_anchors_use_default_positions():
    renderer = RecordingRenderer()
    pipeline = _pipeline(FakeGeocoder(), renderer)

    result = asyncio.run(pipeline.run([{"start": "Nowhere", "end": "Elsewhere", "path": ""}]))

    route = result[0]
    assert route.start_point == GeoPoint(5.6037, -0.1870)
    assert route.end_point == GeoPoint(5.6037 + 0.005, -0.1870 + 0.005)
    assert [s.name for s in route.segments] == ["Direct Route"]


@pytest.mark.integration
def test_pipeline_whole_run_failure_reports_error():
    renderer = RecordingRenderer()
    pipeline = _pipeline(FakeGeocoder(location_error=RuntimeError("boom")), renderer)

    result = asyncio.run(pipeline.run([{"start": "Osu", "end": "Airport", "path": "Ring Road"}]))

    assert result == []
    assert pipeline.state is PipelineState.FAILED
    assert pipeline.loading is False
    assert pipeline.error == "Failed to process routes: boom"
    assert renderer.errors == ["Failed to process routes: boom"]
    assert renderer.processed == []
    assert renderer.progress[-1] == 1.0


@pytest.mark.integration
def test_pipeline_empty_route_list_emits_empty_result():
    renderer = RecordingRenderer()
    pipeline = _pipeline(FakeGeocoder(), renderer)

    assert asyncio.run(pipeline.run([])) == []
    assert renderer.processed == [[]]
    assert renderer.progress[-1] == 1.0
    assert pipeline.state is PipelineState.DONE


@pytest.mark.integration
def test_pipeline_restart_cancels_previous_run():
    renderer = RecordingRenderer()
    geocoder = FakeGeocoder()
    pipeline = _pipeline(geocoder, renderer)

    async def scenario():
        first = pipeline.submit([{"start": "Blocked", "end": "Airport", "path": "Ring Road"}])
        await asyncio.sleep(0.01)
        second = pipeline.submit([{"start": "Madina", "end": "Airport", "path": "Liberation Rd"}])
        result = await second
        with pytest.raises(asyncio.CancelledError):
            await first
        return result

    result = asyncio.run(scenario())

    assert [r.route.start for r in result] == ["Madina"]
    assert renderer.processed == [result]
    assert pipeline.state is PipelineState.DONE
    assert pipeline.loading is False


@pytest.mark.integration
def test_build_services_runs_against_mock_providers(tmp_path):
    seen_paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_paths.append(request.url.path)
        if "/route/v1/" in request.url.path:
            coords = [[-0.182, 5.556], [-0.18, 5.58], [-0.167, 5.605]]
            return httpx.Response(200, json={"routes": [{"geometry": {"coordinates": coords}}]})
        line = {"type": "LineString", "coordinates": [[-0.18, 5.57], [-0.175, 5.58]]}
        return httpx.Response(200, json=[{"lat": "5.57", "lon": "-0.18", "display_name": "Match", "geojson": line}])

    settings = default_settings()
    settings = dataclasses.replace(
        settings,
        geocoder=dataclasses.replace(settings.geocoder, request_delay_seconds=0.0),
        cache_path=tmp_path / "cache.json",
    )
    renderer = RecordingRenderer()

    async def scenario():
        session = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        async with build_services(renderer, settings, session=session) as services:
            routes = await services.pipeline.run([{"start": "Osu", "end": "Airport", "path": "Ring Road → 10th Street"}])
            return routes, services.cache

    routes, cache = asyncio.run(scenario())

    route = routes[0]
    assert route.start_point == GeoPoint(5.57, -0.18)
    assert [g.provenance for g in route.geometries] == [Provenance.GEOCODED, Provenance.KNOWN]
    assert [s.name for s in route.segments] == [
        "Start to Ring Road",
        "Ring Road",
        "Ring Road to 10th Street",
        "10th Street",
        "10th Street to End",
    ]
    assert any(path.endswith("/search") for path in seen_paths)
    assert "osm_street_Ring_Road_Accra,_Ghana" in cache.entries
    assert (tmp_path / "cache.json").exists()


@pytest.mark.integration
def test_pipeline_failure_stops_sibling_routes():
    renderer = RecordingRenderer()
    geocoder = FakeGeocoder(failing_locations={"Bad"}, street_delay=0.05)
    pipeline = _pipeline(geocoder, renderer)
    routes = [
        {"start": "Bad", "end": "Airport", "path": "A1"},
        {"start": "Madina", "end": "Airport", "path": "B1 → B2 → B3"},
    ]

    async def scenario():
        result = await pipeline.run(routes)
        at_failure = list(geocoder.street_calls)
        await asyncio.sleep(0.3)
        return result, at_failure, list(geocoder.street_calls)

    result, at_failure, later = asyncio.run(scenario())

    assert result == []
    assert pipeline.state is PipelineState.FAILED
    assert later == at_failure
    assert "B3" not in later


@pytest.mark.integration
def test_pipeline_cancel_returns_to_idle():
    renderer = RecordingRenderer()
    pipeline = _pipeline(FakeGeocoder(), renderer)

    async def scenario():
        task = pipeline.submit([{"start": "Blocked", "end": "Airport", "path": "Ring Road"}])
        await asyncio.sleep(0.01)
        assert pipeline.state is PipelineState.PROCESSING
        pipeline.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())

    assert pipeline.state is PipelineState.IDLE
    assert pipeline.loading is False
    assert renderer.processed == []
    assert renderer.errors == []


@pytest.mark.integration
def test_pipeline_geocodes_stops_missing_from_geometry():
    renderer = RecordingRenderer()
    market = GeoPoint(5.548, -0.208)
    geocoder = FakeGeocoder(extra_locations={"Makola Market": market})
    pipeline = _pipeline(geocoder, renderer)
    routes = [
        {
            "start": "Osu",
            "end": "Airport",
            "path": "Ring Road",
            "destinations": ["Ring Road", "Makola Market", "Airport"],
        }
    ]

    route = asyncio.run(pipeline.run(routes))[0]

    assert route.stop_points == {"Makola Market": market}
    assert route.destination_point("Makola Market") == market
    # stops already on the route's geometry and the final end are not looked up
    assert geocoder.location_calls.count("Makola Market") == 1
    assert "Ring Road" not in geocoder.location_calls
    assert geocoder.location_calls.count("Airport") == 1


@pytest.mark.integration
def test_build_services_writes_json_log_file(tmp_path):
    def handler(request: httpx.Request) -> httpx.Response:
        if "/route/v1/" in request.url.path:
            coords = [[-0.187, 5.6037], [-0.182, 5.6087]]
            return httpx.Response(200, json={"routes": [{"geometry": {"coordinates": coords}}]})
        return httpx.Response(200, json=[])

    log_path = tmp_path / "logs" / "routemap.jsonl"
    renderer = RecordingRenderer()

    async def scenario():
        session = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        async with build_services(renderer, session=session, log_path=log_path) as services:
            await services.pipeline.run([{"start": "Nowhere", "end": "Elsewhere", "path": ""}])

    asyncio.run(scenario())

    events = [json.loads(line)["event"] for line in log_path.read_text(encoding="utf-8").splitlines()]
    assert events[0] == "RUN_START"
    assert "RUN_END" in events
    assert renderer.processed[0][0].segments[0].name == "Direct Route"
