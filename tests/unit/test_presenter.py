import asyncio
import dataclasses

import pytest

from routemap.common.errors import LocationUnavailableError
from routemap.common.models import (
    DriverLocation,
    GeoPoint,
    NamedGeometry,
    ProcessedRoute,
    Provenance,
    RawRoute,
    RouteSegment,
    SegmentKind,
)
from routemap.render.presenter import (
    ROUTE_COLORS,
    MapPresenter,
    MarkerKind,
    build_route_plan,
    compute_view,
    locate_user,
)

START = GeoPoint(5.60, -0.19)
END = GeoPoint(5.62, -0.17)


class RecordingSurface:
    def __init__(self):
        self.draws = []
        self.views = []

    def draw(self, polylines, markers):
        self.draws.append((list(polylines), list(markers)))

    def fit(self, view):
        self.views.append(view)


class FailingSensor:
    async def current_position(self):
        raise LocationUnavailableError("permission denied")


def _geometry(name: str, *coords) -> NamedGeometry:
    return NamedGeometry(name, tuple(GeoPoint(*c) for c in coords), Provenance.GEOCODED)


def _route(destinations=("Ring Road",)) -> ProcessedRoute:
    names = ("Ring Road", "Oxford St", "Liberation Rd")
    geometries = (
        _geometry("Ring Road", (5.600, -0.190), (5.601, -0.189), (5.602, -0.188)),
        _geometry("Oxford St", (5.605, -0.185), (5.606, -0.184)),
        _geometry("Liberation Rd", (5.610, -0.180), (5.615, -0.175)),
    )
    segments = (
        RouteSegment("Start to Ring Road", (START, GeoPoint(5.600, -0.190)), SegmentKind.CONNECTOR),
        RouteSegment("Ring Road", geometries[0].points, SegmentKind.STREET_BODY),
        RouteSegment("Liberation Rd to End", (GeoPoint(5.615, -0.175), END), SegmentKind.CONNECTOR),
    )
    raw = RawRoute(start="Osu", end="Airport", path=" → ".join(names), destinations=tuple(destinations))
    return ProcessedRoute(raw, START, END, "Airport", names, geometries, segments)


def test_build_route_plan_styles_connectors_and_bodies():
    plan = build_route_plan([_route(), _route()])

    connector, body = plan.polylines[0], plan.polylines[1]
    assert (connector.weight, connector.opacity, connector.dash_array) == (3, 0.6, "5, 5")
    assert (body.weight, body.opacity, body.dash_array) == (5, 0.8, None)
    assert connector.color == ROUTE_COLORS[0]
    assert plan.polylines[3].color == ROUTE_COLORS[1]


def test_build_route_plan_markers():
    plan = build_route_plan([_route(destinations=("Oxford St", "Airport"))])
    kinds = [m.kind for m in plan.markers]

    assert kinds.count(MarkerKind.START) == 1
    assert kinds.count(MarkerKind.END) == 1
    # final destination equals the end label so only the first stop is drawn
    stops = [m for m in plan.markers if m.kind is MarkerKind.STOP]
    assert [(m.label, m.point) for m in stops] == [("1", GeoPoint(5.605, -0.185))]
    waypoints = [m for m in plan.markers if m.kind is MarkerKind.WAYPOINT]
    assert [m.popup for m in waypoints] == ["Waypoint: Oxford St"]
    labels = [m for m in plan.markers if m.kind is MarkerKind.STREET_LABEL]
    assert labels[0].point == GeoPoint(5.601, -0.189)


def test_destination_point_prefers_geometry_then_geocoded_stops():
    route = _route()
    assert route.destination_point("Liberation Rd") == GeoPoint(5.610, -0.180)
    assert route.destination_point("Nowhere") is None

    located = dataclasses.replace(route, stop_points={"Nowhere": GeoPoint(5.59, -0.2), "Ring Road": GeoPoint(0.0, 0.0)})
    assert located.destination_point("Nowhere") == GeoPoint(5.59, -0.2)
    assert located.destination_point("Ring Road") == GeoPoint(5.600, -0.190)


def test_stop_marker_uses_geocoded_point_when_geometry_lacks_it():
    route = dataclasses.replace(
        _route(destinations=("Makola Market", "Airport")),
        stop_points={"Makola Market": GeoPoint(5.548, -0.208)},
    )

    stops = [m for m in build_route_plan([route]).markers if m.kind is MarkerKind.STOP]

    assert [(m.label, m.point, m.popup) for m in stops] == [("1", GeoPoint(5.548, -0.208), "Stop 1: Makola Market")]


def test_compute_view_without_points_uses_user_or_default():
    assert compute_view([], user_location=GeoPoint(1.0, 2.0)).zoom == 15
    assert compute_view([]).zoom == 13


def test_compute_view_pads_bounds():
    view = compute_view([GeoPoint(0.0, 0.0), GeoPoint(1.0, 2.0)])
    assert view.south_west.to_list() == pytest.approx([-0.2, -0.4])
    assert view.north_east.to_list() == pytest.approx([1.2, 2.4])
    assert view.center.to_list() == pytest.approx([0.5, 1.0])


def test_locate_user_falls_back_to_default():
    default = GeoPoint(5.6037, -0.1870)
    assert asyncio.run(locate_user(None, default)) == default
    assert asyncio.run(locate_user(FailingSensor(), default)) == default


def test_presenter_redraws_on_routes_and_drivers():
    surface = RecordingSurface()
    presenter = MapPresenter(surface)

    presenter.on_routes_processed([_route()])
    presenter.on_driver_locations_changed(
        [
            {"latitude": 5.61, "longitude": -0.18, "driverName": "Ama", "status": "en route", "heading": 45},
            {"latitude": None, "longitude": -0.18},
        ]
    )

    assert len(surface.draws) == 2
    drivers = [m for m in surface.draws[-1][1] if m.kind is MarkerKind.DRIVER]
    assert len(drivers) == 1
    assert drivers[0].rotation == 45.0
    assert drivers[0].popup.splitlines()[:2] == ["Ama", "Status: en route"]
    assert surface.views[-1].south_west is not None


def test_presenter_without_surface_keeps_state():
    presenter = MapPresenter(None)
    presenter.on_routes_processed([_route()])
    presenter.on_driver_locations_changed([DriverLocation(5.6, -0.2)])
    presenter.on_progress(0.5)
    presenter.on_error("Failed to process routes: boom")

    assert presenter.redraw() is None
    assert presenter.progress == 0.5
    assert presenter.error == "Failed to process routes: boom"
    assert len(presenter.build_plan().markers) > 0
