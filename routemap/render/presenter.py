"""Turn processed routes and driver positions into drawable map primitives."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Protocol, Sequence

from routemap.common.constants import DEFAULT_ORIGIN, DEFAULT_ZOOM, USER_ZOOM
from routemap.common.errors import LocationUnavailableError
from routemap.common.logging import get_logger, log_event
from routemap.common.models import DriverLocation, GeoPoint, ProcessedRoute, RouteSegment
from routemap.common.time_utils import format_clock_time

ROUTE_COLORS = ("#3b82f6", "#ef4444", "#10b981", "#f97316", "#8b5cf6", "#ec4899")
VIEW_PADDING = 0.2


class MarkerKind(str, Enum):
    START = "start"
    END = "end"
    STOP = "stop"
    WAYPOINT = "waypoint"
    STREET_LABEL = "street_label"
    DRIVER = "driver"
    USER = "user"


@dataclass(frozen=True)
class Polyline:
    points: tuple[GeoPoint, ...]
    color: str
    weight: int
    opacity: float
    dash_array: str | None
    popup: str


@dataclass(frozen=True)
class Marker:
    kind: MarkerKind
    point: GeoPoint
    color: str | None = None
    label: str | None = None
    popup: str | None = None
    rotation: float = 0.0


@dataclass(frozen=True)
class MapView:
    center: GeoPoint
    zoom: int | None = None
    south_west: GeoPoint | None = None
    north_east: GeoPoint | None = None


@dataclass
class RenderPlan:
    polylines: list[Polyline] = field(default_factory=list)
    markers: list[Marker] = field(default_factory=list)


class MapSurface(Protocol):
    def draw(self, polylines: Sequence[Polyline], markers: Sequence[Marker]) -> None: ...

    def fit(self, view: MapView) -> None: ...


class LocationSensor(Protocol):
    async def current_position(self) -> GeoPoint | None: ...


def route_color(index: int) -> str:
    return ROUTE_COLORS[index % len(ROUTE_COLORS)]


def _segment_polyline(segment: RouteSegment, color: str) -> Polyline:
    if segment.is_connector:
        return Polyline(segment.points, color, weight=3, opacity=0.6, dash_array="5, 5", popup=segment.name)
    return Polyline(segment.points, color, weight=5, opacity=0.8, dash_array=None, popup=segment.name)


def _stop_markers(route: ProcessedRoute, color: str) -> list[Marker]:
    markers = []
    for idx, destination in route.stop_destinations():
        point = route.destination_point(destination)
        if point is None:
            continue
        markers.append(
            Marker(MarkerKind.STOP, point, color=color, label=str(idx + 1), popup=f"Stop {idx + 1}: {destination}")
        )
    return markers


def _waypoint_markers(route: ProcessedRoute, color: str) -> list[Marker]:
    markers = []
    last = len(route.path_names) - 1
    for idx, name in enumerate(route.path_names):
        if idx in (0, last):
            continue
        points = route.geometries[idx].points
        if points:
            markers.append(Marker(MarkerKind.WAYPOINT, points[0], color=color, popup=f"Waypoint: {name}"))
    return markers


def _street_labels(route: ProcessedRoute, color: str) -> list[Marker]:
    markers = []
    for name, geometry in zip(route.path_names, route.geometries):
        if geometry.points:
            middle = geometry.points[len(geometry.points) // 2]
            markers.append(Marker(MarkerKind.STREET_LABEL, middle, color=color, label=name))
    return markers


def build_route_plan(routes: Sequence[ProcessedRoute]) -> RenderPlan:
    plan = RenderPlan()
    for idx, route in enumerate(routes):
        color = route_color(idx)
        plan.polylines.extend(_segment_polyline(segment, color) for segment in route.segments)
        plan.markers.append(
            Marker(MarkerKind.START, route.start_point, color=color, label="S", popup=f"Start: {route.route.start}")
        )
        plan.markers.append(
            Marker(MarkerKind.END, route.end_point, color=color, label="E", popup=f"End: {route.end_destination}")
        )
        plan.markers.extend(_stop_markers(route, color))
        plan.markers.extend(_waypoint_markers(route, color))
        plan.markers.extend(_street_labels(route, color))
    return plan


def _driver_popup(driver: DriverLocation, index: int) -> str:
    lines = [driver.driver_name or f"Driver {index + 1}"]
    if driver.status:
        lines.append(f"Status: {driver.status}")
    if driver.vehicle:
        lines.append(f"Vehicle: {driver.vehicle}")
    updated = format_clock_time(driver.timestamp)
    if updated:
        lines.append(f"Last updated: {updated}")
    return "\n".join(lines)


def coerce_drivers(drivers: Iterable[DriverLocation | Mapping[str, Any]]) -> list[DriverLocation]:
    out = []
    for driver in drivers:
        if isinstance(driver, DriverLocation):
            out.append(driver)
            continue
        parsed = DriverLocation.from_dict(driver)
        if parsed is not None:
            out.append(parsed)
    return out


def build_driver_markers(drivers: Sequence[DriverLocation]) -> list[Marker]:
    return [
        Marker(
            MarkerKind.DRIVER,
            driver.point,
            label=driver.driver_name,
            popup=_driver_popup(driver, idx),
            rotation=driver.heading or 0.0,
        )
        for idx, driver in enumerate(drivers)
    ]


def compute_view(
    points: Sequence[GeoPoint],
    *,
    user_location: GeoPoint | None = None,
    padding: float = VIEW_PADDING,
    default_center: GeoPoint = GeoPoint(*DEFAULT_ORIGIN),
) -> MapView:
    if not points:
        if user_location is not None:
            return MapView(center=user_location, zoom=USER_ZOOM)
        return MapView(center=default_center, zoom=DEFAULT_ZOOM)

    all_points = list(points)
    if user_location is not None:
        all_points.append(user_location)
    lats = [p.latitude for p in all_points]
    lons = [p.longitude for p in all_points]
    lat_pad = (max(lats) - min(lats)) * padding
    lon_pad = (max(lons) - min(lons)) * padding
    south_west = GeoPoint(min(lats) - lat_pad, min(lons) - lon_pad)
    north_east = GeoPoint(max(lats) + lat_pad, max(lons) + lon_pad)
    center = GeoPoint(
        (south_west.latitude + north_east.latitude) / 2,
        (south_west.longitude + north_east.longitude) / 2,
    )
    return MapView(center=center, south_west=south_west, north_east=north_east)


async def locate_user(sensor: LocationSensor | None, default: GeoPoint = GeoPoint(*DEFAULT_ORIGIN)) -> GeoPoint:
    if sensor is None:
        return default
    try:
        position = await sensor.current_position()
    except (LocationUnavailableError, OSError):
        return default
    return position if position is not None else default


class MapPresenter:
    """Renderer callbacks that redraw a map surface from the latest state."""

    def __init__(
        self,
        surface: MapSurface | None,
        *,
        user_location: GeoPoint | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.surface = surface
        self.user_location = user_location
        self.logger = logger or get_logger("render")
        self.routes: list[ProcessedRoute] = []
        self.drivers: list[DriverLocation] = []
        self.progress = 0.0
        self.error: str | None = None

    def build_plan(self) -> RenderPlan:
        plan = build_route_plan(self.routes)
        plan.markers.extend(build_driver_markers(self.drivers))
        if self.user_location is not None:
            plan.markers.append(Marker(MarkerKind.USER, self.user_location, label="Your Location"))
        return plan

    def redraw(self) -> RenderPlan | None:
        if self.surface is None:
            log_event(
                self.logger,
                "no map surface available; skipping draw",
                level=logging.WARNING,
                event="DRAW_SKIPPED",
                status="skipped",
            )
            return None
        plan = self.build_plan()
        self.surface.draw(plan.polylines, plan.markers)
        route_points = [p for line in plan.polylines for p in line.points]
        fit_kinds = (MarkerKind.START, MarkerKind.END, MarkerKind.DRIVER)
        route_points.extend(m.point for m in plan.markers if m.kind in fit_kinds)
        self.surface.fit(compute_view(route_points, user_location=self.user_location))
        return plan

    def on_routes_processed(self, routes: Sequence[ProcessedRoute]) -> None:
        self.routes = list(routes)
        self.error = None
        self.redraw()

    def on_progress(self, fraction: float) -> None:
        self.progress = fraction

    def on_error(self, message: str) -> None:
        self.error = message
        log_event(self.logger, message, level=logging.ERROR, event="RUN_FAIL", status="error")

    def on_driver_locations_changed(self, drivers: Sequence[DriverLocation | Mapping[str, Any]]) -> None:
        self.drivers = coerce_drivers(drivers)
        self.redraw()
