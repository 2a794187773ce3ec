"""Assemble named street geometries into one continuous, drawable route."""

from __future__ import annotations

from typing import Protocol, Sequence

from routemap.common.geometry import nearest_point, nearest_point_index
from routemap.common.models import GeoPoint, NamedGeometry, RouteSegment, SegmentKind

DIRECT_ROUTE_NAME = "Direct Route"


class Router(Protocol):
    async def route_between(self, start: GeoPoint, end: GeoPoint) -> list[GeoPoint]: ...


def _street(name: str, points: Sequence[GeoPoint]) -> RouteSegment:
    return RouteSegment(name=name, points=tuple(points), kind=SegmentKind.STREET_BODY)


async def _connector(router: Router, name: str, start: GeoPoint, end: GeoPoint) -> RouteSegment:
    points = await router.route_between(start, end)
    if not points:
        points = [start, end]
    return RouteSegment(name=name, points=tuple(points), kind=SegmentKind.CONNECTOR)


def truncate_at_junction(points: Sequence[GeoPoint], next_points: Sequence[GeoPoint]) -> tuple[GeoPoint, ...]:
    """Cut ``points`` at the point closest to where the next street begins."""
    if not next_points:
        return tuple(points)
    junction = nearest_point_index(next_points[0], points)
    if junction < 0:
        return tuple(points)
    return tuple(points[: junction + 1])


def _next_with_points(geometries: Sequence[NamedGeometry], after: int) -> NamedGeometry | None:
    for geometry in geometries[after + 1 :]:
        if geometry.points:
            return geometry
    return None


async def build_route(
    path_names: Sequence[str],
    geometries: Sequence[NamedGeometry],
    start_point: GeoPoint,
    end_point: GeoPoint,
    router: Router,
) -> list[RouteSegment]:
    if len(path_names) != len(geometries):
        raise ValueError(f"{len(path_names)} path names but {len(geometries)} geometries")

    if not path_names:
        return [await _connector(router, DIRECT_ROUTE_NAME, start_point, end_point)]

    segments: list[RouteSegment] = []
    last_placed: GeoPoint | None = None
    last_name: str | None = None

    # Connectors depend on the previous body, so requests stay sequential.
    for idx, name in enumerate(path_names):
        points = geometries[idx].points
        if not points:
            continue

        if last_placed is None:
            entry = points[nearest_point_index(start_point, points)]
            segments.append(await _connector(router, f"Start to {name}", start_point, entry))
            following = _next_with_points(geometries, idx)
            body = truncate_at_junction(points, following.points) if following is not None else tuple(points)
        else:
            entry = nearest_point(last_placed, points)
            segments.append(await _connector(router, f"{last_name} to {name}", last_placed, entry))
            body = tuple(points)

        segments.append(_street(name, body))
        last_placed = body[-1]
        last_name = name

    if last_placed is None:
        return [await _connector(router, DIRECT_ROUTE_NAME, start_point, end_point)]

    segments.append(await _connector(router, f"{last_name} to End", last_placed, end_point))
    return segments
