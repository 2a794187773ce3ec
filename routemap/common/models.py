"""Data models used across route resolution and rendering."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> "GeoPoint":
        if len(values) != 2:
            raise ValueError(f"Expected [lat, lon], got {values!r}")
        return cls(float(values[0]), float(values[1]))

    def to_list(self) -> list[float]:
        return [self.latitude, self.longitude]

    def offset(self, d_lat: float, d_lon: float) -> "GeoPoint":
        return GeoPoint(self.latitude + d_lat, self.longitude + d_lon)


class Provenance(str, Enum):
    KNOWN = "known"
    GEOCODED = "geocoded"
    SYNTHETIC = "synthetic"


class SegmentKind(str, Enum):
    STREET_BODY = "street_body"
    CONNECTOR = "connector"


@dataclass(frozen=True)
class NamedGeometry:
    name: str
    points: tuple[GeoPoint, ...]
    provenance: Provenance
    display_name: str | None = None
    cached: bool = field(default=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "points": [p.to_list() for p in self.points],
            "provenance": self.provenance.value,
            "display_name": self.display_name,
        }


@dataclass(frozen=True)
class RouteSegment:
    name: str
    points: tuple[GeoPoint, ...]
    kind: SegmentKind

    def __post_init__(self) -> None:
        if not self.points:
            raise ValueError(f"Route segment {self.name!r} has no points")

    @property
    def is_connector(self) -> bool:
        return self.kind is SegmentKind.CONNECTOR

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "points": [p.to_list() for p in self.points],
            "kind": self.kind.value,
        }


def _string_tuple(values: Iterable[object] | None) -> tuple[str, ...]:
    if not values:
        return ()
    return tuple(str(v) for v in values)


@dataclass(frozen=True)
class RawRoute:
    start: str
    end: str
    path: str | None = None
    streets: tuple[str, ...] = ()
    destinations: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "RawRoute":
        return cls(
            start=str(payload.get("start") or ""),
            end=str(payload.get("end") or ""),
            path=payload.get("path") or None,
            streets=_string_tuple(payload.get("streets")),
            destinations=_string_tuple(payload.get("destinations")),
        )

    @property
    def end_destination(self) -> str:
        if self.streets:
            return self.streets[-1]
        return self.end


@dataclass(frozen=True)
class ProcessedRoute:
    route: RawRoute
    start_point: GeoPoint
    end_point: GeoPoint
    end_destination: str
    path_names: tuple[str, ...]
    geometries: tuple[NamedGeometry, ...]
    segments: tuple[RouteSegment, ...]
    stop_points: dict[str, GeoPoint] = field(default_factory=dict, hash=False)

    def stop_destinations(self) -> list[tuple[int, str]]:
        """Numbered stops to mark; the last stop is dropped when it is the end itself."""
        destinations = self.route.destinations
        last = len(destinations) - 1
        return [
            (idx, destination)
            for idx, destination in enumerate(destinations)
            if not (idx == last and destination == self.end_destination)
        ]

    def geometry_point(self, destination: str) -> GeoPoint | None:
        """First known point for a stop, looked up by street list, path position, then geometry name."""
        geometries = self.geometries
        if destination in self.route.streets:
            idx = self.route.streets.index(destination)
            if idx < len(geometries) and geometries[idx].points:
                return geometries[idx].points[0]
        elif destination in self.path_names:
            idx = self.path_names.index(destination)
            if geometries[idx].points:
                return geometries[idx].points[0]
        for geometry in geometries:
            if geometry.name == destination and geometry.points:
                return geometry.points[0]
        return None

    def destination_point(self, destination: str) -> GeoPoint | None:
        point = self.geometry_point(destination)
        if point is not None:
            return point
        return self.stop_points.get(destination)

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.route.start,
            "end": self.route.end,
            "path": self.route.path,
            "streets": list(self.route.streets),
            "destinations": list(self.route.destinations),
            "start_point": self.start_point.to_list(),
            "end_point": self.end_point.to_list(),
            "end_destination": self.end_destination,
            "path_names": list(self.path_names),
            "geometries": [g.to_dict() for g in self.geometries],
            "segments": [s.to_dict() for s in self.segments],
            "stop_points": {name: point.to_list() for name, point in self.stop_points.items()},
        }


def _safe_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class DriverLocation:
    latitude: float
    longitude: float
    heading: float | None = None
    driver_name: str | None = None
    status: str | None = None
    vehicle: str | None = None
    timestamp: str | None = None

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(self.latitude, self.longitude)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "DriverLocation | None":
        lat = _safe_float(payload.get("latitude"))
        lon = _safe_float(payload.get("longitude"))
        if lat is None or lon is None:
            return None
        timestamp = payload.get("timestamp")
        return cls(
            latitude=lat,
            longitude=lon,
            heading=_safe_float(payload.get("heading")),
            driver_name=payload.get("driverName") or payload.get("driver_name"),
            status=payload.get("status"),
            vehicle=payload.get("vehicle"),
            timestamp=str(timestamp) if timestamp is not None else None,
        )
