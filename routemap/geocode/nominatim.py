"""Nominatim search adapter.

Provider responses are parsed once, here, into one of three tagged variants
so the rest of the code never sniffs raw GeoJSON shapes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from routemap.common.config_loader import GeocoderSettings
from routemap.common.errors import ProviderResponseError
from routemap.common.geometry import jittered_line
from routemap.common.http import HttpClient, TimeoutConfig
from routemap.common.models import GeoPoint

POINT_LINE_HALF_SPAN = 0.0005


@dataclass(frozen=True)
class PointResult:
    point: GeoPoint
    display_name: str | None = None


@dataclass(frozen=True)
class LineResult:
    point: GeoPoint
    line: tuple[GeoPoint, ...]
    display_name: str | None = None


@dataclass(frozen=True)
class MultiLineResult:
    point: GeoPoint
    lines: tuple[tuple[GeoPoint, ...], ...]
    display_name: str | None = None


GeocodeResult = Union[PointResult, LineResult, MultiLineResult]


def _lon_lat_to_point(coord: Any) -> GeoPoint:
    if not isinstance(coord, (list, tuple)) or len(coord) < 2:
        raise ProviderResponseError(f"Malformed coordinate: {coord!r}")
    try:
        return GeoPoint(float(coord[1]), float(coord[0]))
    except (TypeError, ValueError) as exc:
        raise ProviderResponseError(f"Malformed coordinate: {coord!r}") from exc


def _parse_line(coords: Any) -> tuple[GeoPoint, ...]:
    if not isinstance(coords, list):
        raise ProviderResponseError("Line geometry coordinates must be a list")
    return tuple(_lon_lat_to_point(coord) for coord in coords)


def parse_search_result(item: dict[str, Any]) -> GeocodeResult:
    try:
        point = GeoPoint(float(item["lat"]), float(item["lon"]))
    except (KeyError, TypeError, ValueError) as exc:
        raise ProviderResponseError("Search result has no usable lat/lon") from exc
    display_name = item.get("display_name")

    geojson = item.get("geojson") or {}
    geometry_type = geojson.get("type") if isinstance(geojson, dict) else None
    if geometry_type == "LineString":
        line = _parse_line(geojson.get("coordinates"))
        if line:
            return LineResult(point=point, line=line, display_name=display_name)
    elif geometry_type == "MultiLineString":
        raw_lines = geojson.get("coordinates")
        if not isinstance(raw_lines, list):
            raise ProviderResponseError("MultiLineString coordinates must be a list")
        lines = tuple(line for line in (_parse_line(raw) for raw in raw_lines) if line)
        if lines:
            return MultiLineResult(point=point, lines=lines, display_name=display_name)
    return PointResult(point=point, display_name=display_name)


def result_points(result: GeocodeResult) -> tuple[GeoPoint, ...]:
    if isinstance(result, LineResult):
        return result.line
    if isinstance(result, MultiLineResult):
        return tuple(point for line in result.lines for point in line)
    return jittered_line(result.point, POINT_LINE_HALF_SPAN)


class NominatimClient:
    def __init__(self, http_client: HttpClient, settings: GeocoderSettings) -> None:
        self.http_client = http_client
        self.settings = settings

    async def search(self, query: str, *, with_geometry: bool = False) -> GeocodeResult | None:
        params: dict[str, Any] = {"q": query, "format": "json", "limit": 1}
        if with_geometry:
            params["polygon_geojson"] = 1
        payload = await self.http_client.get_json(
            self.settings.endpoint,
            params=params,
            timeout=TimeoutConfig(total=self.settings.timeout_seconds),
        )
        if not isinstance(payload, list):
            raise ProviderResponseError(f"Unexpected search payload for {query!r}")
        if not payload:
            return None
        return parse_search_result(payload[0])
