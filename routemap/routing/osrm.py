"""Point-to-point routing via OSRM with straight-line fallback."""

from __future__ import annotations

import logging
from typing import Any

from routemap.common.config_loader import RouterSettings
from routemap.common.errors import ProviderResponseError
from routemap.common.http import HttpClient, HttpRequestError, HttpTimeoutError, TimeoutConfig
from routemap.common.logging import get_logger, log_event
from routemap.common.models import GeoPoint


def _route_url(settings: RouterSettings, start: GeoPoint, end: GeoPoint) -> str:
    coords = f"{start.longitude},{start.latitude};{end.longitude},{end.latitude}"
    return f"{settings.endpoint}/route/v1/{settings.profile}/{coords}"


def extract_route_points(payload: Any) -> list[GeoPoint]:
    if not isinstance(payload, dict):
        raise ProviderResponseError("Route payload must be an object")
    routes = payload.get("routes") or []
    if not routes:
        raise ProviderResponseError("Route payload has no routes")
    geometry = routes[0].get("geometry") if isinstance(routes[0], dict) else None
    if not isinstance(geometry, dict) or not isinstance(geometry.get("coordinates"), list):
        raise ProviderResponseError("Route has no geometry")
    points: list[GeoPoint] = []
    for coord in geometry["coordinates"]:
        try:
            points.append(GeoPoint(float(coord[1]), float(coord[0])))
        except (IndexError, TypeError, ValueError) as exc:
            raise ProviderResponseError(f"Malformed route coordinate: {coord!r}") from exc
    return points


class PointRouter:
    def __init__(
        self,
        http_client: HttpClient,
        settings: RouterSettings | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.http_client = http_client
        self.settings = settings or RouterSettings()
        self.logger = logger or get_logger("router")

    async def route_between(self, start: GeoPoint, end: GeoPoint) -> list[GeoPoint]:
        """Road geometry from ``start`` to ``end``, or the straight line between them."""
        try:
            payload = await self.http_client.get_json(
                _route_url(self.settings, start, end),
                params={"overview": "full", "geometries": "geojson"},
                timeout=TimeoutConfig(total=self.settings.timeout_seconds),
            )
            points = extract_route_points(payload)
        except HttpTimeoutError:
            log_event(
                self.logger,
                "route request timed out; using direct line",
                level=logging.WARNING,
                event="ROUTE_FALLBACK",
                status="cancelled",
                error_code=HttpTimeoutError.error_code,
            )
            return [start, end]
        except (HttpRequestError, ProviderResponseError) as exc:
            log_event(
                self.logger,
                f"route request failed; using direct line: {exc}",
                level=logging.WARNING,
                event="ROUTE_FALLBACK",
                status="error",
                error_code=exc.error_code,
            )
            return [start, end]

        if len(points) < 2:
            return [start, end]
        return points
