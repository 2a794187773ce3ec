"""Name-to-coordinate resolution with caching and synthetic fallback."""

from __future__ import annotations

import asyncio
import json
import logging
import time

from routemap.common.cache import CacheStore, normalise_cache_key
from routemap.common.config_loader import GeocoderSettings
from routemap.common.errors import ProviderResponseError
from routemap.common.geometry import jittered_line
from routemap.common.http import HttpRequestError, HttpTimeoutError
from routemap.common.logging import get_logger, log_event
from routemap.common.models import GeoPoint, NamedGeometry, Provenance
from routemap.geocode.names import is_valid_street_name
from routemap.geocode.nominatim import NominatimClient, result_points
from routemap.geocode.synthetic import default_anchor, synthesize

KNOWN_LINE_HALF_SPAN = 0.001


def _encode_location(point: GeoPoint) -> str:
    return json.dumps({"lat": point.latitude, "lon": point.longitude})


def _decode_location(raw: str) -> GeoPoint:
    payload = json.loads(raw)
    return GeoPoint(float(payload["lat"]), float(payload["lon"]))


def _encode_street(geometry: NamedGeometry) -> str:
    return json.dumps(
        {
            "name": geometry.name,
            "points": [p.to_list() for p in geometry.points],
            "display_name": geometry.display_name,
        },
        ensure_ascii=False,
    )


def _decode_street(raw: str) -> NamedGeometry:
    payload = json.loads(raw)
    points = tuple(GeoPoint.from_sequence(p) for p in payload["points"])
    if not points:
        raise ValueError("cached street has no points")
    return NamedGeometry(
        name=str(payload["name"]),
        points=points,
        provenance=Provenance.GEOCODED,
        display_name=payload.get("display_name"),
        cached=True,
    )


class Geocoder:
    def __init__(
        self,
        client: NominatimClient,
        cache: CacheStore,
        settings: GeocoderSettings | None = None,
        logger: logging.Logger | None = None,
        *,
        origin: GeoPoint | None = None,
    ) -> None:
        self.client = client
        self.cache = cache
        self.settings = settings or client.settings
        self.logger = logger or get_logger("geocoder")
        self.origin = origin or default_anchor(0)

    def _with_context(self, query: str, context: str | None = None) -> str:
        return f"{query}, {context or self.settings.location_context}"

    def _read_cache(self, key: str, decode):
        raw = self.cache.get(key)
        if raw is None:
            return None
        try:
            return decode(raw)
        except (ValueError, KeyError, TypeError) as exc:
            log_event(
                self.logger,
                f"ignoring malformed cache entry {key}: {exc}",
                level=logging.WARNING,
                event="CACHE_CORRUPT",
                status="miss",
            )
            return None

    async def resolve_location(self, query: str) -> GeoPoint | None:
        full_query = self._with_context(query)
        key = normalise_cache_key("osm_location", full_query)
        cached = self._read_cache(key, _decode_location)
        if cached is not None:
            log_event(self.logger, f"location cache hit for {full_query}", event="CACHE_HIT", status="ok")
            return cached

        started = time.monotonic()
        try:
            result = await self.client.search(full_query)
        except HttpTimeoutError:
            log_event(
                self.logger,
                f"location lookup timed out for {full_query}",
                level=logging.WARNING,
                event="LOOKUP_FAIL",
                status="cancelled",
                error_code=HttpTimeoutError.error_code,
            )
            return None
        except (HttpRequestError, ProviderResponseError) as exc:
            log_event(
                self.logger,
                f"location lookup failed for {full_query}: {exc}",
                level=logging.WARNING,
                event="LOOKUP_FAIL",
                status="error",
                error_code=exc.error_code,
            )
            return None

        if result is None:
            return None
        self.cache.set(key, _encode_location(result.point))
        log_event(
            self.logger,
            f"resolved location {full_query}",
            event="LOCATION_RESOLVED",
            status="ok",
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return result.point

    def known_geometry(self, name: str) -> NamedGeometry | None:
        point = self.settings.known_locations.get(name)
        if point is None:
            return None
        return NamedGeometry(
            name=name,
            points=jittered_line(point, KNOWN_LINE_HALF_SPAN),
            provenance=Provenance.KNOWN,
        )

    def street_variants(self, name: str, context: str | None = None) -> list[str]:
        return [self._with_context(f"{name}{suffix}", context) for suffix in self.settings.query_suffixes]

    async def resolve_street(
        self,
        name: str,
        context: str | None = None,
        *,
        index: int = 0,
        total: int = 1,
        start_anchor: GeoPoint | None = None,
        end_anchor: GeoPoint | None = None,
    ) -> NamedGeometry:
        def _fallback() -> NamedGeometry:
            return synthesize(name, index, start_anchor, end_anchor, total=total, origin=self.origin)

        if not is_valid_street_name(name):
            log_event(self.logger, f"invalid street name skipped: {name!r}", event="STREET_FALLBACK", status="skipped")
            return _fallback()

        known = self.known_geometry(name)
        if known is not None:
            return known

        key = normalise_cache_key("osm_street", name, context or self.settings.location_context)
        cached = self._read_cache(key, _decode_street)
        if cached is not None:
            log_event(self.logger, f"street cache hit for {name}", event="CACHE_HIT", street=name, status="ok")
            return cached

        variants = self.street_variants(name, context)
        for attempt, query in enumerate(variants, start=1):
            if attempt > 1:
                await asyncio.sleep(self.settings.request_delay_seconds)
            try:
                result = await self.client.search(query, with_geometry=True)
            except HttpTimeoutError:
                log_event(
                    self.logger,
                    f"street lookup timed out for {query}",
                    level=logging.WARNING,
                    event="LOOKUP_FAIL",
                    street=name,
                    attempt=attempt,
                    status="cancelled",
                    error_code=HttpTimeoutError.error_code,
                )
                break
            except (HttpRequestError, ProviderResponseError) as exc:
                log_event(
                    self.logger,
                    f"street lookup failed for {query}: {exc}",
                    level=logging.WARNING,
                    event="LOOKUP_FAIL",
                    street=name,
                    attempt=attempt,
                    status="error",
                    error_code=exc.error_code,
                )
                continue
            if result is None:
                continue

            geometry = NamedGeometry(
                name=name,
                points=result_points(result),
                provenance=Provenance.GEOCODED,
                display_name=result.display_name,
            )
            self.cache.set(key, _encode_street(geometry))
            log_event(
                self.logger,
                f"resolved street {name}",
                event="STREET_RESOLVED",
                street=name,
                attempt=attempt,
                status="ok",
                provenance=geometry.provenance.value,
            )
            return geometry

        log_event(
            self.logger,
            f"street not found: {name}; using synthetic geometry",
            level=logging.WARNING,
            event="STREET_FALLBACK",
            street=name,
            status="synthetic",
            provenance=Provenance.SYNTHETIC.value,
        )
        return _fallback()
