"""Wire the HTTP client, cache, geocoder, router and pipeline together."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

from routemap.common.cache import CacheStore, JsonFileCacheStore, MemoryCacheStore
from routemap.common.config_loader import Settings, default_settings
from routemap.common.http import HttpClient
from routemap.common.ids import generate_run_id
from routemap.common.logging import build_logger
from routemap.geocode.geocoder import Geocoder
from routemap.geocode.nominatim import NominatimClient
from routemap.pipeline.processor import RoutePipeline, RouteRenderer
from routemap.routing.osrm import PointRouter


@dataclass
class RouteMapServices:
    http_client: HttpClient
    cache: CacheStore
    geocoder: Geocoder
    router: PointRouter
    pipeline: RoutePipeline

    async def close(self) -> None:
        self.pipeline.cancel()
        await self.http_client.close()

    async def __aenter__(self) -> "RouteMapServices":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


def build_cache(settings: Settings) -> CacheStore:
    if settings.cache_path is not None:
        return JsonFileCacheStore(settings.cache_path)
    return MemoryCacheStore()


def build_services(
    renderer: RouteRenderer,
    settings: Settings | None = None,
    *,
    cache: CacheStore | None = None,
    session: httpx.AsyncClient | None = None,
    logger: logging.Logger | None = None,
    log_path: Path | None = None,
    log_level: str = "INFO",
) -> RouteMapServices:
    """Build the service graph a hosting UI drives.

    Without an explicit ``logger``, passing ``log_path`` routes every
    component's events through one JSON-line logger (stderr plus that file).
    """
    settings = settings or default_settings()
    if logger is None and log_path is not None:
        logger = build_logger(generate_run_id(), level=log_level, log_path=log_path)
    http_client = HttpClient(
        user_agent=settings.http.user_agent,
        retry=settings.http.retry,
        session=session,
    )
    cache = cache if cache is not None else build_cache(settings)
    geocoder = Geocoder(
        NominatimClient(http_client, settings.geocoder),
        cache,
        settings.geocoder,
        logger=logger,
        origin=settings.pipeline.default_origin,
    )
    router = PointRouter(http_client, settings.router, logger=logger)
    pipeline = RoutePipeline(geocoder, router, renderer, settings.pipeline, logger=logger)
    return RouteMapServices(
        http_client=http_client,
        cache=cache,
        geocoder=geocoder,
        router=router,
        pipeline=pipeline,
    )
