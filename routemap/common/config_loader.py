"""Configuration loading and validation."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from routemap.common import constants
from routemap.common.errors import ConfigError
from routemap.common.fs import read_yaml
from routemap.common.http import RetryConfig
from routemap.common.models import GeoPoint
from routemap.common.schema import validate_settings_config

DEFAULT_CONFIG: dict[str, Any] = {
    "geocoder": {
        "endpoint": constants.NOMINATIM_SEARCH_URL,
        "location_context": constants.DEFAULT_LOCATION_CONTEXT,
        "timeout_seconds": constants.LOOKUP_TIMEOUT_SECONDS,
        "request_delay_seconds": constants.PROVIDER_DELAY_SECONDS,
        "query_suffixes": list(constants.STREET_QUERY_SUFFIXES),
        "known_locations": {name: list(point) for name, point in constants.KNOWN_LOCATIONS.items()},
    },
    "router": {
        "endpoint": constants.OSRM_BASE_URL,
        "profile": "driving",
        "timeout_seconds": constants.ROUTE_TIMEOUT_SECONDS,
    },
    "pipeline": {
        "path_delimiter": constants.DEFAULT_PATH_DELIMITER,
        "default_origin": list(constants.DEFAULT_ORIGIN),
    },
    "http": {
        "user_agent": constants.USER_AGENT,
        "max_attempts": 2,
        "retry_multiplier": 0.5,
        "retry_max_wait": 4.0,
    },
}


@dataclass(frozen=True)
class GeocoderSettings:
    endpoint: str = constants.NOMINATIM_SEARCH_URL
    location_context: str = constants.DEFAULT_LOCATION_CONTEXT
    timeout_seconds: float = constants.LOOKUP_TIMEOUT_SECONDS
    request_delay_seconds: float = constants.PROVIDER_DELAY_SECONDS
    query_suffixes: tuple[str, ...] = constants.STREET_QUERY_SUFFIXES
    known_locations: dict[str, GeoPoint] = field(
        default_factory=lambda: {name: GeoPoint(*point) for name, point in constants.KNOWN_LOCATIONS.items()}
    )


@dataclass(frozen=True)
class RouterSettings:
    endpoint: str = constants.OSRM_BASE_URL
    profile: str = "driving"
    timeout_seconds: float = constants.ROUTE_TIMEOUT_SECONDS


@dataclass(frozen=True)
class PipelineSettings:
    path_delimiter: str = constants.DEFAULT_PATH_DELIMITER
    default_origin: GeoPoint = GeoPoint(*constants.DEFAULT_ORIGIN)


@dataclass(frozen=True)
class HttpSettings:
    user_agent: str = constants.USER_AGENT
    retry: RetryConfig = RetryConfig()


@dataclass(frozen=True)
class Settings:
    geocoder: GeocoderSettings = field(default_factory=GeocoderSettings)
    router: RouterSettings = field(default_factory=RouterSettings)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    http: HttpSettings = field(default_factory=HttpSettings)
    cache_path: Path | None = None


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    base = read_yaml(path)
    if base is None:
        raise ConfigError(f"Config file is empty: {path}")
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if overlay is None:
        return base
    if not isinstance(overlay, dict):
        raise ConfigError(f"Overlay config must be a mapping: {overlay_path}")
    return _deep_merge(base, overlay)


def settings_from_config(cfg: dict) -> Settings:
    geocoder = cfg["geocoder"]
    router = cfg["router"]
    pipeline = cfg["pipeline"]
    http = cfg["http"]
    cache_path = (cfg.get("cache") or {}).get("path")
    return Settings(
        geocoder=GeocoderSettings(
            endpoint=str(geocoder["endpoint"]),
            location_context=str(geocoder["location_context"]),
            timeout_seconds=float(geocoder["timeout_seconds"]),
            request_delay_seconds=float(geocoder["request_delay_seconds"]),
            query_suffixes=tuple(str(s) for s in geocoder["query_suffixes"]),
            known_locations={
                str(name): GeoPoint.from_sequence(point)
                for name, point in (geocoder["known_locations"] or {}).items()
            },
        ),
        router=RouterSettings(
            endpoint=str(router["endpoint"]).rstrip("/"),
            profile=str(router["profile"]),
            timeout_seconds=float(router["timeout_seconds"]),
        ),
        pipeline=PipelineSettings(
            path_delimiter=str(pipeline["path_delimiter"]),
            default_origin=GeoPoint.from_sequence(pipeline["default_origin"]),
        ),
        http=HttpSettings(
            user_agent=str(http["user_agent"]),
            retry=RetryConfig(
                max_attempts=int(http["max_attempts"]),
                multiplier=float(http["retry_multiplier"]),
                max_wait=float(http["retry_max_wait"]),
            ),
        ),
        cache_path=Path(cache_path) if cache_path else None,
    )


def default_settings() -> Settings:
    return settings_from_config(validate_settings_config(copy.deepcopy(DEFAULT_CONFIG)))


def load_settings(
    path: Path | None = None,
    *,
    overlay_path: Path | None = None,
    allow_unknown: bool = False,
) -> Settings:
    if path is None:
        if overlay_path is None or not overlay_path.exists():
            return default_settings()
        overlay = read_yaml(overlay_path) or {}
        if not isinstance(overlay, dict):
            raise ConfigError(f"Overlay config must be a mapping: {overlay_path}")
        cfg = _deep_merge(copy.deepcopy(DEFAULT_CONFIG), overlay)
    else:
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        cfg = _load_yaml_with_overlay(path, overlay_path)
    return settings_from_config(validate_settings_config(cfg, allow_unknown=allow_unknown))
