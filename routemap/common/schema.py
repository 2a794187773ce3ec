"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from routemap.common.errors import ConfigError

SECTION_KEYS = {
    "geocoder": {
        "endpoint",
        "location_context",
        "timeout_seconds",
        "request_delay_seconds",
        "query_suffixes",
        "known_locations",
    },
    "router": {"endpoint", "profile", "timeout_seconds"},
    "pipeline": {"path_delimiter", "default_origin"},
    "http": {"user_agent", "max_attempts", "retry_multiplier", "retry_max_wait"},
}
OPTIONAL_SECTIONS = {"cache": {"path"}}


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_mapping(value: object, ctx: str) -> None:
    if not isinstance(value, dict):
        raise ConfigError(f"{ctx} must be a mapping")


def _assert_positive_number(value: object, ctx: str, *, allow_zero: bool = False) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{ctx} must be a number")
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigError(f"{ctx} must be {'non-negative' if allow_zero else 'positive'}")


def _assert_lat_lon(value: object, ctx: str) -> None:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise ConfigError(f"{ctx} must be a [lat, lon] pair")
    lat, lon = value
    for part in (lat, lon):
        if isinstance(part, bool) or not isinstance(part, (int, float)):
            raise ConfigError(f"{ctx} must contain numbers")
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        raise ConfigError(f"{ctx} is outside WGS84 bounds")


def validate_settings_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    _assert_mapping(cfg, "routemap config")
    _assert_required_keys(cfg, set(SECTION_KEYS), "routemap config")
    _assert_no_unknown_keys(cfg, set(SECTION_KEYS) | set(OPTIONAL_SECTIONS), "routemap config", allow_unknown)

    for section, keys in SECTION_KEYS.items():
        _assert_mapping(cfg[section], section)
        _assert_required_keys(cfg[section], keys, section)
        _assert_no_unknown_keys(cfg[section], keys, section, allow_unknown)
    for section, keys in OPTIONAL_SECTIONS.items():
        if cfg.get(section) is None:
            continue
        _assert_mapping(cfg[section], section)
        _assert_no_unknown_keys(cfg[section], keys, section, allow_unknown)

    geocoder = cfg["geocoder"]
    _assert_positive_number(geocoder["timeout_seconds"], "geocoder.timeout_seconds")
    _assert_positive_number(geocoder["request_delay_seconds"], "geocoder.request_delay_seconds", allow_zero=True)
    if not isinstance(geocoder["query_suffixes"], list) or not geocoder["query_suffixes"]:
        raise ConfigError("geocoder.query_suffixes must be a non-empty list")
    known = geocoder["known_locations"] or {}
    _assert_mapping(known, "geocoder.known_locations")
    for name, point in known.items():
        _assert_lat_lon(point, f"geocoder.known_locations[{name}]")

    _assert_positive_number(cfg["router"]["timeout_seconds"], "router.timeout_seconds")
    _assert_lat_lon(cfg["pipeline"]["default_origin"], "pipeline.default_origin")
    if not str(cfg["pipeline"]["path_delimiter"]):
        raise ConfigError("pipeline.path_delimiter must not be empty")

    http = cfg["http"]
    if isinstance(http["max_attempts"], bool) or not isinstance(http["max_attempts"], int) or http["max_attempts"] < 1:
        raise ConfigError("http.max_attempts must be an integer >= 1")
    _assert_positive_number(http["retry_multiplier"], "http.retry_multiplier", allow_zero=True)
    _assert_positive_number(http["retry_max_wait"], "http.retry_max_wait", allow_zero=True)

    return cfg
