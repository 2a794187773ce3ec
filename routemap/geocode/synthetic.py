"""Deterministic stand-in geometry for names that cannot be geocoded.

Everything here is a pure function of its arguments: the same name, index
and anchors always produce the same points, so a route drawn from synthetic
data stays put between runs.
"""

from __future__ import annotations

from routemap.common.constants import DEFAULT_ORIGIN
from routemap.common.geometry import jittered_line
from routemap.common.models import GeoPoint, NamedGeometry, Provenance

LINE_HALF_SPAN = 0.001
INDEX_STEP = 0.001
DEFAULT_ANCHOR_STEP = 0.005

_ORIGIN = GeoPoint(*DEFAULT_ORIGIN)


def name_hash(name: str) -> int:
    return sum(ord(char) for char in name)


def name_offsets(name: str) -> tuple[float, float]:
    value = name_hash(name)
    return (value % 100) / 10000, ((value * 2) % 100) / 10000


def default_anchor(index: int, origin: GeoPoint = _ORIGIN) -> GeoPoint:
    step = index * DEFAULT_ANCHOR_STEP
    return origin.offset(step, step)


def synthesize(
    name: str,
    index: int,
    start_anchor: GeoPoint | None,
    end_anchor: GeoPoint | None,
    *,
    total: int = 1,
    origin: GeoPoint = _ORIGIN,
) -> NamedGeometry:
    lat_offset, lon_offset = name_offsets(name)

    if start_anchor is not None and end_anchor is not None:
        # Spread streets along the anchor corridor by their position in the path.
        ratio = (index + 1) / (max(total, 1) + 1)
        mid = GeoPoint(
            start_anchor.latitude + (end_anchor.latitude - start_anchor.latitude) * ratio,
            start_anchor.longitude + (end_anchor.longitude - start_anchor.longitude) * ratio,
        )
        center = mid.offset(lat_offset, lon_offset)
    else:
        step = index * INDEX_STEP
        center = origin.offset(step + lat_offset, step + lon_offset)

    return NamedGeometry(
        name=name,
        points=jittered_line(center, LINE_HALF_SPAN),
        provenance=Provenance.SYNTHETIC,
    )
