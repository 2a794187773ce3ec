"""Geometry helpers."""

from __future__ import annotations

import math
from typing import Sequence

from routemap.common.constants import EARTH_RADIUS_KM
from routemap.common.models import GeoPoint


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    d_lat = math.radians(b.latitude - a.latitude)
    d_lon = math.radians(b.longitude - a.longitude)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.latitude)) * math.cos(math.radians(b.latitude)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def nearest_point_index(reference: GeoPoint, points: Sequence[GeoPoint]) -> int:
    """Index of the point closest to ``reference``; first occurrence wins ties, -1 when empty."""
    best_index = -1
    best_distance = math.inf
    for idx, candidate in enumerate(points):
        distance = haversine_km(reference, candidate)
        if distance < best_distance:
            best_distance = distance
            best_index = idx
    return best_index


def nearest_point(reference: GeoPoint, points: Sequence[GeoPoint]) -> GeoPoint | None:
    idx = nearest_point_index(reference, points)
    if idx < 0:
        return None
    return points[idx]


def jittered_line(center: GeoPoint, delta: float) -> tuple[GeoPoint, GeoPoint, GeoPoint]:
    return (
        center.offset(-delta, -delta),
        center,
        center.offset(delta, delta),
    )
