"""
Geographic helpers — great-circle distance and bounding-box pre-filter.

The bounding box is a cheap rectangular approximation used to prune
candidates (in the database query or in memory) before the exact Haversine
check. It only ever over-approximates; acceptance is always decided by
within_radius().
"""

from __future__ import annotations

import math
from dataclasses import dataclass

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE = 111.0


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    def contains(self, lat: float, lng: float) -> bool:
        return (
            self.min_lat <= lat <= self.max_lat
            and self.min_lng <= lng <= self.max_lng
        )


def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine distance in kilometres on a sphere of radius 6371 km."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lng / 2) ** 2
    )
    # Rounding can push a marginally above 1 for antipodal points
    a = min(1.0, max(0.0, a))
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def within_radius(
    lat1: float, lng1: float, lat2: float, lng2: float, radius_km: float
) -> bool:
    return distance_km(lat1, lng1, lat2, lng2) <= radius_km


def bounding_box(lat: float, lng: float, radius_km: float) -> BoundingBox:
    """Rectangle that contains every point within *radius_km* of (lat, lng).

    ±radius/111° of latitude and ±radius/(111·cos(lat))° of longitude, with
    cos taken at the box edge farthest from the equator. Near the poles, or
    when the box would cross the antimeridian, the longitude span widens to
    the whole globe.
    """
    d_lat = radius_km / KM_PER_DEGREE
    min_lat = max(-90.0, lat - d_lat)
    max_lat = min(90.0, lat + d_lat)

    cos_lat = math.cos(math.radians(max(abs(min_lat), abs(max_lat))))
    if min_lat <= -90.0 or max_lat >= 90.0 or cos_lat <= 1e-9:
        return BoundingBox(min_lat, max_lat, -180.0, 180.0)

    d_lng = radius_km / (KM_PER_DEGREE * cos_lat)
    min_lng = lng - d_lng
    max_lng = lng + d_lng
    if min_lng < -180.0 or max_lng > 180.0:
        min_lng, max_lng = -180.0, 180.0
    return BoundingBox(min_lat, max_lat, min_lng, max_lng)
