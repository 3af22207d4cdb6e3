"""Geospatial utilities (no external dependencies)."""

from __future__ import annotations

import math
from typing import Sequence

from earthlord.models import TrackPoint

EARTH_RADIUS_M = 6_371_000.0  # mean Earth radius in meters


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute Haversine distance in meters between two lat/lon points.

    Args:
        lat1: Latitude 1 in degrees.
        lon1: Longitude 1 in degrees.
        lat2: Latitude 2 in degrees.
        lon2: Longitude 2 in degrees.

    Returns:
        Distance in meters.
    """

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


def distance_between(a: TrackPoint, b: TrackPoint) -> float:
    """Haversine distance between two track points."""

    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)


def is_inside_circle(
    lat: float,
    lon: float,
    center_lat: float,
    center_lon: float,
    radius_m: float,
) -> bool:
    """Check whether a point is inside or on the boundary of a circle."""

    return haversine_m(lat, lon, center_lat, center_lon) <= radius_m


def path_length_m(points: Sequence[TrackPoint]) -> float:
    """Sum of great-circle distances between consecutive points."""

    total = 0.0
    for i in range(1, len(points)):
        total += distance_between(points[i - 1], points[i])
    return total


def speed_kmh(distance_m: float, elapsed_s: float) -> float:
    """Implied speed in km/h; 0 when no time has elapsed."""

    if elapsed_s <= 0:
        return 0.0
    return distance_m / elapsed_s * 3.6


def polygon_area_m2(points: Sequence[TrackPoint]) -> float:
    """Approximate area enclosed by a ring of points, in square meters.

    Points are projected onto a local equirectangular plane centred on their
    mean position, then the shoelace formula is applied. Good enough for the
    few-hundred-meter loops a player walks; not meant for large polygons.
    """

    if len(points) < 3:
        return 0.0

    lat0 = sum(p.latitude for p in points) / len(points)
    lon0 = sum(p.longitude for p in points) / len(points)
    k_lat = math.radians(1.0) * EARTH_RADIUS_M
    k_lon = k_lat * math.cos(math.radians(lat0))
    xy = [((p.longitude - lon0) * k_lon, (p.latitude - lat0) * k_lat) for p in points]

    twice_area = 0.0
    for i, (x1, y1) in enumerate(xy):
        x2, y2 = xy[(i + 1) % len(xy)]
        twice_area += x1 * y2 - x2 * y1
    return abs(twice_area) / 2.0
