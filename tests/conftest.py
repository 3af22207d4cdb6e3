import math

import pytest

from earthlord.geo import EARTH_RADIUS_M
from earthlord.models import LocationFix

ORIGIN_LAT = 31.2304
ORIGIN_LON = 121.4737
T0_MS = 1_767_225_600_000  # 2026-01-01T00:00:00Z


def offset(north_m, east_m, lat0=ORIGIN_LAT, lon0=ORIGIN_LON):
    k = math.radians(1.0) * EARTH_RADIUS_M
    return lat0 + north_m / k, lon0 + east_m / (k * math.cos(math.radians(lat0)))


@pytest.fixture
def make_fix():
    """Fix at (north, east) meters from the origin, ``t_s`` seconds after T0."""

    def _make(north_m=0.0, east_m=0.0, t_s=0.0, accuracy=5.0):
        lat, lon = offset(north_m, east_m)
        return LocationFix(
            latitude=lat,
            longitude=lon,
            horizontal_accuracy_m=accuracy,
            timestamp_ms=T0_MS + int(round(t_s * 1000)),
        )

    return _make


@pytest.fixture
def loop_fixes(make_fix):
    # 12 fixes on a 40 m circle, 30 degrees apart, 20 s apart (~3.7 km/h).
    # The first fix sits on the circle, so the ring starts and ends there.
    radius = 40.0
    out = []
    for i in range(12):
        angle = math.radians(30.0 * i)
        east = radius * math.cos(angle) - radius
        north = radius * math.sin(angle)
        out.append(make_fix(north, east, t_s=20.0 * i))
    return out
