"""Inspect recorded fixes before replaying them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from earthlord.geo import haversine_m, speed_kmh
from earthlord.models import LocationFix
from earthlord.timeutils import DeltaStats, delta_stats


@dataclass(frozen=True, slots=True)
class InspectResult:
    """High-level fix inspection result."""

    fixes: int
    min_time_ms: int | None
    max_time_ms: int | None
    delta: DeltaStats | None
    min_lat: float | None
    max_lat: float | None
    min_lon: float | None
    max_lon: float | None
    duplicates_time: int
    invalid_accuracy: int
    poor_accuracy: int
    max_speed_kmh: float


def inspect_fixes(fixes: Sequence[LocationFix], min_accuracy_m: float = 50.0) -> InspectResult:
    """Summarize already-loaded fixes.

    ``invalid_accuracy`` counts negative accuracies; ``poor_accuracy`` counts
    those above ``min_accuracy_m``. ``max_speed_kmh`` is the fastest implied
    speed between consecutive fixes (in time order).
    """

    if not fixes:
        return InspectResult(
            fixes=0,
            min_time_ms=None,
            max_time_ms=None,
            delta=None,
            min_lat=None,
            max_lat=None,
            min_lon=None,
            max_lon=None,
            duplicates_time=0,
            invalid_accuracy=0,
            poor_accuracy=0,
            max_speed_kmh=0.0,
        )

    ordered = sorted(fixes, key=lambda fx: fx.timestamp_ms)
    times = [fx.timestamp_ms for fx in ordered]
    dupe = sum(1 for i in range(1, len(times)) if times[i] == times[i - 1])

    max_speed = 0.0
    for prev, cur in zip(ordered, ordered[1:]):
        d = haversine_m(prev.latitude, prev.longitude, cur.latitude, cur.longitude)
        max_speed = max(max_speed, speed_kmh(d, cur.timestamp_s - prev.timestamp_s))

    lats = [fx.latitude for fx in fixes]
    lons = [fx.longitude for fx in fixes]
    return InspectResult(
        fixes=len(fixes),
        min_time_ms=times[0],
        max_time_ms=times[-1],
        delta=delta_stats(times),
        min_lat=min(lats),
        max_lat=max(lats),
        min_lon=min(lons),
        max_lon=max(lons),
        duplicates_time=dupe,
        invalid_accuracy=sum(1 for fx in fixes if fx.horizontal_accuracy_m < 0),
        poor_accuracy=sum(1 for fx in fixes if fx.horizontal_accuracy_m > min_accuracy_m),
        max_speed_kmh=max_speed,
    )
