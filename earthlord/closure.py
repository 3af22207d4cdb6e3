"""Loop closure detection for exploration tracks."""

from __future__ import annotations

from typing import Sequence

from earthlord.geo import is_inside_circle
from earthlord.models import TrackPoint


def is_loop_closed(
    points: Sequence[TrackPoint],
    closure_distance_m: float,
    minimum_path_points: int,
) -> bool:
    """Check whether the newest point has come back near the first one.

    Args:
        points: Retained points, oldest first.
        closure_distance_m: Max distance (inclusive) between newest and first point.
        minimum_path_points: Closure is never reported below this many points.

    Returns:
        True if the track forms a closed loop.
    """

    if len(points) < max(2, minimum_path_points):
        return False
    first = points[0]
    last = points[-1]
    return is_inside_circle(last.latitude, last.longitude, first.latitude, first.longitude, closure_distance_m)
