"""Track sampling: filter location fixes into a down-sampled track."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum

from earthlord.closure import is_loop_closed
from earthlord.geo import haversine_m, speed_kmh
from earthlord.models import LocationFix, StopReason, Track, TrackPoint

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SamplerConfig:
    """Thresholds controlling which fixes become track points."""

    # Fixes with accuracy above this (or negative) are dropped.
    min_accuracy_m: float = 50.0
    # A fix this far from the last point is treated as a GPS glitch.
    max_jump_distance_m: float = 100.0
    min_time_interval_s: float = 1.0
    # Density control: closer fixes are not retained.
    min_distance_for_new_point_m: float = 10.0
    # Cadence of the sampling ticker. The sampler itself never looks at it.
    sample_interval_s: float = 3.0
    speed_warning_kmh: float = 15.0
    speed_stop_kmh: float = 30.0
    closure_distance_m: float = 30.0
    minimum_path_points: int = 10

    def __post_init__(self) -> None:
        for name in (
            "min_accuracy_m",
            "max_jump_distance_m",
            "min_time_interval_s",
            "min_distance_for_new_point_m",
            "closure_distance_m",
        ):
            value = getattr(self, name)
            if math.isnan(value) or value < 0:
                raise ValueError(f"{name} must be >= 0, got {value!r}")
        if self.sample_interval_s <= 0:
            raise ValueError(f"sample_interval_s must be > 0, got {self.sample_interval_s!r}")
        if self.speed_stop_kmh < self.speed_warning_kmh:
            raise ValueError(
                f"speed_stop_kmh ({self.speed_stop_kmh}) must not be below "
                f"speed_warning_kmh ({self.speed_warning_kmh})"
            )
        if self.minimum_path_points < 2:
            raise ValueError(f"minimum_path_points must be >= 2, got {self.minimum_path_points!r}")


class SampleDecision(str, Enum):
    """What happened to one offered fix."""

    ACCEPTED = "accepted"
    CLOSED = "closed"
    NO_FIX = "no_fix"
    INACTIVE = "inactive"
    INVALID_FIX = "invalid_fix"
    BAD_ACCURACY = "bad_accuracy"
    SPEED_WARNING = "speed_warning"
    SPEED_STOP = "speed_stop"
    TOO_SOON = "too_soon"
    JUMP = "jump"
    TOO_CLOSE = "too_close"

    @property
    def retained(self) -> bool:
        return self in (SampleDecision.ACCEPTED, SampleDecision.CLOSED)


class TrackSampler:
    """Fold location fixes into a :class:`Track`.

    Each call to :meth:`offer` is one sampling tick and runs to completion:
    filter, accept or reject, then closure check. Rejected fixes are simply
    dropped; nothing is retried and nothing raises.
    """

    def __init__(self, config: SamplerConfig | None = None) -> None:
        self._cfg = config or SamplerConfig()
        self._track = Track()

    @property
    def config(self) -> SamplerConfig:
        return self._cfg

    @property
    def track(self) -> Track:
        return self._track

    def reset(self) -> None:
        """Discard the current track and start an empty one."""

        self._track = Track()

    def stop(self, reason: StopReason = StopReason.MANUAL) -> None:
        """Freeze the track. Idempotent: the first reason wins."""

        if self._track.stopped:
            return
        self._track.stopped = True
        self._track.stop_reason = reason
        logger.info(
            "轨迹停止：reason=%s points=%s distance=%.1fm",
            reason.value,
            self._track.point_count,
            self._track.distance_m,
        )

    def offer(self, fix: LocationFix | None) -> SampleDecision:
        """Run one sampling tick with the freshest fix.

        Args:
            fix: Latest known fix, or None if the location service has none yet.

        Returns:
            The decision taken for this fix.
        """

        track = self._track
        cfg = self._cfg
        if fix is None:
            return SampleDecision.NO_FIX
        if track.stopped:
            return SampleDecision.INACTIVE

        lat, lon = fix.latitude, fix.longitude
        if not (math.isfinite(lat) and math.isfinite(lon)) or abs(lat) > 90 or abs(lon) > 180:
            logger.debug("坐标无效：(%s, %s)，跳过", lat, lon)
            return SampleDecision.INVALID_FIX

        acc = fix.horizontal_accuracy_m
        if math.isnan(acc) or acc < 0 or acc > cfg.min_accuracy_m:
            logger.debug("精度不足：%sm，跳过", acc)
            return SampleDecision.BAD_ACCURACY

        last = track.last_point
        if last is None:
            self._accept(fix, increment_m=0.0)
            return SampleDecision.ACCEPTED

        distance = haversine_m(last.latitude, last.longitude, fix.latitude, fix.longitude)
        elapsed_s = (fix.timestamp_ms - last.timestamp_ms) / 1000.0
        speed = speed_kmh(distance, elapsed_s)
        track.last_speed_kmh = speed

        if speed > cfg.speed_stop_kmh:
            track.speed_warning = f"速度过快（{speed:.1f} km/h），探索已停止"
            logger.warning("速度 %.1f km/h 超过 %.1f km/h，强制停止", speed, cfg.speed_stop_kmh)
            self.stop(StopReason.OVERSPEED)
            return SampleDecision.SPEED_STOP
        if speed > cfg.speed_warning_kmh:
            track.speed_warning = f"速度过快（{speed:.1f} km/h），请步行探索"
            logger.info("速度 %.1f km/h 超过 %.1f km/h，跳过该点", speed, cfg.speed_warning_kmh)
            return SampleDecision.SPEED_WARNING
        track.speed_warning = None

        if elapsed_s < cfg.min_time_interval_s:
            logger.debug("时间间隔不足：%.3fs，跳过", elapsed_s)
            return SampleDecision.TOO_SOON
        if distance > cfg.max_jump_distance_m:
            logger.debug("位置跳变过大：%.1fm，跳过", distance)
            return SampleDecision.JUMP
        if distance < cfg.min_distance_for_new_point_m:
            logger.debug("距离过近：%.1fm，跳过", distance)
            return SampleDecision.TOO_CLOSE

        self._accept(fix, increment_m=distance)
        if is_loop_closed(track.points, cfg.closure_distance_m, cfg.minimum_path_points):
            track.closed = True
            self.stop(StopReason.CLOSED)
            return SampleDecision.CLOSED
        return SampleDecision.ACCEPTED

    def _accept(self, fix: LocationFix, *, increment_m: float) -> None:
        point = TrackPoint.from_fix(fix)
        track = self._track
        track.points.append(point)
        track.distance_m += increment_m
        track.last_point = point
        logger.debug(
            "采点 #%s，距离增加 %.1fm，总计 %.1fm",
            track.point_count,
            increment_m,
            track.distance_m,
        )
