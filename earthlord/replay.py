"""Offline replay of recorded fixes through the sampler and the exploration service."""

from __future__ import annotations

import logging
import math
import random
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, Sequence

from earthlord.backend import ExplorationBackend
from earthlord.catalog import ItemCatalog
from earthlord.geo import polygon_area_m2
from earthlord.location import AuthorizationStatus, LocationSource
from earthlord.models import ExplorationResult, LocationFix, Track
from earthlord.rewards import RewardGenerator
from earthlord.sampler import SampleDecision, SamplerConfig, TrackSampler
from earthlord.session import ExplorationService
from earthlord.timeutils import utc_from_epoch_ms

logger = logging.getLogger(__name__)


def iter_ticks(fixes: Sequence[LocationFix], sample_interval_s: float) -> Iterator[tuple[int, LocationFix]]:
    """Replay a fix stream on the sampling cadence (last value wins).

    Ticks run every ``sample_interval_s`` starting at the first fix. At each
    tick the latest fix received so far is read; fixes superseded before the
    next tick are never seen. Ticks where the slot still holds the fix read on
    the previous tick are not yielded, since offering the same fix twice can
    never retain it.

    Args:
        fixes: Fixes sorted by timestamp.
        sample_interval_s: Ticker period in seconds.

    Yields:
        (tick epoch ms, fix read at that tick)
    """

    if sample_interval_s <= 0:
        raise ValueError(f"sample_interval_s must be > 0, got {sample_interval_s!r}")
    if not fixes:
        return

    step_ms = sample_interval_s * 1000.0
    start_ms = fixes[0].timestamp_ms
    i = 0
    n = len(fixes)
    while i < n:
        k = math.ceil((fixes[i].timestamp_ms - start_ms) / step_ms)
        tick_ms = start_ms + k * step_ms
        while i + 1 < n and fixes[i + 1].timestamp_ms <= tick_ms:
            i += 1
        yield int(tick_ms), fixes[i]
        i += 1


@dataclass(slots=True)
class ReplayResult:
    """Track produced by a replay plus per-decision counters."""

    track: Track
    ticks: int = 0
    decisions: Counter[SampleDecision] = field(default_factory=Counter)

    @property
    def enclosed_area_m2(self) -> float:
        return polygon_area_m2(self.track.points) if self.track.closed else 0.0


def replay_track(
    fixes: Sequence[LocationFix],
    config: SamplerConfig | None = None,
    *,
    use_ticker: bool = True,
) -> ReplayResult:
    """Fold recorded fixes through a fresh sampler.

    Args:
        fixes: Fixes sorted by timestamp.
        config: Sampler thresholds.
        use_ticker: If False, every fix is offered (no cadence down-sampling).

    Returns:
        ReplayResult. Fixes after the track stops are not offered.
    """

    sampler = TrackSampler(config)
    result = ReplayResult(track=sampler.track)
    if use_ticker:
        stream: Iterator[LocationFix] = (fx for _, fx in iter_ticks(fixes, sampler.config.sample_interval_s))
    else:
        stream = iter(fixes)

    for fx in stream:
        decision = sampler.offer(fx)
        result.ticks += 1
        result.decisions[decision] += 1
        if sampler.track.stopped:
            break

    logger.info(
        "回放完成：ticks=%s points=%s distance=%.1fm closed=%s",
        result.ticks,
        sampler.track.point_count,
        sampler.track.distance_m,
        sampler.track.closed,
    )
    return result


def replay_exploration(
    fixes: Sequence[LocationFix],
    *,
    config: SamplerConfig | None = None,
    catalog: ItemCatalog | None = None,
    backend: ExplorationBackend | None = None,
    seed: int | None = None,
) -> tuple[ExplorationService, ExplorationResult | None]:
    """Run a whole exploration over recorded fixes.

    The service clock follows the tick times, so start/end times and duration
    match the recording. The session ends on closure, overspeed, or when the
    fixes run out.

    Returns:
        (service, result). The service exposes ``last_error`` and ``speed_warning``.
    """

    cfg = config or SamplerConfig()
    now_ms = {"value": fixes[0].timestamp_ms if fixes else 0}

    def clock() -> datetime:
        return utc_from_epoch_ms(now_ms["value"])

    location = LocationSource(AuthorizationStatus.AUTHORIZED_WHEN_IN_USE)
    rewards = RewardGenerator(catalog or ItemCatalog(), rng=random.Random(seed), clock=clock)
    service = ExplorationService(location, rewards, backend=backend, sampler_config=cfg, clock=clock)

    service.start_exploration()
    for tick_ms, fx in iter_ticks(fixes, cfg.sample_interval_s):
        now_ms["value"] = tick_ms
        location.update(fx)
        service.sample_once()
        if service.track.stopped:
            break
    return service, service.stop_exploration()
