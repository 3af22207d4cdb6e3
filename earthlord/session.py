"""Exploration lifecycle: start, sample, stop, reward, persist.

The service owns one :class:`TrackSampler` and at most one active session.
All track mutation happens on the caller's sequencing context (one tick at a
time); the asyncio ticker only decides *when* ticks run.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Callable

from earthlord.backend import BackendError, ExplorationBackend, SessionRecord
from earthlord.geo import polygon_area_m2
from earthlord.location import LocationSource
from earthlord.models import (
    CollectedItem,
    ExplorationResult,
    ExplorationStats,
    RewardTier,
    StopReason,
    Track,
)
from earthlord.rewards import RewardGenerator
from earthlord.sampler import SampleDecision, SamplerConfig, TrackSampler

logger = logging.getLogger(__name__)

Listener = Callable[["ExplorationService"], None]


class ExplorationState(str, Enum):
    IDLE = "idle"
    EXPLORING = "exploring"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class _Closing:
    """Track figures frozen at stop time, before rewards and persistence."""

    start_time: datetime
    end_time: datetime
    duration_s: float
    distance_m: float
    point_count: int
    tier: RewardTier

    def record(self, items: list[CollectedItem]) -> SessionRecord:
        return SessionRecord(
            started_at=self.start_time,
            ended_at=self.end_time,
            duration_s=int(self.duration_s),
            total_distance_m=self.distance_m,
            point_count=self.point_count,
            reward_tier=self.tier,
            items_count=len(items),
        )


class ExplorationService:
    """Runs explorations for one player."""

    def __init__(
        self,
        location: LocationSource,
        rewards: RewardGenerator,
        backend: ExplorationBackend | None = None,
        sampler_config: SamplerConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._location = location
        self._rewards = rewards
        self._backend = backend
        self._sampler = TrackSampler(sampler_config)
        self._clock = clock or (lambda: datetime.now(UTC))

        self._state = ExplorationState.IDLE
        self.failure_message: str | None = None
        self.last_error: str | None = None
        self.latest_result: ExplorationResult | None = None
        self._start_time: datetime | None = None
        self._ticker_task: asyncio.Task | None = None
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------
    @property
    def state(self) -> ExplorationState:
        return self._state

    @property
    def is_exploring(self) -> bool:
        return self._state is ExplorationState.EXPLORING

    @property
    def track(self) -> Track:
        return self._sampler.track

    @property
    def current_distance_m(self) -> float:
        return self._sampler.track.distance_m

    @property
    def speed_warning(self) -> str | None:
        return self._sampler.track.speed_warning

    @property
    def current_duration_s(self) -> float:
        if self._start_time is None:
            return 0.0
        return max(0.0, (self._clock() - self._start_time).total_seconds())

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _set_state(self, state: ExplorationState, failure: str | None = None) -> None:
        self._state = state
        self.failure_message = failure
        logger.info("探索状态 → %s%s", state.value, f"（{failure}）" if failure else "")
        self._notify()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start_exploration(self) -> bool:
        """Begin a new session.

        Returns:
            False when a session is already running or location access is missing.
        """

        if self._state not in (ExplorationState.IDLE, ExplorationState.COMPLETED, ExplorationState.FAILED):
            logger.warning("当前状态不允许开始探索：%s", self._state.value)
            return False
        if not self._location.is_authorized:
            self._set_state(ExplorationState.FAILED, "需要定位权限")
            return False

        self._reset()
        self._start_time = self._clock()
        if not self._location.is_updating:
            self._location.start_updating()
        self._set_state(ExplorationState.EXPLORING)
        return True

    def sample_once(self) -> SampleDecision:
        """One sampling tick: offer the freshest fix to the sampler."""

        if not self.is_exploring:
            return SampleDecision.INACTIVE
        decision = self._sampler.offer(self._location.latest())
        if decision is SampleDecision.NO_FIX:
            logger.debug("当前位置为空，跳过采点")
        self._notify()
        return decision

    def stop_exploration(self) -> ExplorationResult | None:
        """Finish the session and compute its rewards.

        Backend failures are recorded in :attr:`last_error`; the result is
        returned regardless. The catalog load and backend writes run on the
        calling thread; inside an event loop use :meth:`finish` instead.
        """

        closing = self._begin_stop()
        if closing is None:
            return None
        items = self._roll_items(closing.tier)
        session_id = self._persist(closing.record(items), items)
        return self._complete(closing, items, session_id)

    async def finish(self) -> ExplorationResult | None:
        """Like :meth:`stop_exploration`, with blocking I/O moved off the loop."""

        closing = self._begin_stop()
        if closing is None:
            return None
        loop = asyncio.get_running_loop()
        items = await loop.run_in_executor(None, self._roll_items, closing.tier)
        session_id = await loop.run_in_executor(None, self._persist, closing.record(items), items)
        return self._complete(closing, items, session_id)

    def _begin_stop(self) -> _Closing | None:
        if not self.is_exploring:
            logger.info("当前未在探索状态")
            return None

        self._cancel_ticker()
        self._sampler.stop(StopReason.MANUAL)
        self._set_state(ExplorationState.PROCESSING)

        track = self._sampler.track
        end_time = self._clock()
        start_time = self._start_time or end_time
        distance = track.distance_m
        return _Closing(
            start_time=start_time,
            end_time=end_time,
            duration_s=max(0.0, (end_time - start_time).total_seconds()),
            distance_m=distance,
            point_count=track.point_count,
            tier=self._rewards.config.tier_for(distance),
        )

    def _roll_items(self, tier: RewardTier) -> list[CollectedItem]:
        if tier is RewardTier.NONE:
            return []
        return self._rewards.generate(tier)

    def _complete(
        self,
        closing: _Closing,
        items: list[CollectedItem],
        session_id: str | None,
    ) -> ExplorationResult:
        track = self._sampler.track
        config = self._rewards.config
        tier = closing.tier
        distance = closing.distance_m

        if tier is RewardTier.NONE:
            message = f"行走距离不足{config.min_reward_distance_m:.0f}米，未获得奖励"
        else:
            message = "探索成功！"

        result = ExplorationResult(
            is_success=tier is not RewardTier.NONE,
            message=message,
            tier=tier,
            items=tuple(items),
            experience=config.experience_for(tier, distance),
            distance_m=distance,
            stats=ExplorationStats(
                total_distance_m=distance,
                duration_s=closing.duration_s,
                points_verified=closing.point_count,
                distance_rank=tier.display_name,
            ),
            start_time=closing.start_time,
            end_time=closing.end_time,
            stop_reason=track.stop_reason or StopReason.MANUAL,
            enclosed_area_m2=polygon_area_m2(track.points) if track.closed else 0.0,
            session_id=session_id,
        )
        self.latest_result = result
        logger.info(
            "探索完成，距离 %.1fm，等级 %s，物品 %s 个",
            distance,
            tier.value,
            len(items),
        )
        self._set_state(ExplorationState.COMPLETED)
        return result

    def cancel_exploration(self) -> None:
        """Abort without saving anything."""

        if not self.is_exploring:
            return
        logger.info("取消探索")
        self._cancel_ticker()
        self._reset()
        self._set_state(ExplorationState.IDLE)

    def _reset(self) -> None:
        self._sampler.reset()
        self._start_time = None
        self.latest_result = None
        self.last_error = None

    def _persist(self, record: SessionRecord, items: list[CollectedItem]) -> str | None:
        if self._backend is None:
            return None
        try:
            session_id = self._backend.save_exploration_session(record)
        except BackendError as exc:
            logger.error("保存探索记录失败：%s", exc)
            self.last_error = f"保存探索记录失败：{exc}"
            return None
        if items:
            try:
                self._backend.add_inventory_items(
                    items,
                    source_type="exploration",
                    source_session_id=session_id,
                )
            except BackendError as exc:
                logger.error("物品存入背包失败：%s", exc)
                self.last_error = f"物品存入背包失败：{exc}"
        return session_id

    # ------------------------------------------------------------------
    # Ticker
    # ------------------------------------------------------------------
    def start_ticker(self) -> asyncio.Task:
        """Schedule periodic sampling on the running event loop.

        The task's result is the :class:`ExplorationResult` when the track
        stops by itself (closure or overspeed). Stopping or cancelling the
        session from outside cancels the task.
        """

        self._cancel_ticker()
        self._ticker_task = asyncio.ensure_future(self.run_ticker())
        return self._ticker_task

    async def run_ticker(self) -> ExplorationResult | None:
        interval = self._sampler.config.sample_interval_s
        while self.is_exploring and not self.track.stopped:
            await asyncio.sleep(interval)
            if not self.is_exploring:
                return None
            self.sample_once()

        if not self.is_exploring:
            return None
        # Track stopped on its own; finish without cancelling ourselves.
        self._ticker_task = None
        return await self.finish()

    def _cancel_ticker(self) -> None:
        if self._ticker_task and not self._ticker_task.done():
            self._ticker_task.cancel()
        self._ticker_task = None
