import asyncio
import random
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import pytest

from earthlord.backend import BackendError
from earthlord.catalog import ItemCatalog
from earthlord.location import AuthorizationStatus, LocationSource
from earthlord.models import RewardTier, StopReason
from earthlord.rewards import RewardGenerator
from earthlord.sampler import SampleDecision, SamplerConfig
from earthlord.session import ExplorationService, ExplorationState


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, 8, 0, tzinfo=UTC)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@dataclass
class FakeBackend:
    fail_save: bool = False
    fail_inventory: bool = False
    sessions: list = field(default_factory=list)
    inventory: list = field(default_factory=list)

    def fetch_item_definitions(self):
        return []

    def save_exploration_session(self, record):
        if self.fail_save:
            raise BackendError("HTTP 500")
        self.sessions.append(record)
        return f"sess-{len(self.sessions)}"

    def add_inventory_items(self, items, *, source_type, source_session_id):
        if self.fail_inventory:
            raise BackendError("HTTP 409")
        self.inventory.append((list(items), source_type, source_session_id))


def _service(status=AuthorizationStatus.AUTHORIZED_WHEN_IN_USE, backend=None, config=None):
    clock = FakeClock()
    location = LocationSource(status)
    rewards = RewardGenerator(ItemCatalog(), rng=random.Random(5), clock=clock)
    service = ExplorationService(location, rewards, backend=backend, sampler_config=config, clock=clock)
    return service, location, clock


def _walk(service, location, clock, make_fix, n, step_m=12.0):
    # Straight line, 12 m every 10 s (~4.3 km/h); never comes back to the start.
    for i in range(n):
        location.update(make_fix(0, step_m * i, t_s=10 * i))
        assert service.sample_once() is SampleDecision.ACCEPTED
        clock.advance(10)


def test_start_without_permission_fails():
    service, location, _ = _service(status=AuthorizationStatus.NOT_DETERMINED)
    assert not service.start_exploration()
    assert service.state is ExplorationState.FAILED
    assert service.failure_message == "需要定位权限"
    # the location source is left alone
    assert not location.is_updating
    assert not location.permission_requested
    assert service.track.point_count == 0


def test_start_twice_is_a_no_op(make_fix):
    service, location, clock = _service()
    assert service.start_exploration()
    assert location.is_updating
    _walk(service, location, clock, make_fix, 3)

    assert not service.start_exploration()
    assert service.state is ExplorationState.EXPLORING
    assert service.track.point_count == 3


def test_stop_when_idle_returns_none():
    service, _, _ = _service()
    assert service.stop_exploration() is None
    assert service.state is ExplorationState.IDLE


def test_sampling_outside_a_session_is_inactive(make_fix):
    service, location, _ = _service()
    location.update(make_fix())
    assert service.sample_once() is SampleDecision.INACTIVE
    assert service.track.point_count == 0


def test_full_exploration_is_rewarded_and_saved(make_fix):
    backend = FakeBackend()
    service, location, clock = _service(backend=backend)
    states = []
    service.add_listener(lambda s: states.append(s.state))

    service.start_exploration()
    _walk(service, location, clock, make_fix, 20)
    assert service.current_distance_m == pytest.approx(228.0, rel=1e-3)
    assert service.current_duration_s == pytest.approx(200.0)

    result = service.stop_exploration()
    assert result is not None
    assert result.is_success
    assert result.message == "探索成功！"
    assert result.tier is RewardTier.BRONZE
    assert result.experience == 22
    assert len(result.items) == 1
    assert result.point_count == 20
    assert result.stop_reason is StopReason.MANUAL
    assert result.stats.duration_s == pytest.approx(200.0)
    assert result.stats.duration_mmss == "03:20"
    assert result.stats.distance_rank == "铜级"
    assert result.enclosed_area_m2 == 0.0
    assert result.session_id == "sess-1"

    assert service.state is ExplorationState.COMPLETED
    assert service.latest_result is result
    assert service.last_error is None
    assert ExplorationState.PROCESSING in states
    assert states[-1] is ExplorationState.COMPLETED

    record = backend.sessions[0]
    assert record.point_count == 20
    assert record.items_count == 1
    assert record.reward_tier is RewardTier.BRONZE
    assert record.duration_s == 200
    items, source_type, session_id = backend.inventory[0]
    assert source_type == "exploration"
    assert session_id == "sess-1"
    assert [i.item_id for i in items] == [i.item_id for i in result.items]


def test_short_walk_gets_no_reward(make_fix):
    backend = FakeBackend()
    service, location, clock = _service(backend=backend)
    service.start_exploration()
    _walk(service, location, clock, make_fix, 5)

    result = service.stop_exploration()
    assert not result.is_success
    assert result.tier is RewardTier.NONE
    assert result.items == ()
    assert result.experience == 0
    assert result.message == "行走距离不足200米，未获得奖励"
    assert len(backend.sessions) == 1
    assert backend.inventory == []


def test_backend_failure_still_returns_result(make_fix):
    backend = FakeBackend(fail_save=True)
    service, location, clock = _service(backend=backend)
    service.start_exploration()
    _walk(service, location, clock, make_fix, 20)

    result = service.stop_exploration()
    assert result.tier is RewardTier.BRONZE
    assert result.session_id is None
    assert service.last_error.startswith("保存探索记录失败")
    assert backend.inventory == []
    assert service.state is ExplorationState.COMPLETED


def test_inventory_failure_keeps_session_id(make_fix):
    backend = FakeBackend(fail_inventory=True)
    service, location, clock = _service(backend=backend)
    service.start_exploration()
    _walk(service, location, clock, make_fix, 20)

    result = service.stop_exploration()
    assert result.session_id == "sess-1"
    assert service.last_error.startswith("物品存入背包失败")


def test_cancel_discards_the_session(make_fix):
    backend = FakeBackend()
    service, location, clock = _service(backend=backend)
    service.start_exploration()
    _walk(service, location, clock, make_fix, 4)

    service.cancel_exploration()
    assert service.state is ExplorationState.IDLE
    assert service.track.point_count == 0
    assert service.current_duration_s == 0.0
    assert backend.sessions == []


def test_restart_after_completion_resets_track(make_fix):
    service, location, clock = _service()
    service.start_exploration()
    _walk(service, location, clock, make_fix, 4)
    service.stop_exploration()

    assert service.start_exploration()
    assert service.track.point_count == 0
    assert service.latest_result is None


def test_ticker_finishes_on_overspeed(make_fix):
    service, location, _ = _service(config=SamplerConfig(sample_interval_s=0.01))
    far = make_fix(0, 500, t_s=10)

    def feed(s):
        # After the first point is in, jump 500 m in 10 s.
        if s.is_exploring and s.track.point_count == 1 and not s.track.stopped:
            location.update(far)

    service.add_listener(feed)
    location.update(make_fix())
    service.start_exploration()

    async def scenario():
        return await asyncio.wait_for(service.start_ticker(), timeout=5)

    result = asyncio.run(scenario())
    assert result is not None
    assert result.stop_reason is StopReason.OVERSPEED
    assert result.tier is RewardTier.NONE
    assert service.state is ExplorationState.COMPLETED
    assert "探索已停止" in service.speed_warning


def test_manual_stop_cancels_the_ticker(make_fix):
    service, location, _ = _service(config=SamplerConfig(sample_interval_s=0.01))
    location.update(make_fix())
    service.start_exploration()

    async def scenario():
        task = service.start_ticker()
        await asyncio.sleep(0.05)
        result = service.stop_exploration()
        with pytest.raises(asyncio.CancelledError):
            await task
        return result

    result = asyncio.run(scenario())
    assert result.stop_reason is StopReason.MANUAL
    assert result.point_count == 1


@dataclass
class SlowBackend(FakeBackend):
    delay_s: float = 0.3

    def save_exploration_session(self, record):
        time.sleep(self.delay_s)
        return super().save_exploration_session(record)


def test_ticker_keeps_the_loop_free_while_saving(make_fix):
    backend = SlowBackend()
    service, location, _ = _service(backend=backend, config=SamplerConfig(sample_interval_s=0.01))
    far = make_fix(0, 500, t_s=10)

    def feed(s):
        if s.is_exploring and s.track.point_count == 1 and not s.track.stopped:
            location.update(far)

    service.add_listener(feed)
    location.update(make_fix())
    service.start_exploration()

    async def scenario():
        loop = asyncio.get_running_loop()
        beats = []

        async def heartbeat():
            while True:
                beats.append(loop.time())
                await asyncio.sleep(0.01)

        pulse = asyncio.ensure_future(heartbeat())
        try:
            result = await asyncio.wait_for(service.start_ticker(), timeout=5)
        finally:
            pulse.cancel()
        gaps = [b - a for a, b in zip(beats, beats[1:])]
        return result, gaps

    result, gaps = asyncio.run(scenario())
    assert result.session_id == "sess-1"
    assert len(backend.sessions) == 1
    assert service.state is ExplorationState.COMPLETED
    assert max(gaps) < backend.delay_s / 2


def test_finish_matches_stop(make_fix):
    backend = FakeBackend()
    service, location, clock = _service(backend=backend)
    service.start_exploration()
    _walk(service, location, clock, make_fix, 20)

    result = asyncio.run(service.finish())
    assert result.tier is RewardTier.BRONZE
    assert result.session_id == "sess-1"
    assert len(backend.inventory) == 1
    assert asyncio.run(service.finish()) is None
