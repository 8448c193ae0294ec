"""
Rate Engine Tests - Fetch Orchestration, State Machine and Timers

Exercises the engine end to end with a fake provider, a temporary store
and a controllable clock: stale-but-available behaviour, retries, the
manual refresh cooldown, the in-flight guard and the timer tasks.

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- dinarlive.application.orchestrator (RateEngine)
- dinarlive.adapters.persistence.file_store (record keys)
- tests.conftest (FakeProvider, FakeClock, scenario reply)
"""
import asyncio
from datetime import date
from unittest.mock import patch

import pytest

from dinarlive.adapters.ai.parsing import parse_payload
from dinarlive.adapters.persistence.file_store import CACHED_HISTORY_KEY, CACHED_RATE_KEY, FileStore
from dinarlive.domain.errors import (
    FAILED_AFTER_RETRIES,
    FailureReason,
    InvalidPayloadError,
    MalformedResponseError,
    StoreError,
    TransportFailureError,
)
from dinarlive.domain.models import EngineStatus, RateSnapshot

from conftest import SCENARIO_REPLY, T0, FakeProvider


@pytest.fixture
def cached_snapshot(store):
    snap = RateSnapshot(
        iqd=1460.0, eur_per_usd=0.92, try_per_usd=34.1, gbp_per_usd=0.0, irt_per_usd=0.0, updated=T0,
    )
    store.set(CACHED_RATE_KEY, snap.to_json())
    return snap


def _statuses(states):
    out = []
    for state in states:
        if not out or out[-1] != state.status:
            out.append(state.status)
    return out


async def _wait_until(predicate, timeout=1.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0)
    await asyncio.wait_for(poll(), timeout)


class ReplyProvider:
    """Runs queued raw replies through the real parser."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = 0

    async def fetch(self):
        self.calls += 1
        return parse_payload(self.replies.pop(0), min_iqd_per_100_usd=50000, now=T0)


class TestInitialState:
    def test_seeded_from_store(self, make_engine, cached_snapshot):
        engine = make_engine(FakeProvider())
        state = engine.get_state()

        assert state.rate == cached_snapshot
        assert state.status == EngineStatus.IDLE
        assert not state.is_loading
        assert state.error is None

    def test_cold_start(self, make_engine):
        state = make_engine(FakeProvider()).get_state()
        assert state.rate is None
        assert state.sources == ()
        assert state.history == ()


class TestFetchCycle:
    @pytest.mark.asyncio
    async def test_successful_fetch_publishes_and_persists(self, make_engine, store, scenario_result):
        provider = FakeProvider(default=scenario_result)
        engine = make_engine(provider)

        assert await engine.refresh() is True

        state = engine.get_state()
        assert state.rate.iqd == 1460.0
        assert not state.rate.is_available("IRT")
        assert [p.date for p in state.history] == [date(2024, 1, 2), date(2024, 1, 1)]
        assert state.status == EngineStatus.IDLE
        assert state.error is None
        assert not state.is_loading
        assert store.get(CACHED_RATE_KEY)["iqd"] == 1460.0
        assert store.get(CACHED_HISTORY_KEY)[0] == {"date": "2024-01-02", "rate": 145800.0}

    @pytest.mark.asyncio
    async def test_stale_snapshot_survives_exhausted_retries(self, make_engine, cached_snapshot):
        provider = FakeProvider(outcomes=[TransportFailureError("down")] * 3)
        engine = make_engine(provider)

        assert await engine.refresh() is False

        state = engine.get_state()
        assert provider.calls == 3
        assert state.status == EngineStatus.ERRORED
        assert state.error == FAILED_AFTER_RETRIES
        assert state.rate == cached_snapshot
        assert not state.is_loading
        assert state.last_failure_reason == FailureReason.FETCH

    @pytest.mark.asyncio
    async def test_first_cycle_failure_leaves_no_rate(self, make_engine):
        engine = make_engine(FakeProvider(outcomes=[MalformedResponseError("prose only")] * 3))

        await engine.refresh()

        state = engine.get_state()
        assert state.rate is None
        assert state.error == FAILED_AFTER_RETRIES
        assert state.last_failure_reason == FailureReason.PARSE

    @pytest.mark.asyncio
    async def test_retry_transitions_and_attempt_bound(self, make_engine, scenario_result):
        provider = FakeProvider(outcomes=[InvalidPayloadError("iqd missing")], default=scenario_result)
        engine = make_engine(provider)
        states = []
        engine.subscribe(states.append)

        assert await engine.refresh() is True

        assert _statuses(states) == [
            EngineStatus.FETCHING, EngineStatus.RETRYING, EngineStatus.FETCHING, EngineStatus.IDLE,
        ]
        assert max(s.attempt for s in states) == 2
        assert provider.calls == 2

    @pytest.mark.asyncio
    async def test_errored_once_per_cycle_then_waits(self, make_engine, retry):
        provider = FakeProvider(outcomes=[TransportFailureError("down")] * 3)
        engine = make_engine(provider)
        states = []
        engine.subscribe(states.append)

        await engine.refresh()

        assert sum(1 for s in _statuses(states) if s == EngineStatus.ERRORED) == 1
        assert max(s.attempt for s in states) == retry.max_attempts
        assert provider.calls == 3
        await asyncio.sleep(0)
        assert provider.calls == 3

    @pytest.mark.asyncio
    async def test_error_clears_on_next_success(self, make_engine, scenario_result):
        provider = FakeProvider(outcomes=[TransportFailureError("down")] * 3, default=scenario_result)
        engine = make_engine(provider)

        await engine.refresh()
        assert engine.get_state().status == EngineStatus.ERRORED

        assert await engine.refresh() is True
        state = engine.get_state()
        assert state.error is None
        assert state.last_failure_reason is None
        assert state.status == EngineStatus.IDLE

    @pytest.mark.asyncio
    async def test_store_failure_still_publishes(self, make_engine, scenario_result):
        engine = make_engine(FakeProvider(default=scenario_result))

        with patch.object(FileStore, "set", side_effect=StoreError("disk full")):
            assert await engine.refresh() is True

        assert engine.get_state().rate.iqd == 1460.0

    @pytest.mark.asyncio
    async def test_oversized_numbers_are_retried(self, make_engine):
        provider = ReplyProvider([
            '{"current": {"iqdPer100Usd": %s}}' % ("9" * 5000),
            '{"current": {"iqdPer100Usd": 146000, "eurPerUsd": %s}}' % ("9" * 400),
            SCENARIO_REPLY,
        ])
        engine = make_engine(provider)

        assert await engine.request_manual_refresh() is True

        state = engine.get_state()
        assert provider.calls == 2
        assert state.rate.iqd == 1460.0
        assert state.rate.eur_per_usd == 0.0
        assert state.error is None

    @pytest.mark.asyncio
    async def test_unexpected_error_is_not_reported_as_exhausted(self, make_engine):
        provider = FakeProvider(outcomes=[RuntimeError("bug")])
        engine = make_engine(provider)

        with pytest.raises(RuntimeError):
            await engine.refresh()

        state = engine.get_state()
        assert provider.calls == 1
        assert state.error is None
        assert state.status == EngineStatus.IDLE
        assert state.last_failure_reason == FailureReason.UNKNOWN
        assert not state.is_loading
        assert not engine.fetch_in_progress

    @pytest.mark.asyncio
    async def test_listener_errors_do_not_break_publishing(self, make_engine, scenario_result):
        engine = make_engine(FakeProvider(default=scenario_result))

        def broken(state):
            raise RuntimeError("render failed")

        engine.subscribe(broken)
        assert await engine.refresh() is True
        assert engine.get_state().rate is not None

    @pytest.mark.asyncio
    async def test_unsubscribe(self, make_engine, scenario_result):
        engine = make_engine(FakeProvider(default=scenario_result))
        states = []
        unsubscribe = engine.subscribe(states.append)
        unsubscribe()

        await engine.refresh()
        assert states == []


class TestManualRefresh:
    @pytest.mark.asyncio
    async def test_second_request_within_cooldown_is_noop(self, make_engine, clock, scenario_result):
        provider = FakeProvider(default=scenario_result)
        engine = make_engine(provider)

        assert await engine.request_manual_refresh() is True
        assert provider.calls == 1
        assert engine.get_state().cooldown_remaining == 300

        clock.advance(10)
        engine._update_cooldown()
        before = engine.get_state()
        assert before.cooldown_remaining == 290

        assert await engine.request_manual_refresh() is False
        assert provider.calls == 1
        assert engine.get_state() == before

        remaining = [before.cooldown_remaining]
        for _ in range(3):
            clock.advance(1)
            engine._update_cooldown()
            remaining.append(engine.get_state().cooldown_remaining)
        assert remaining == [290, 289, 288, 287]

    @pytest.mark.asyncio
    async def test_allowed_again_after_window(self, make_engine, clock, scenario_result):
        provider = FakeProvider(default=scenario_result)
        engine = make_engine(provider)

        await engine.request_manual_refresh()
        clock.advance(300)
        assert await engine.request_manual_refresh() is True
        assert provider.calls == 2

    @pytest.mark.asyncio
    async def test_cooldown_survives_restart(self, make_engine, clock, scenario_result):
        await make_engine(FakeProvider(default=scenario_result)).request_manual_refresh()

        clock.advance(60)
        provider = FakeProvider(default=scenario_result)
        restarted = make_engine(provider)
        assert restarted.get_state().cooldown_remaining == 240
        assert await restarted.request_manual_refresh() is False
        assert provider.calls == 0

    @pytest.mark.asyncio
    async def test_manual_failure_still_consumes_cooldown(self, make_engine, clock):
        provider = FakeProvider(outcomes=[TransportFailureError("down")] * 3)
        engine = make_engine(provider)

        assert await engine.request_manual_refresh() is False
        assert provider.calls == 3
        assert engine.get_state().cooldown_remaining == 300
        assert await engine.request_manual_refresh() is False
        assert provider.calls == 3


class TestInFlightGuard:
    @pytest.mark.asyncio
    async def test_requests_during_fetch_are_dropped(self, make_engine, scenario_result):
        provider = FakeProvider(default=scenario_result)
        provider.gate = asyncio.Event()
        engine = make_engine(provider)

        periodic = asyncio.create_task(engine.refresh())
        await _wait_until(lambda: provider.calls == 1)
        assert engine.fetch_in_progress
        assert engine.get_state().is_loading

        assert await engine.refresh() is False
        assert await engine.request_manual_refresh() is False
        # the dropped manual request did not start a cooldown
        assert engine.get_state().cooldown_remaining == 0
        assert engine.cooldown.state.last_manual_refresh is None

        provider.gate.set()
        assert await periodic is True
        assert provider.calls == 1
        assert not engine.fetch_in_progress

    @pytest.mark.asyncio
    async def test_periodic_tick_during_manual_retry_is_dropped(self, make_engine, scenario_result):
        provider = FakeProvider(outcomes=[TransportFailureError("down")], default=scenario_result)
        engine = make_engine(provider)
        release = asyncio.Event()

        async def slow_sleep(seconds):
            await release.wait()

        engine.retry._sleep = slow_sleep

        manual = asyncio.create_task(engine.request_manual_refresh())
        await _wait_until(lambda: engine.get_state().status == EngineStatus.RETRYING)

        assert await engine.refresh() is False
        assert provider.calls == 1

        release.set()
        assert await manual is True
        assert provider.calls == 2


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_fetches_without_cache(self, make_engine, scenario_result):
        provider = FakeProvider(default=scenario_result)
        engine = make_engine(provider, tick_seconds=3600)

        await engine.start()
        try:
            assert engine.running
            assert provider.calls == 1
            assert engine.get_state().rate.iqd == 1460.0
        finally:
            await engine.stop()
        assert not engine.running

    @pytest.mark.asyncio
    async def test_start_with_cache_does_not_fetch(self, make_engine, cached_snapshot, scenario_result):
        provider = FakeProvider(default=scenario_result)

        async with make_engine(provider, tick_seconds=3600) as engine:
            assert engine.get_state().rate == cached_snapshot
            assert provider.calls == 0

    @pytest.mark.asyncio
    async def test_periodic_tick_refreshes(self, make_engine, cached_snapshot, scenario_result):
        provider = FakeProvider(default=scenario_result)

        async with make_engine(provider, fetch_interval_seconds=0.01, tick_seconds=3600):
            await _wait_until(lambda: provider.calls >= 1)

    @pytest.mark.asyncio
    async def test_cooldown_tick_never_fetches(self, make_engine, cached_snapshot, clock):
        provider = FakeProvider()
        engine = make_engine(provider, tick_seconds=0.001)
        engine.cooldown.record_refresh(clock.now)
        states = []
        engine.subscribe(states.append)

        async with engine:
            clock.advance(30)
            await _wait_until(lambda: engine.get_state().cooldown_remaining == 270)

        assert provider.calls == 0
        assert all(s.status == EngineStatus.IDLE for s in states)

    @pytest.mark.asyncio
    async def test_stop_cancels_timers(self, make_engine, cached_snapshot):
        engine = make_engine(FakeProvider(), tick_seconds=3600)
        await engine.start()
        tasks = list(engine._tasks)

        await engine.stop()

        assert all(t.done() for t in tasks)
        await engine.stop()

    @pytest.mark.asyncio
    async def test_failed_startup_cycle_cancels_timers(self, make_engine):
        engine = make_engine(FakeProvider(outcomes=[RuntimeError("bug")]), tick_seconds=3600)

        with pytest.raises(RuntimeError):
            async with engine:
                pass

        assert not engine.running
        leftover = [t for t in asyncio.all_tasks() if t.get_name().startswith("dinarlive-")]
        assert leftover == []
