"""
Shared fixtures: temporary store, controllable clock, fake provider and
retry controllers that do not really sleep.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional
from unittest.mock import AsyncMock

import pytest

from dinarlive.adapters.ai.parsing import parse_payload
from dinarlive.adapters.persistence.file_store import FileStore
from dinarlive.application.orchestrator import RateEngine
from dinarlive.application.retry import RetryController
from dinarlive.domain.errors import TransportFailureError

SCENARIO_REPLY = (
    '{"current":{"iqdPer100Usd":146000,"eurPerUsd":0.91,"tryPerUsd":33.8,"gbpPerUsd":0.78,"irtPerUsd":0},'
    '"history":[{"date":"2024-01-02","rate":145800},{"date":"2024-01-01","rate":145500}]}'
)

T0 = datetime(2024, 1, 3, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeProvider:
    """Returns (or raises) queued outcomes, then the default outcome."""

    def __init__(self, outcomes=None, default=None):
        self.outcomes = list(outcomes or [])
        self.default = default
        self.calls = 0
        self.gate: Optional[asyncio.Event] = None

    async def fetch(self):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if outcome is None:
            raise TransportFailureError("no outcome configured")
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def store(tmp_path):
    return FileStore(tmp_path / "data")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def retry():
    return RetryController(max_attempts=3, delay_seconds=2.0, sleep=AsyncMock())


@pytest.fixture
def scenario_result(clock):
    return parse_payload(SCENARIO_REPLY, min_iqd_per_100_usd=50000, now=clock.now)


@pytest.fixture
def make_engine(store, clock, retry):
    def factory(provider, **kwargs):
        kwargs.setdefault("fetch_interval_seconds", 7200)
        kwargs.setdefault("cooldown", timedelta(minutes=5))
        kwargs.setdefault("retry", retry)
        kwargs.setdefault("clock", clock)
        return RateEngine(provider, store, **kwargs)
    return factory
