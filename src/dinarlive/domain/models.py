# src/dinarlive/domain/models.py
"""
Domain Models - Pure Business Objects

This module contains the domain models of the rate engine:
- Rate snapshots (IQD per USD plus secondary cross rates)
- History points for the primary currency
- Citations (web sources the provider grounded its answer on)
- Refresh/cooldown state and the published engine state

All models are immutable; a new instance replaces the old one wholesale.

Files that USE this module:
- dinarlive.adapters.ai.* (parsing builds snapshots, history and citations)
- dinarlive.application.* (services publish and persist these models)
- tests.* (tests use domain models for test data)

Files that this module USES:
- None (pure domain layer, no external dependencies)
"""

from __future__ import annotations  # Enable postponed evaluation of annotations

import math
from dataclasses import dataclass, field, replace  # Immutable data classes
from datetime import date, datetime, timedelta, timezone  # Date/time utilities for timestamps
from enum import Enum
from typing import Any, Optional  # Type hints for optional values

from dinarlive.domain.errors import FailureReason

# Secondary currency code -> RateSnapshot attribute
SECONDARY_CURRENCIES = {
    "EUR": "eur_per_usd",
    "TRY": "try_per_usd",
    "GBP": "gbp_per_usd",
    "IRT": "irt_per_usd",
}


def _parse_ts(raw: Any) -> datetime:
    # Accept both "...Z" and "+00:00"
    if not isinstance(raw, str):
        raise ValueError(f"timestamp must be an ISO string, got {type(raw).__name__}")
    ts = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _optional_rate(data: dict, key: str) -> float:
    value = data.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    try:
        value = float(value)
    except OverflowError:
        return 0.0
    return value if math.isfinite(value) and value > 0 else 0.0


@dataclass(frozen=True)
class RateSnapshot:
    """
    Complete set of exchange rates acquired in one fetch.

    Attributes:
        iqd: Iraqi Dinar per 1 USD (always > 0)
        eur_per_usd: Euro per 1 USD (0.0 = unavailable)
        try_per_usd: Turkish Lira per 1 USD (0.0 = unavailable)
        gbp_per_usd: Pound Sterling per 1 USD (0.0 = unavailable)
        irt_per_usd: Iranian Toman per 1 USD (0.0 = unavailable)
        updated: UTC time the snapshot was acquired
    """
    iqd: float
    eur_per_usd: float
    try_per_usd: float
    gbp_per_usd: float
    irt_per_usd: float
    updated: datetime

    def is_available(self, currency: str) -> bool:
        """Return True if the given secondary currency (e.g. "EUR") has a usable rate."""
        attr = SECONDARY_CURRENCIES.get(currency.upper())
        if attr is None:
            raise KeyError(f"Unknown currency: {currency}")
        return getattr(self, attr) > 0

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - self.updated).total_seconds()

    def to_json(self) -> dict:
        return {
            "iqd": self.iqd,
            "eurPerUsd": self.eur_per_usd,
            "tryPerUsd": self.try_per_usd,
            "gbpPerUsd": self.gbp_per_usd,
            "irtPerUsd": self.irt_per_usd,
            "updated": self.updated.isoformat(),
        }

    @staticmethod
    def from_json(data: dict) -> "RateSnapshot":
        """
        Create RateSnapshot from its persisted JSON form.

        Records written by older versions stored "usdPerEur" instead of
        "eurPerUsd"; it is inverted on load.

        Raises:
            ValueError, KeyError, TypeError, OverflowError: if the record is unusable
        """
        if not isinstance(data, dict):
            raise TypeError("snapshot record must be an object")
        iqd = data["iqd"]
        if isinstance(iqd, bool) or not isinstance(iqd, (int, float)) or not iqd > 0:
            raise ValueError(f"invalid iqd rate in cached snapshot: {iqd!r}")

        eur_per_usd = _optional_rate(data, "eurPerUsd")
        if not eur_per_usd and "usdPerEur" in data:
            usd_per_eur = _optional_rate(data, "usdPerEur")
            eur_per_usd = 1 / usd_per_eur if usd_per_eur else 0.0

        iqd = float(iqd)
        if not math.isfinite(iqd):
            raise ValueError(f"invalid iqd rate in cached snapshot: {iqd!r}")

        return RateSnapshot(
            iqd=iqd,
            eur_per_usd=eur_per_usd,
            try_per_usd=_optional_rate(data, "tryPerUsd"),
            gbp_per_usd=_optional_rate(data, "gbpPerUsd"),
            irt_per_usd=_optional_rate(data, "irtPerUsd"),
            updated=_parse_ts(data["updated"]),
        )


@dataclass(frozen=True, order=True)
class HistoryPoint:
    """
    One historical value of the primary currency.

    Attributes:
        date: Calendar day of the observation
        rate: IQD per 100 USD
    """
    date: date
    rate: float

    def to_json(self) -> dict:
        return {"date": self.date.isoformat(), "rate": self.rate}


@dataclass(frozen=True)
class Citation:
    """A web source the provider cited for its answer."""
    uri: str
    title: str

    def to_json(self) -> dict:
        return {"web": {"uri": self.uri, "title": self.title}}

    @staticmethod
    def from_json(data: Any) -> Optional["Citation"]:
        """Read the persisted {"web": {"uri", "title"}} shape; None if incomplete."""
        if not isinstance(data, dict):
            return None
        web = data.get("web", data)
        if not isinstance(web, dict):
            return None
        uri, title = web.get("uri"), web.get("title")
        if not isinstance(uri, str) or not isinstance(title, str) or not uri or not title:
            return None
        return Citation(uri=uri, title=title)


@dataclass(frozen=True)
class FetchResult:
    """Validated output of a single successful provider attempt."""
    snapshot: RateSnapshot
    history: tuple[HistoryPoint, ...] = ()
    citations: tuple[Citation, ...] = ()


@dataclass(frozen=True)
class RefreshState:
    """
    Manual refresh bookkeeping.

    Attributes:
        last_manual_refresh: When the last permitted manual refresh started
        cooldown: Minimum time between two manual refreshes
    """
    last_manual_refresh: Optional[datetime]
    cooldown: timedelta

    def seconds_remaining(self, now: datetime) -> int:
        if self.last_manual_refresh is None:
            return 0
        remaining = self.cooldown - (now - self.last_manual_refresh)
        return max(0, math.ceil(remaining.total_seconds()))


class EngineStatus(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    RETRYING = "retrying"
    ERRORED = "errored"


@dataclass(frozen=True)
class EngineState:
    """
    State published to consumers (read-only copy).

    Attributes:
        rate: Current snapshot, or None before the first successful fetch
        sources: Citations of the current snapshot
        history: Primary-currency history, newest first
        is_loading: True while a fetch cycle is in flight
        error: FAILED_AFTER_RETRIES while a failure is active, else None
        cooldown_remaining: Seconds until a manual refresh is allowed again
        status: Orchestrator state machine position
        attempt: Attempt number of the in-flight cycle (0 when idle)
        last_failure_reason: Classification of the most recent failed attempt
    """
    rate: Optional[RateSnapshot] = None
    sources: tuple[Citation, ...] = ()
    history: tuple[HistoryPoint, ...] = ()
    is_loading: bool = False
    error: Optional[str] = None
    cooldown_remaining: int = 0
    status: EngineStatus = EngineStatus.IDLE
    attempt: int = 0
    last_failure_reason: Optional[FailureReason] = field(default=None)

    def evolve(self, **changes: Any) -> "EngineState":
        return replace(self, **changes)
