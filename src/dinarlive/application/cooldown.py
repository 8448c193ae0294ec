# src/dinarlive/application/cooldown.py
"""
Cooldown Gate - Manual Refresh Throttling

Refuses manual refresh requests made within a fixed window of the last
permitted one. The last refresh instant is persisted so the window
survives restarts. Requests during the window are no-ops: they neither
trigger a fetch nor reset the timer.

Files that USE this module:
- dinarlive.application.orchestrator (gates request_manual_refresh)
- tests.test_cooldown (unit tests)

Files that this module USES:
- dinarlive.adapters.persistence.file_store (last manual refresh record)
- dinarlive.domain.models (RefreshState)
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from dinarlive.adapters.persistence.file_store import LAST_MANUAL_REFRESH_KEY, FileStore
from dinarlive.domain.errors import StoreError
from dinarlive.domain.models import RefreshState

logger = logging.getLogger(__name__)


def _load_instant(raw: object) -> Optional[datetime]:
    if not isinstance(raw, str):
        return None
    try:
        ts = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


class CooldownGate:
    """Tracks the last manual refresh and the cooldown window."""

    def __init__(self, store: FileStore, window: timedelta = timedelta(minutes=5)):
        """
        Initialize cooldown gate and load the persisted refresh instant.

        Args:
            store: Persistent store holding the last manual refresh record
            window: Minimum time between two manual refreshes
        """
        self.store = store
        raw = store.get(LAST_MANUAL_REFRESH_KEY)
        last = _load_instant(raw)
        if raw is not None and last is None:
            logger.warning("Ignoring unreadable last manual refresh record: %r", raw)
        self._state = RefreshState(last_manual_refresh=last, cooldown=window)

    @property
    def state(self) -> RefreshState:
        return self._state

    def can_refresh(self, now: datetime) -> bool:
        last = self._state.last_manual_refresh
        return last is None or now - last >= self._state.cooldown

    def record_refresh(self, now: datetime) -> None:
        """Remember now as the last manual refresh and persist it."""
        self._state = RefreshState(last_manual_refresh=now, cooldown=self._state.cooldown)
        try:
            self.store.set(LAST_MANUAL_REFRESH_KEY, now.isoformat())
        except StoreError as e:
            # The in-memory window still applies for this process
            logger.error("Failed to persist manual refresh time: %s", e)

    def seconds_remaining(self, now: datetime) -> int:
        return self._state.seconds_remaining(now)
