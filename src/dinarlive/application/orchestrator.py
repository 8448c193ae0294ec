# src/dinarlive/application/orchestrator.py
"""
Rate Engine - Fetch Orchestration and Published State

This module drives rate acquisition. It decides when to fetch (startup
without cached data, a periodic timer, permitted manual requests), runs
each fetch cycle through the retry controller, reconciles and persists
the result, and publishes an immutable EngineState to consumers.

State machine:
    IDLE/ERRORED -> FETCHING        startup, periodic tick, permitted manual request
    FETCHING -> IDLE                valid snapshot published and persisted
    FETCHING -> RETRYING -> FETCHING  attempt failed, attempts remain
    RETRYING -> ERRORED             attempts exhausted (FAILED_AFTER_RETRIES)

Only one fetch cycle may be in flight. Periodic ticks and manual requests
that arrive while a cycle is running are dropped, and a failed cycle never
clears a previously published snapshot.

Files that USE this module:
- dinarlive.app (builds and runs the engine)
- dinarlive.application.health (reads engine state)
- tests.test_orchestrator (unit tests)

Files that this module USES:
- dinarlive.application.retry (RetryController)
- dinarlive.application.cooldown (CooldownGate)
- dinarlive.application.state_manager (StateManager for cached records)
- dinarlive.application.reconciler (citation and history cleanup)
- dinarlive.config (default intervals and retry policy)
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Protocol

from dinarlive.adapters.persistence.file_store import FileStore
from dinarlive.application.cooldown import CooldownGate
from dinarlive.application.reconciler import dedupe_citations, reconcile_history
from dinarlive.application.retry import RetryController
from dinarlive.application.state_manager import StateManager
from dinarlive.config import settings
from dinarlive.domain.errors import (
    FAILED_AFTER_RETRIES,
    FailureReason,
    FetchFailedAfterRetries,
    ProviderError,
)
from dinarlive.domain.models import EngineState, EngineStatus, FetchResult

logger = logging.getLogger(__name__)

StateListener = Callable[[EngineState], None]


class RateSource(Protocol):
    """Anything that performs one provider attempt (ProviderClient in production)."""
    async def fetch(self) -> FetchResult:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RateEngine:
    """Owns the engine state, the persistent records and the refresh timers."""

    def __init__(
        self,
        provider: RateSource,
        store: FileStore,
        *,
        fetch_interval_seconds: Optional[float] = None,
        cooldown: Optional[timedelta] = None,
        retry: Optional[RetryController] = None,
        tick_seconds: float = 1.0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize the engine and seed state from the persistent store.

        Args:
            provider: Rate source performing single fetch attempts
            store: Persistent store for cached data and cooldown records
            fetch_interval_seconds: Periodic refresh interval (defaults to settings)
            cooldown: Manual refresh cooldown window (defaults to settings)
            retry: Retry controller (defaults to settings' attempts and delay)
            tick_seconds: Interval of the cooldown display tick
            clock: Returns the current aware UTC datetime
        """
        self.provider = provider
        self.fetch_interval_seconds = fetch_interval_seconds or settings.fetch_interval_seconds
        self.tick_seconds = tick_seconds
        self.retry = retry or RetryController(
            max_attempts=settings.retry_max_attempts,
            delay_seconds=settings.retry_delay_seconds,
        )
        self._clock = clock
        self.state_manager = StateManager(store)
        self.cooldown = CooldownGate(
            store,
            cooldown if cooldown is not None else timedelta(seconds=settings.refresh_cooldown_seconds),
        )

        # Re-entrancy protection: only one fetch cycle at a time
        self._fetch_lock = asyncio.Lock()
        self._listeners: list[StateListener] = []
        self._tasks: list[asyncio.Task] = []

        cached = self.state_manager.load()
        self._state = EngineState(
            rate=cached.rate,
            sources=cached.sources,
            history=cached.history,
            cooldown_remaining=self.cooldown.seconds_remaining(self._clock()),
        )

    # ------------------------------------------------------------------
    # Published state
    # ------------------------------------------------------------------

    def get_state(self) -> EngineState:
        """Return the current state (an immutable snapshot)."""
        return self._state

    @property
    def fetch_in_progress(self) -> bool:
        return self._fetch_lock.locked()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a listener called with every newly published state.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, **changes: Any) -> None:
        new_state = self._state.evolve(**changes)
        if new_state == self._state:
            return
        self._state = new_state
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception as e:
                logger.error("State listener %r failed: %s", listener, e, exc_info=True)

    # ------------------------------------------------------------------
    # Refresh entry points
    # ------------------------------------------------------------------

    async def refresh(self) -> bool:
        """
        Run one fetch cycle unless one is already in flight (periodic tick path).

        Returns:
            True if the cycle produced a new snapshot
        """
        if self.fetch_in_progress:
            logger.warning("Refresh skipped: previous fetch cycle still running")
            return False
        return await self._run_cycle("periodic")

    async def request_manual_refresh(self) -> bool:
        """
        Handle a user refresh request.

        The request is dropped if a cycle is in flight, and ignored (without
        resetting the timer) while the cooldown window is active.

        Returns:
            True if the cycle produced a new snapshot
        """
        if self.fetch_in_progress:
            logger.info("Manual refresh ignored: a fetch cycle is already in progress")
            return False

        now = self._clock()
        if not self.cooldown.can_refresh(now):
            logger.warning(
                "Manual refresh ignored due to active cooldown (%ds remaining)",
                self.cooldown.seconds_remaining(now),
            )
            return False

        self.cooldown.record_refresh(now)
        self._publish(cooldown_remaining=self.cooldown.seconds_remaining(now))
        return await self._run_cycle("manual")

    async def _run_cycle(self, trigger: str) -> bool:
        async with self._fetch_lock:
            logger.info("Starting %s fetch cycle", trigger)
            self._publish(status=EngineStatus.FETCHING, is_loading=True, attempt=0)

            async def attempt_once() -> FetchResult:
                self._publish(status=EngineStatus.FETCHING, attempt=self._state.attempt + 1)
                return await self.provider.fetch()

            def on_retry(attempt: int, error: ProviderError) -> None:
                self._publish(status=EngineStatus.RETRYING, last_failure_reason=error.reason)

            try:
                result = await self.retry.run(attempt_once, on_retry=on_retry)
            except FetchFailedAfterRetries as e:
                # Previous snapshot, sources and history stay visible
                self._publish(
                    status=EngineStatus.ERRORED,
                    is_loading=False,
                    error=FAILED_AFTER_RETRIES,
                    attempt=0,
                    last_failure_reason=e.last_error.reason,
                )
                logger.error("%s fetch cycle failed: %s", trigger.capitalize(), e)
                return False
            except asyncio.CancelledError:
                self._publish(
                    status=EngineStatus.ERRORED if self._state.error else EngineStatus.IDLE,
                    is_loading=False,
                    attempt=0,
                )
                raise
            except Exception:
                # error is reserved for exhausted retries; leave it unchanged
                logger.exception("Unexpected error during %s fetch cycle", trigger)
                self._publish(
                    status=EngineStatus.ERRORED if self._state.error else EngineStatus.IDLE,
                    is_loading=False,
                    attempt=0,
                    last_failure_reason=FailureReason.UNKNOWN,
                )
                raise

            sources = dedupe_citations(result.citations)
            history = reconcile_history(result.history)
            self.state_manager.save(result.snapshot, sources, history)
            self._publish(
                rate=result.snapshot,
                sources=sources,
                history=history,
                status=EngineStatus.IDLE,
                is_loading=False,
                error=None,
                attempt=0,
                last_failure_reason=None,
            )
            logger.info("%s fetch cycle succeeded: iqd=%.2f", trigger.capitalize(), result.snapshot.iqd)
            return True

    # ------------------------------------------------------------------
    # Lifecycle and timers
    # ------------------------------------------------------------------

    async def _periodic_loop(self) -> None:
        while True:
            await asyncio.sleep(self.fetch_interval_seconds)
            try:
                await self.refresh()
            except Exception:
                logger.exception("Periodic refresh failed unexpectedly")

    def _update_cooldown(self) -> None:
        self._publish(cooldown_remaining=self.cooldown.seconds_remaining(self._clock()))

    async def _cooldown_loop(self) -> None:
        while True:
            await asyncio.sleep(self.tick_seconds)
            self._update_cooldown()

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        """
        Start the periodic refresh and cooldown tick tasks.

        When no cached snapshot exists, an initial fetch cycle runs before
        this coroutine returns; otherwise the cached data is shown as-is
        until the first periodic tick or manual refresh.
        """
        if self._tasks:
            logger.warning("Engine already started")
            return

        self._tasks = [
            asyncio.create_task(self._periodic_loop(), name="dinarlive-periodic-refresh"),
            asyncio.create_task(self._cooldown_loop(), name="dinarlive-cooldown-tick"),
        ]
        logger.info(
            "Engine started: refresh every %.0f minutes, cooldown %ds",
            self.fetch_interval_seconds / 60, int(self.cooldown.state.cooldown.total_seconds()),
        )

        if self._state.rate is None and not self.fetch_in_progress:
            try:
                await self._run_cycle("startup")
            except BaseException:
                await self.stop()
                raise

    async def stop(self) -> None:
        """Cancel the timer tasks and wait for them to finish."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.info("Engine stopped")

    async def __aenter__(self) -> "RateEngine":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()
