# src/dinarlive/application/retry.py
"""
Retry Controller - Bounded Retry with Constant Delay

Runs one provider attempt at a time and retries retryable failures
(malformed reply, invalid payload, transport failure) after a fixed delay.
The delay is constant: the provider's failure modes are not load related.

Files that USE this module:
- dinarlive.application.orchestrator (wraps every fetch cycle)
- tests.test_retry (unit tests)

Files that this module USES:
- dinarlive.domain.errors (ProviderError, FetchFailedAfterRetries)
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from dinarlive.domain.errors import FetchFailedAfterRetries, ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryCallback = Callable[[int, ProviderError], None]


class RetryController:
    """Execute an async operation with up to max_attempts tries."""

    def __init__(
        self,
        max_attempts: int = 3,
        delay_seconds: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize retry controller.

        Args:
            max_attempts: Total number of attempts per cycle (first try included)
            delay_seconds: Fixed wait between two attempts
            sleep: Awaitable sleep function (injectable for tests)
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        on_retry: Optional[RetryCallback] = None,
    ) -> T:
        """
        Run operation until it succeeds or attempts are exhausted.

        Args:
            operation: Zero-argument coroutine function performing one attempt
            on_retry: Called with (failed_attempt_number, error) before each delay

        Returns:
            The operation's result

        Raises:
            FetchFailedAfterRetries: every attempt raised a ProviderError
        """
        last_error: Optional[ProviderError] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except ProviderError as e:
                last_error = e
                logger.warning(
                    "Attempt %d/%d failed (%s): %s",
                    attempt, self.max_attempts, type(e).__name__, e,
                )
                if attempt == self.max_attempts:
                    break
                if on_retry is not None:
                    on_retry(attempt, e)
                await self._sleep(self.delay_seconds)

        logger.error("All %d attempts failed, giving up until the next cycle", self.max_attempts)
        raise FetchFailedAfterRetries(self.max_attempts, last_error) from last_error
