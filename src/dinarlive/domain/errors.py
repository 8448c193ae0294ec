# src/dinarlive/domain/errors.py
"""
Domain Errors - Business Logic Exceptions

This module defines the exceptions raised while acquiring rate data.
The three ProviderError subclasses are retryable and never reach the
client directly; FetchFailedAfterRetries is the single terminal error
that is surfaced as FAILED_AFTER_RETRIES.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

FAILED_AFTER_RETRIES = "FAILED_AFTER_RETRIES"


class FailureReason(str, Enum):
    """Coarse classification of why a provider attempt failed (diagnostics only)."""
    API_KEY = "API_KEY"
    FETCH = "FETCH"
    PARSE = "PARSE"
    UNKNOWN = "UNKNOWN"


class DomainError(Exception):
    """Base exception for domain errors."""
    pass


class ProviderError(DomainError):
    """Base class for retryable failures of a single provider attempt."""

    reason: FailureReason = FailureReason.UNKNOWN

    def __init__(self, message: str, reason: Optional[FailureReason] = None):
        super().__init__(message)
        if reason is not None:
            self.reason = reason


class MalformedResponseError(ProviderError):
    """Raised when no JSON object can be located or parsed in the provider reply."""
    reason = FailureReason.PARSE


class InvalidPayloadError(ProviderError):
    """Raised when the JSON is present but a required field is missing, mistyped or implausible."""
    reason = FailureReason.PARSE


class TransportFailureError(ProviderError):
    """Raised when the network call or the provider itself fails outright."""
    reason = FailureReason.FETCH


class FetchFailedAfterRetries(DomainError):
    """Raised when every attempt of a fetch cycle failed."""

    code = FAILED_AFTER_RETRIES

    def __init__(self, attempts: int, last_error: ProviderError):
        super().__init__(f"Fetch failed after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class StoreError(DomainError):
    """Raised when a record cannot be written to the persistent store."""
    pass
