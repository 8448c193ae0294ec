# src/dinarlive/domain/__init__.py
"""
Domain Layer - Pure Business Objects

This package contains domain models and business rules.
No dependencies on infrastructure or external systems.
"""

from dinarlive.domain.models import (
    Citation,
    EngineState,
    EngineStatus,
    FetchResult,
    HistoryPoint,
    RateSnapshot,
    RefreshState,
)
from dinarlive.domain.errors import (
    FAILED_AFTER_RETRIES,
    DomainError,
    FailureReason,
    FetchFailedAfterRetries,
    InvalidPayloadError,
    MalformedResponseError,
    ProviderError,
    StoreError,
    TransportFailureError,
)

__all__ = [
    "RateSnapshot",
    "HistoryPoint",
    "Citation",
    "FetchResult",
    "RefreshState",
    "EngineState",
    "EngineStatus",
    "FAILED_AFTER_RETRIES",
    "FailureReason",
    "DomainError",
    "ProviderError",
    "MalformedResponseError",
    "InvalidPayloadError",
    "TransportFailureError",
    "FetchFailedAfterRetries",
    "StoreError",
]
