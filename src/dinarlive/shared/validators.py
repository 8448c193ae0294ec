# src/dinarlive/shared/validators.py
"""
Input Validation Utilities - Configuration and Payload Field Validation

This module provides the small validation helpers shared across layers:
configuration checks (API keys, URLs) and the per-field rules applied to
values coming back from the AI data provider (positive numbers, dates).

Files that USE this module:
- dinarlive.config.settings (field validators)
- dinarlive.adapters.ai.parsing (payload field rules)
- dinarlive.application.state_manager (cached history record checks)

Files that this module USES:
- None (pure utility functions)
"""
import math
import re
from datetime import date, datetime, timezone
from typing import Any, Optional


def validate_api_key(api_key: str, min_length: int = 10) -> bool:
    """
    Validate API key format.

    Args:
        api_key: API key to validate
        min_length: Minimum length requirement

    Returns:
        True if valid, False otherwise
    """
    if not api_key:
        return False

    return len(api_key) >= min_length and not api_key.isspace() and " " not in api_key.strip()


def validate_http_url(url: str) -> bool:
    """Return True for an absolute http(s) URL."""
    if not url:
        return False
    return bool(re.match(r"^https?://[^\s/$.?#][^\s]*$", url))


def positive_number(value: Any) -> Optional[float]:
    """
    Accept a value only if it is a real, finite number strictly above zero.

    Booleans and numeric strings are rejected: the provider is asked for
    JSON numbers, so anything else is treated as a malformed field.

    Args:
        value: Raw JSON value

    Returns:
        The value as float, or None if it does not qualify
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except (OverflowError, ValueError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return number


def parse_history_date(value: Any) -> Optional[date]:
    """
    Parse a history entry date.

    Accepts a calendar day ("2024-01-02") or an ISO-8601 instant
    ("2024-01-02T10:00:00Z"); instants are normalized to their UTC day.

    Returns:
        datetime.date or None if the value is not a real date
    """
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        instant = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if instant.tzinfo is not None:
        instant = instant.astimezone(timezone.utc)
    return instant.date()
