"""
Shared Utilities - Cross-cutting Concerns

This package contains shared utilities used across all layers:
- Validation
- Logging configuration
"""

from dinarlive.shared.validators import (
    parse_history_date,
    positive_number,
    validate_api_key,
    validate_http_url,
)

__all__ = [
    "validate_api_key",
    "validate_http_url",
    "positive_number",
    "parse_history_date",
]
