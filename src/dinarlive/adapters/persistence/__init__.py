"""
Persistence Adapters - Data Storage

This package contains adapters for persisting engine records as JSON files.
"""

from dinarlive.adapters.persistence.file_store import (
    CACHED_HISTORY_KEY,
    CACHED_RATE_KEY,
    CACHED_SOURCES_KEY,
    LAST_MANUAL_REFRESH_KEY,
    FileStore,
)

__all__ = [
    "FileStore",
    "CACHED_RATE_KEY",
    "CACHED_SOURCES_KEY",
    "CACHED_HISTORY_KEY",
    "LAST_MANUAL_REFRESH_KEY",
]
