# src/dinarlive/adapters/persistence/file_store.py
"""
File Store - Durable Key/Value Storage

This module persists engine records as one JSON file per key inside the
data directory, so each record can be read and written independently and
survives process restarts. Writes are atomic (temp file + rename).

Reading tolerates every broken state: a missing file is a cold start, an
unparsable file is backed up to "<key>.json.corrupt" and treated as absent.

Files that USE this module:
- dinarlive.application.state_manager (rate, sources and history records)
- dinarlive.application.cooldown (last manual refresh record)
- dinarlive.application.health (store read/write probe)
- dinarlive.app (creates the store from settings)

Files that this module USES:
- dinarlive.domain.errors (StoreError on write failure)
"""
from __future__ import annotations

import json
import logging
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import Any, Optional

from dinarlive.domain.errors import StoreError

log = logging.getLogger(__name__)

# Record keys
CACHED_RATE_KEY = "cached_rate"
CACHED_SOURCES_KEY = "cached_sources"
CACHED_HISTORY_KEY = "cached_history"
LAST_MANUAL_REFRESH_KEY = "last_manual_refresh"

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class FileStore:
    """JSON-file backed key/value store."""

    def __init__(self, data_dir: Path):
        """
        Initialize file store.

        Args:
            data_dir: Directory holding one <key>.json file per record
        """
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not _KEY_RE.match(key):
            raise ValueError(f"Invalid store key: {key!r}")
        return self.data_dir / f"{key}.json"

    def get(self, key: str) -> Optional[Any]:
        """
        Load a record.

        Returns:
            The decoded JSON value, or None if the record is absent or corrupt
        """
        p = self._path(key)
        if not p.exists():
            return None

        try:
            with p.open("r", encoding="utf-8") as f:
                return json.load(f)
        except ValueError as e:
            # Invalid JSON, bad encoding or an over-long integer literal
            self._quarantine(p, e)
            return None
        except OSError as e:
            log.error("Failed to read store record %s: %s", key, e)
            return None

    def _quarantine(self, p: Path, error: Exception) -> None:
        backup_path = p.with_suffix(".json.corrupt")
        try:
            shutil.copy2(p, backup_path)
            p.unlink()
            log.warning("Store record %s corrupted, backed up to %s: %s", p.name, backup_path, error)
        except OSError as backup_error:
            log.error("Failed to back up corrupt store record %s: %s", p.name, backup_error)

    def set(self, key: str, value: Any) -> None:
        """
        Save a record using an atomic write.

        Raises:
            StoreError: if the record cannot be serialized or written
        """
        p = self._path(key)
        temp_fd, temp_path = tempfile.mkstemp(
            suffix=".json.tmp",
            dir=str(self.data_dir),
            text=True,
        )

        try:
            with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
                json.dump(value, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())

            os.replace(temp_path, str(p))
        except (OSError, TypeError, ValueError) as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise StoreError(f"Failed to save store record {key}: {e}") from e
        log.debug("Saved store record %s", key)

    def delete(self, key: str) -> None:
        p = self._path(key)
        try:
            p.unlink()
        except FileNotFoundError:
            pass
