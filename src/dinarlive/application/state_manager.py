# src/dinarlive/application/state_manager.py
"""
State Manager - Cached Rate Data Persistence

This module owns the three cached data records (rate snapshot, sources,
history). It loads them once at startup so the last known data can be
shown before any network activity, and writes them after every
successful fetch.

Loading never raises: a missing, corrupt or outdated record means "no
cached data" for that record.

Files that USE this module:
- dinarlive.application.orchestrator (seeds and persists engine data)
- tests.test_state_manager (unit tests)

Files that this module USES:
- dinarlive.adapters.persistence.file_store (FileStore and record keys)
- dinarlive.application.reconciler (cleans loaded collections)
- dinarlive.domain.models (RateSnapshot, Citation, HistoryPoint)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from dinarlive.adapters.persistence.file_store import (
    CACHED_HISTORY_KEY,
    CACHED_RATE_KEY,
    CACHED_SOURCES_KEY,
    FileStore,
)
from dinarlive.application.reconciler import dedupe_citations, reconcile_history
from dinarlive.domain.errors import StoreError
from dinarlive.domain.models import Citation, HistoryPoint, RateSnapshot
from dinarlive.shared.validators import parse_history_date, positive_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedData:
    """Rate data as last persisted."""
    rate: Optional[RateSnapshot] = None
    sources: tuple[Citation, ...] = ()
    history: tuple[HistoryPoint, ...] = ()


class StateManager:
    """Loads and persists the cached rate, sources and history records."""

    def __init__(self, store: FileStore):
        self.store = store

    def _load_rate(self) -> Optional[RateSnapshot]:
        data = self.store.get(CACHED_RATE_KEY)
        if data is None:
            return None
        try:
            return RateSnapshot.from_json(data)
        except (KeyError, ValueError, TypeError, OverflowError) as e:
            logger.warning("Cached rate record unusable (schema mismatch?), ignoring: %s", e)
            return None

    def _load_sources(self) -> tuple[Citation, ...]:
        data = self.store.get(CACHED_SOURCES_KEY)
        if not isinstance(data, list):
            return ()
        citations = [c for c in (Citation.from_json(item) for item in data) if c is not None]
        return dedupe_citations(citations)

    def _load_history(self) -> tuple[HistoryPoint, ...]:
        data = self.store.get(CACHED_HISTORY_KEY)
        if not isinstance(data, list):
            return ()
        points = []
        for item in data:
            if not isinstance(item, dict):
                continue
            day = parse_history_date(item.get("date"))
            rate = positive_number(item.get("rate"))
            if day is not None and rate is not None:
                points.append(HistoryPoint(date=day, rate=rate))
        return reconcile_history(points)

    def load(self) -> CachedData:
        """
        Load every cached record.

        Returns:
            CachedData; fields are empty for records that are absent or unusable
        """
        cached = CachedData(
            rate=self._load_rate(),
            sources=self._load_sources(),
            history=self._load_history(),
        )
        if cached.rate:
            logger.info(
                "Loaded cached rate from %s (iqd=%.2f, %d sources, %d history points)",
                cached.rate.updated.isoformat(), cached.rate.iqd, len(cached.sources), len(cached.history),
            )
        else:
            logger.info("No cached rate found")
        return cached

    def save(self, rate: RateSnapshot, sources: tuple[Citation, ...], history: tuple[HistoryPoint, ...]) -> bool:
        """
        Persist a complete fetch result.

        The rate record is written last and only after the sources and
        history writes succeeded, so a failed write never leaves a new
        rate next to collections from an older fetch.

        Returns:
            True if every record was written, False if any write failed
            (the caller keeps publishing the in-memory data either way)
        """
        records = (
            (CACHED_SOURCES_KEY, [c.to_json() for c in sources]),
            (CACHED_HISTORY_KEY, [p.to_json() for p in history]),
            (CACHED_RATE_KEY, rate.to_json()),
        )
        for key, value in records:
            try:
                self.store.set(key, value)
            except StoreError as e:
                logger.error("Failed to persist %s, keeping the previous rate record: %s", key, e)
                return False
        logger.info("Rate data persisted: %s", rate.updated.isoformat())
        return True
