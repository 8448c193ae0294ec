# src/dinarlive/application/reconciler.py
"""
Source/History Reconciler

Each successful fetch fully replaces the stored citations and history, so
reconciliation only has to clean up the new batch:
- citations: drop incomplete entries, keep the first entry per URI
- history: drop invalid points, keep the first point per date, newest first

Files that USE this module:
- dinarlive.application.orchestrator (reconciles every fetch result)
- dinarlive.application.state_manager (cleans records loaded from disk)
"""
from __future__ import annotations

import math
from typing import Iterable

from dinarlive.domain.models import Citation, HistoryPoint


def dedupe_citations(citations: Iterable[Citation]) -> tuple[Citation, ...]:
    """
    Remove incomplete and duplicate citations.

    Args:
        citations: Citations in the order the provider reported them

    Returns:
        Citations with a non-empty uri and title, first occurrence per URI kept
    """
    seen: dict[str, Citation] = {}
    for citation in citations:
        if not citation.uri or not citation.title:
            continue
        seen.setdefault(citation.uri, citation)
    return tuple(seen.values())


def reconcile_history(points: Iterable[HistoryPoint]) -> tuple[HistoryPoint, ...]:
    """
    Clean a batch of history points.

    Args:
        points: Points as parsed, in input order

    Returns:
        Points with a finite positive rate, first occurrence per date kept,
        sorted newest first
    """
    by_date: dict = {}
    for point in points:
        if not isinstance(point.rate, (int, float)) or not math.isfinite(point.rate) or point.rate <= 0:
            continue
        by_date.setdefault(point.date, point)
    return tuple(sorted(by_date.values(), key=lambda p: p.date, reverse=True))
