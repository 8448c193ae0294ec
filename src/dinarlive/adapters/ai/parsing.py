# src/dinarlive/adapters/ai/parsing.py
"""
Provider Reply Parsing - Extract and Validate the Embedded JSON Payload

The AI provider answers in free text that is supposed to be a single JSON
object but routinely arrives wrapped in prose or markdown fences. Parsing
is a two-stage pipeline:

1. extract_json_block: take the substring between the first "{" and the
   last "}" of the reply.
2. parse_payload: decode that block and validate it field by field.

Field tolerance rules:
- current.iqdPer100Usd is mandatory, must be a positive number and at
  least the plausibility minimum, otherwise the whole reply is rejected.
- Secondary rates (eurPerUsd, tryPerUsd, gbpPerUsd, irtPerUsd) that are
  missing or not positive numbers become 0.0 ("unavailable").
- History entries are checked one by one; bad entries are dropped.

Files that USE this module:
- dinarlive.adapters.ai.provider_client (parses every provider reply)
- tests.test_parsing (unit tests)

Files that this module USES:
- dinarlive.domain (RateSnapshot, HistoryPoint, FetchResult, parse errors)
- dinarlive.shared.validators (positive_number, parse_history_date)
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from dinarlive.domain.errors import InvalidPayloadError, MalformedResponseError
from dinarlive.domain.models import Citation, FetchResult, HistoryPoint, RateSnapshot
from dinarlive.shared.validators import parse_history_date, positive_number

log = logging.getLogger(__name__)

PRIMARY_FIELD = "iqdPer100Usd"

# JSON key -> RateSnapshot attribute
SECONDARY_FIELDS = {
    "eurPerUsd": "eur_per_usd",
    "tryPerUsd": "try_per_usd",
    "gbpPerUsd": "gbp_per_usd",
    "irtPerUsd": "irt_per_usd",
}


def extract_json_block(text: Optional[str]) -> str:
    """
    Locate the JSON object embedded in a free-text reply.

    Args:
        text: Raw reply text

    Returns:
        Substring from the first "{" to the last "}" inclusive

    Raises:
        MalformedResponseError: if no such substring exists
    """
    if not text:
        raise MalformedResponseError("Provider returned an empty reply")
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise MalformedResponseError("No JSON object found in the provider reply")
    return text[start:end + 1]


def _current_section(data: dict) -> dict:
    current = data.get("current")
    if current is None and PRIMARY_FIELD in data:
        # Flat shape: {"iqdPer100Usd": ..., "eurPerUsd": ...}
        return data
    if not isinstance(current, dict):
        raise InvalidPayloadError('Payload is missing the "current" rates object')
    return current


def parse_snapshot(current: dict, *, min_iqd_per_100_usd: float, now: datetime) -> RateSnapshot:
    """
    Validate the "current" section and build a RateSnapshot.

    Raises:
        InvalidPayloadError: if the primary rate is missing, mistyped or implausible
    """
    raw_primary = current.get(PRIMARY_FIELD)
    iqd_per_100_usd = positive_number(raw_primary)
    if iqd_per_100_usd is None:
        raise InvalidPayloadError(f'Payload has a missing or invalid "{PRIMARY_FIELD}" field: {raw_primary!r}')
    if iqd_per_100_usd < min_iqd_per_100_usd:
        raise InvalidPayloadError(
            f'"{PRIMARY_FIELD}"={iqd_per_100_usd} is below the plausibility minimum {min_iqd_per_100_usd}'
        )

    secondary = {}
    for key, attr in SECONDARY_FIELDS.items():
        value = positive_number(current.get(key))
        if value is None:
            log.debug("Secondary rate %s unavailable (raw=%r)", key, current.get(key))
        secondary[attr] = value or 0.0

    return RateSnapshot(iqd=iqd_per_100_usd / 100, updated=now, **secondary)


def parse_history(entries: Any) -> list[HistoryPoint]:
    """
    Validate history entries individually, dropping the ones that fail.

    Returns:
        Valid points in input order (sorting and de-duplication happen in the reconciler)
    """
    if not isinstance(entries, list):
        if entries is not None:
            log.debug("Ignoring non-list history section: %r", type(entries).__name__)
        return []

    points: list[HistoryPoint] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        day = parse_history_date(entry.get("date"))
        rate = positive_number(entry.get("rate"))
        if day is None or rate is None:
            log.debug("Dropping invalid history entry: %r", entry)
            continue
        points.append(HistoryPoint(date=day, rate=rate))
    return points


def parse_payload(
    text: Optional[str],
    *,
    min_iqd_per_100_usd: float,
    now: Optional[datetime] = None,
    citations: Iterable[Citation] = (),
) -> FetchResult:
    """
    Run both parsing stages over a provider reply.

    Args:
        text: Raw reply text
        min_iqd_per_100_usd: Plausibility minimum for the primary rate
        now: Acquisition time stamped on the snapshot (defaults to current UTC time)
        citations: Sources reported alongside the reply

    Returns:
        FetchResult with the snapshot, valid history points and citations

    Raises:
        MalformedResponseError: no parseable JSON object in the reply
        InvalidPayloadError: JSON parsed but failed validation
    """
    block = extract_json_block(text)
    try:
        data = json.loads(block)
    except ValueError as e:
        # JSONDecodeError, or an integer literal over the int digit limit
        raise MalformedResponseError(f"Provider reply contains invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise InvalidPayloadError("Provider payload is not a JSON object")

    snapshot = parse_snapshot(
        _current_section(data),
        min_iqd_per_100_usd=min_iqd_per_100_usd,
        now=now or datetime.now(timezone.utc),
    )
    history = parse_history(data.get("history"))
    return FetchResult(snapshot=snapshot, history=tuple(history), citations=tuple(citations))
