"""Coercion helpers for Darwin Core rows.

Aggregators return loosely typed JSON: numbers as strings, dates as ISO
timestamps or intervals, empty strings for missing values. These helpers
never raise; malformed values become None.
"""

from __future__ import annotations

import math
from collections.abc import Collection
from datetime import UTC, date, datetime
from typing import Any


def as_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(result) or math.isinf(result) else result


def as_int(value: Any) -> int | None:
    number = as_float(value)
    if number is None or not number.is_integer():
        return None
    return int(number)


def parse_event_date(value: Any) -> date | None:
    """
    Parse a Darwin Core ``eventDate``.

    Accepts ``YYYY-MM-DD``, full ISO timestamps, and intervals
    (``2010-05-01/2010-05-31``: the start is used). Partial dates such as
    ``2010-05`` or ``2010`` are not resolved to a day and yield None.
    """
    text = as_str(value)
    if not text:
        return None
    start = text.split("/", 1)[0]
    try:
        return date.fromisoformat(start[:10])
    except ValueError:
        return None


def date_from_epoch_ms(value: Any) -> date | None:
    """Convert epoch milliseconds (OBIS ``date_mid``) to a UTC date."""
    ms = as_float(value)
    if ms is None:
        return None
    try:
        return datetime.fromtimestamp(ms / 1000, tz=UTC).date()
    except (OverflowError, OSError, ValueError):
        return None


def midpoint(low: Any, high: Any) -> float | None:
    """Middle of a min/max pair; falls back to whichever side is present."""
    lo, hi = as_float(low), as_float(high)
    if lo is not None and hi is not None:
        return (lo + hi) / 2
    return lo if lo is not None else hi


def extras(raw: dict[str, Any], consumed: Collection[str]) -> dict[str, Any]:
    """Everything in ``raw`` not mapped onto a declared field."""
    return {k: v for k, v in raw.items() if k not in consumed}


def term_name(key: str) -> str:
    """Strip a term URI to its local name (``.../terms/measurementType``)."""
    return key.rstrip("/").rsplit("/", 1)[-1]
