"""Miscellaneous helper functions."""

from __future__ import annotations

import datetime as dt
import re
from typing import Any, Optional


def parse_iso_datetime(value: str | None) -> Optional[dt.datetime]:
    """Parse an ISO8601 datetime string into a :class:`datetime` object.

    The standard ``datetime.fromisoformat`` helper does not accept a lowercase
    ``z`` as the UTC designator. Some data sources provide timestamps that end
    with ``z`` instead of the canonical ``Z``. This function normalises that
    case and returns ``None`` if the value cannot be parsed.
    """
    if not value:
        return None
    try:
        if value.endswith("z"):
            value = value[:-1] + "Z"
        return dt.datetime.fromisoformat(value)
    except ValueError:
        return None


def parse_receipt_date(value: str | None) -> Optional[dt.datetime]:
    """Parse an extracted receipt date (``YYYY-MM-DD`` or ISO8601).

    Timezone-aware values are converted to naive UTC, matching how the
    ``purchased_at`` column is stored.
    """
    if not value:
        return None
    value = value.strip()
    parsed = parse_iso_datetime(value)
    if parsed is None:
        try:
            parsed = dt.datetime.strptime(value[:10], "%Y-%m-%d")
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(dt.timezone.utc).replace(tzinfo=None)
    return parsed


_NUMBER_RE = re.compile(r"[^0-9.\-]")


def coerce_number(value: Any) -> Optional[float]:
    """Return ``value`` as a float, accepting numeric strings like ``"$1,234.50"``.

    Booleans are rejected even though they are ints in Python.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = _NUMBER_RE.sub("", value.replace(",", ""))
        if cleaned in {"", "-", ".", "-."}:
            return None
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None
