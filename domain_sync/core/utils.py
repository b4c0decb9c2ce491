"""
domain-sync — Shared utilities.

Pure normalization helpers used by the change detector. No imports from
other domain_sync modules; only the standard library and
domain_sync.core.constants are allowed.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, Optional

from domain_sync.core.constants import UNKNOWN_SENTINEL

_DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
    "%d-%b-%Y",
    "%b %d %H:%M:%S %Y GMT",  # OpenSSL notBefore / notAfter
)


def utcnow() -> datetime:
    """Naive UTC ``datetime`` (the datastore stores naive UTC timestamps)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Strings
# ---------------------------------------------------------------------------

def normalize_text(value: Any) -> str:
    """Trim and lowercase.  ``None`` normalizes to the empty string."""
    if value is None:
        return ""
    return str(value).strip().lower()


def is_unknown(value: Any) -> bool:
    """True when the provider did not report the value (absent, blank or sentinel)."""
    if value is None:
        return True
    if isinstance(value, str):
        text = value.strip().lower()
        return not text or text == UNKNOWN_SENTINEL.lower()
    return False


def texts_differ(old: Any, new: Any) -> bool:
    return normalize_text(old) != normalize_text(new)


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse a provider or stored timestamp into a naive ``datetime``.

    Timezone offsets are dropped without conversion so the calendar day
    reads the same as in the source string.  Returns ``None`` for empty,
    sentinel or unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if not text or is_unknown(text):
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).replace(tzinfo=None)
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def normalize_day(value: Any) -> Optional[date]:
    """Truncate a timestamp to its calendar day."""
    parsed = parse_datetime(value)
    return parsed.date() if parsed else None


def days_differ(old: Any, new: Any) -> bool:
    return normalize_day(old) != normalize_day(new)


def display_value(value: Any) -> Optional[str]:
    """Render a value for the change log (``None`` stays ``None``)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


# ---------------------------------------------------------------------------
# Sets
# ---------------------------------------------------------------------------

def normalize_set(values: Iterable[Any]) -> Dict[str, None]:
    """Normalize a fetched collection, preserving first-seen order.

    Empty strings and the sentinel are dropped; duplicates collapse.  An
    insertion-ordered dict keeps the emitted changes deterministic.
    """
    out: Dict[str, None] = {}
    for value in values or ():
        if is_unknown(value):
            continue
        norm = normalize_text(value)
        if norm:
            out[norm] = None
    return out
