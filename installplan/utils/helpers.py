"""Shared utility functions for blueprints and services.

parse_datetime:  request-body datetimes (ISO-8601, naive → UTC)
as_utc:          normalise datetimes read back from the DB
utc_midnight:    start of a UTC day
isoformat:       None-safe ISO rendering for to_dict()
parse_flag:      strict JSON boolean from a request body
"""
import logging
from datetime import date, datetime, time, timezone

logger = logging.getLogger(__name__)


def as_utc(value):
    """Return *value* as an aware UTC datetime.

    SQLite drops tzinfo on ``DateTime(timezone=True)`` columns, so naive
    values read back from the DB are taken to be UTC already.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_midnight(value=None):
    """Midnight UTC of the day *value* falls on (default: today)."""
    if value is None:
        value = datetime.now(timezone.utc)
    if isinstance(value, datetime):
        value = as_utc(value).date()
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def parse_datetime(value):
    """Parse an ISO-8601 date or datetime string to an aware UTC datetime.

    Returns None for empty input. Raises ValueError on malformed input so
    the calling blueprint can answer 400.

    Supports:
    - YYYY-MM-DD (midnight UTC)
    - YYYY-MM-DDTHH:MM[:SS][+HH:MM | Z]
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return utc_midnight(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError as exc:
        raise ValueError(f"Invalid datetime {value!r}. Use ISO-8601.") from exc


def isoformat(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    return value.isoformat()


def parse_flag(data, name, default=False):
    """Read a JSON boolean from a request body.

    Only real JSON booleans are accepted; strings such as ``"false"`` and
    numbers raise ValueError so the calling blueprint can answer 400.
    """
    value = data.get(name, default)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValueError(f"'{name}' must be a JSON boolean (true/false), got {value!r}")
    return value
