"""
Time and date utilities for windowing.

Key concepts:
  - All instants handled by the windowing core are timezone-aware UTC datetimes.
    Naive datetimes coming from exports are interpreted as UTC.
  - Snapshot bounds may be configured as plain dates. A start date covers the
    whole day from 00:00 UTC; an end date is inclusive, so it resolves to the
    last representable instant of that day.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as a timezone-aware UTC datetime.

    Naive datetimes are assumed to already be in UTC; aware datetimes are
    converted.

    Args:
        value: Naive or aware datetime.

    Returns:
        Aware datetime with ``tzinfo=timezone.utc``.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_day(day: date) -> datetime:
    """Return 00:00:00 UTC on ``day``."""
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def end_of_day(day: date) -> datetime:
    """Return the last instant (23:59:59.999999 UTC) of ``day``."""
    return datetime.combine(day, time.max, tzinfo=timezone.utc)


def coerce_instant(value: object, *, end_of_range: bool = False) -> object:
    """Coerce a config/record value into a UTC instant where possible.

    Accepts ``datetime`` objects, plain ``date`` objects, and ISO strings of
    either form. Plain dates resolve to the start of the day, or to the end of
    the day when ``end_of_range`` is set. Anything else is returned unchanged
    so that pydantic can report the type error itself.

    Args:
        value: Raw value (from TOML, JSON, env vars or Python code).
        end_of_range: Resolve plain dates to the end of the day.

    Returns:
        An aware UTC ``datetime``, or ``value`` unchanged.
    """
    if isinstance(value, str):
        text = value.strip()
        if len(text) == 10:
            value = date.fromisoformat(text)
        else:
            value = datetime.fromisoformat(text.replace("Z", "+00:00"))

    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return end_of_day(value) if end_of_range else start_of_day(value)
    return value


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)
