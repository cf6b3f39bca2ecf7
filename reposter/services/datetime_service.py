"""Datetime parsing: lax input -> strict UTC output."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

import pendulum

# Strict storage format: YYYY-MM-DD HH:MM:SS.ffffff+0000. Always written in UTC,
# so string comparison in SQL orders the same way as the datetimes do.
STRICT_FORMAT = "%Y-%m-%d %H:%M:%S.%f%z"

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_datetime(value: str | datetime, default_tz: str = "UTC") -> datetime:
    """Parse a lax datetime string into a timezone-aware datetime.

    Accepts the forms produced by the Threads API (``2024-01-02T10:00:00+0000``)
    as well as ISO 8601 variants, space separators and bare dates.
    Missing timezone defaults to default_tz.
    Missing time components default to zeros.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            tz = pendulum.timezone(default_tz)
            value = value.replace(tzinfo=tz)  # type: ignore[arg-type]
        return value

    parsed = pendulum.parse(value.strip(), tz=default_tz, strict=False)
    if not isinstance(parsed, pendulum.DateTime):
        # pendulum.parse returns Date for date-only strings
        parsed = pendulum.datetime(
            parsed.year, parsed.month, parsed.day, tz=default_tz  # type: ignore[union-attr]
        )
    return parsed  # type: ignore[return-value]


def format_datetime(dt: datetime) -> str:
    """Format a datetime to the strict storage format, converted to UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(STRICT_FORMAT)


def parse_stored_datetime(value: str) -> datetime:
    """Inverse of :func:`format_datetime`."""
    return datetime.strptime(value, STRICT_FORMAT)


def format_date(dt: datetime) -> str:
    """Format the UTC calendar date of ``dt`` as YYYY-MM-DD."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%d")


def parse_sync_date(value: str, *, now: datetime | None = None) -> datetime:
    """Validate a user-entered watermark date.

    The value must be exactly ``YYYY-MM-DD``, name a real calendar day and not
    lie in the future. Returns midnight UTC of that day.

    Raises:
        ValueError: with a message suitable for showing to the user.
    """
    text = value.strip()
    if not _DATE_RE.match(text):
        msg = "Invalid date format. Please use YYYY-MM-DD (e.g. 2024-01-01)."
        raise ValueError(msg)
    year, month, day = (int(part) for part in text.split("-"))
    try:
        moment = datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        msg = "Invalid date. Please enter a real calendar date in YYYY-MM-DD format."
        raise ValueError(msg) from None
    current = now or now_utc()
    if moment > current:
        msg = "Sync start date cannot be in the future. Please enter a past or current date."
        raise ValueError(msg)
    return moment


def expires_at(expires_in_seconds: int, *, now: datetime | None = None) -> datetime:
    """Absolute expiry for a token valid for ``expires_in_seconds`` from ``now``."""
    return (now or now_utc()) + timedelta(seconds=expires_in_seconds)


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)
