# src/cipher_relay/db/time.py
"""Time utilities for database models."""

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def isoformat_utc(value: datetime) -> str:
    """Render a timestamp as ISO-8601 UTC with millisecond precision.

    Naive values (SQLite drops tzinfo on the way back) are taken to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
