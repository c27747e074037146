"""
Date/time helpers: framework-agnostic.

Every component that reasons about expiry takes a ``Clock`` (a zero-argument
callable returning an aware UTC datetime) so tests can move time forward
without sleeping.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime.

    Naive datetimes (no ``tzinfo``) are assumed to already be UTC, which is
    how MongoDB stores them.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso_z(value: datetime) -> str:
    """Format *value* as ISO 8601 UTC with a trailing ``Z``.

    Args:
        value: Aware or naive (assumed UTC) datetime.

    Returns:
        String such as ``"2025-01-01T12:00:00Z"``.
    """
    return ensure_utc(value).isoformat().replace("+00:00", "Z")
