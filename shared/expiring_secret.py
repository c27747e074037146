"""
ExpiringSecret: the shared shape of every short-lived, single-use secret.

Two call sites use it:

- captcha answers held by the challenge store (``ExpiringSecret[str]``
  keyed by captcha id), and
- the account security token slots on a user document (email verification,
  password reset), where the slot is ``Optional[ExpiringSecret[str]]``.

Keeping value and expiry in one immutable object means they are always set
or cleared together.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict

from shared.datetime_utils import Clock, ensure_utc, utc_now

T = TypeVar("T")


class ExpiringSecret(BaseModel, Generic[T]):
    """A value that stays valid while ``now <= expires_at``."""

    model_config = ConfigDict(frozen=True)

    value: T
    created_at: datetime
    expires_at: datetime

    @classmethod
    def issue(
        cls,
        value: T,
        ttl: timedelta,
        *,
        clock: Clock = utc_now,
    ) -> "ExpiringSecret[T]":
        """Wrap *value* with ``expires_at = now + ttl``."""
        now = clock()
        return cls(value=value, created_at=now, expires_at=now + ttl)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        # Mongo may hand back naive datetimes; they are stored as UTC
        current = ensure_utc(now) if now is not None else utc_now()
        return current > ensure_utc(self.expires_at)
