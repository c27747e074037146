"""
Account security token policy: issuance and validation of the two
user-bound tokens (email verification, password reset).

Per-slot lifecycle::

    Absent ──issue──▶ Pending ──▶ Consumed | Expired | Superseded ──▶ Absent

Issuing always overwrites the slot, which is what supersedes an older
token. ``validate`` is read-only; consumption is done by the completion
operation on the user (``verify_email`` / ``update_password``) and, in
the authentication flow, by an atomic conditional update in the
repository.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

from config import AccountTokenSettings
from schemas.models.user import TokenKind, UserDoc
from shared.crypto import constant_time_equals, hash_token
from shared.datetime_utils import Clock, utc_now
from shared.expiring_secret import ExpiringSecret
from shared.generators import generate_secure_token
from shared.logging import get_logger

log = get_logger(__name__)


class AccountSecurityTokenPolicy:
    def __init__(
        self,
        settings: Optional[AccountTokenSettings] = None,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._settings = settings or AccountTokenSettings()
        self._clock = clock

    def ttl_for(self, kind: TokenKind) -> timedelta:
        if kind is TokenKind.EMAIL_VERIFICATION:
            return timedelta(seconds=self._settings.email_verification_ttl_seconds)
        return timedelta(seconds=self._settings.password_reset_ttl_seconds)

    def issue(
        self, user: UserDoc, kind: TokenKind, ttl: Optional[timedelta] = None
    ) -> str:
        """Mint a token for *kind*, replacing any pending one.

        Returns:
            The plaintext token for out-of-band delivery. Only its digest is
            kept on the user.
        """
        token = generate_secure_token()
        secret = ExpiringSecret[str].issue(
            hash_token(token), ttl or self.ttl_for(kind), clock=self._clock
        )
        superseded = user.token_slot(kind) is not None
        user.set_token_slot(kind, secret)
        log.info(
            "account_secret_issued",
            user_id=str(user.id) if user.id else None,
            kind=kind.value,
            superseded=superseded,
            expires_at=secret.expires_at.isoformat(),
        )
        return token

    def validate(self, user: UserDoc, kind: TokenKind, token: Optional[str]) -> bool:
        """True iff *token* matches the pending slot and has not expired.

        Does not consume anything.
        """
        slot = user.token_slot(kind)
        if slot is None or not token:
            return False
        if not constant_time_equals(slot.value, hash_token(token)):
            return False
        return not slot.is_expired(self._clock())

    def clear(self, user: UserDoc, kind: TokenKind) -> None:
        """Explicit invalidation; value and expiry go together."""
        user.set_token_slot(kind, None)
