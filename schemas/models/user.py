"""
User document model.

Maps to the `users` MongoDB collection. Only the authentication-relevant
part of the account lives here; todo items are stored elsewhere.

Each account security token is one optional slot holding an
ExpiringSecret whose value is the SHA-256 digest of the token that was
emailed. A slot is either fully set or None.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from shared.datetime_utils import utc_now
from shared.expiring_secret import ExpiringSecret
from schemas.models.base import MongoBaseModel


class TokenKind(str, Enum):
    """Account token slots; the value is the document field name."""

    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"


class UserDoc(MongoBaseModel):
    """Document model for the `users` collection."""

    email: str
    password_hash: str
    email_verified: bool = False
    user_name: Optional[str] = None
    is_active: bool = True
    email_verification: Optional[ExpiringSecret[str]] = None
    password_reset: Optional[ExpiringSecret[str]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def token_slot(self, kind: TokenKind) -> Optional[ExpiringSecret[str]]:
        return getattr(self, kind.value)

    def set_token_slot(
        self, kind: TokenKind, secret: Optional[ExpiringSecret[str]]
    ) -> None:
        setattr(self, kind.value, secret)
        self.touch()

    def update_password(self, new_password_hash: str) -> None:
        """Replace the password hash; any pending reset token goes with it."""
        self.password_hash = new_password_hash
        self.set_token_slot(TokenKind.PASSWORD_RESET, None)

    def verify_email(self) -> None:
        self.email_verified = True
        self.set_token_slot(TokenKind.EMAIL_VERIFICATION, None)

    def deactivate(self) -> None:
        self.is_active = False
        self.touch()

    def activate(self) -> None:
        self.is_active = True
        self.touch()

    def touch(self) -> None:
        self.updated_at = utc_now()
