"""
Authentication flow: registration, login and the account-token journeys.

Composes the captcha service, the account token policy, the user
repository and the injected password-hashing and email capabilities.

Email delivery is fire-and-forget: the request never waits for it and a
failed send is logged as a warning, never rolled back. ``drain()`` waits
for outstanding sends (app shutdown, tests).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from pymongo.errors import DuplicateKeyError

from config import JWTSettings
from errors import (
    EmailAlreadyRegisteredError,
    EmailNotVerifiedError,
    InvalidCaptchaError,
    InvalidCredentialsError,
    InvalidOrExpiredTokenError,
)
from infrastructure.email.protocol import EmailProvider
from repositories.user_repository import UserRepository
from schemas.dto.requests.auth import LoginRequest, RegisterRequest
from schemas.models.user import TokenKind, UserDoc
from services.captcha_service import CaptchaChallengeService
from services.token_policy import AccountSecurityTokenPolicy
from shared.crypto import hash_password, hash_token, verify_password
from shared.datetime_utils import Clock, utc_now
from shared.logging import get_logger
from shared.session_tokens import generate_access_jwt

log = get_logger(__name__)


@dataclass(frozen=True)
class LoginResult:
    user: UserDoc
    access_token: str
    expires_in: int


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthenticationFlow:
    def __init__(
        self,
        users: UserRepository,
        captcha: CaptchaChallengeService,
        tokens: AccountSecurityTokenPolicy,
        email: EmailProvider,
        jwt_settings: JWTSettings,
        *,
        require_verified_email_for_login: bool = False,
        password_hasher: Callable[[str], str] = hash_password,
        password_verifier: Callable[[str, str], bool] = verify_password,
        clock: Clock = utc_now,
    ) -> None:
        self._users = users
        self._captcha = captcha
        self._tokens = tokens
        self._email = email
        self._jwt_settings = jwt_settings
        self._require_verified_email = require_verified_email_for_login
        self._hash_password = password_hasher
        self._verify_password = password_verifier
        self._clock = clock
        # Unknown accounts are checked against this so login costs the same either way
        self._dummy_password_hash = password_hasher("no-such-account")
        self._pending: set[asyncio.Task] = set()

    # ── Registration / login ────────────────────────────────────────────────

    async def register(self, request: RegisterRequest) -> UserDoc:
        await self._require_captcha(request.captcha_id, request.captcha_answer)

        email = normalize_email(request.email)
        if await self._users.find_by_email(email) is not None:
            log.warning("registration_failed", reason="email_exists")
            raise EmailAlreadyRegisteredError()

        password_hash = await asyncio.to_thread(self._hash_password, request.password)
        user = UserDoc(
            email=email,
            password_hash=password_hash,
            user_name=(request.user_name or "").strip() or None,
        )
        verification = self._tokens.issue(user, TokenKind.EMAIL_VERIFICATION)

        try:
            user = await self._users.insert(user)
        except DuplicateKeyError as e:
            # Email registered between our check and the insert
            log.warning("registration_failed", reason="race_condition_duplicate")
            raise EmailAlreadyRegisteredError() from e

        log.info(
            "user_registered",
            user_id=str(user.id),
            has_username=bool(user.user_name),
        )
        self._dispatch(
            self._email.send_verification_email(user.email, user.user_name, verification),
            kind=TokenKind.EMAIL_VERIFICATION,
            user_id=str(user.id),
        )
        return user

    async def login(self, request: LoginRequest) -> LoginResult:
        await self._require_captcha(request.captcha_id, request.captcha_answer)

        user = await self._users.find_by_email(normalize_email(request.email))
        if user is None or not user.is_active:
            await asyncio.to_thread(
                self._verify_password, request.password, self._dummy_password_hash
            )
            # Do not reveal which part failed
            log.warning(
                "login_failed",
                reason="unknown_or_inactive_account",
                email_exists=user is not None,
            )
            raise InvalidCredentialsError()

        matches = await asyncio.to_thread(
            self._verify_password, request.password, user.password_hash
        )
        if not matches:
            log.warning("login_failed", reason="invalid_credentials", user_id=str(user.id))
            raise InvalidCredentialsError()

        if self._require_verified_email and not user.email_verified:
            log.warning("login_failed", reason="email_not_verified", user_id=str(user.id))
            raise EmailNotVerifiedError()

        ttl = (
            self._jwt_settings.remember_me_ttl_seconds
            if request.remember_me
            else self._jwt_settings.access_token_ttl_seconds
        )
        access = generate_access_jwt(
            str(user.id),
            self._jwt_settings,
            email_verified=user.email_verified,
            ttl_seconds=ttl,
            clock=self._clock,
        )
        log.info("login_success", user_id=str(user.id), remember_me=request.remember_me)
        return LoginResult(user=user, access_token=access, expires_in=ttl)

    # ── Password reset ──────────────────────────────────────────────────────

    async def forgot_password(self, email: str) -> None:
        """Issue and mail a reset link. Unknown emails succeed silently."""
        user = await self._users.find_by_email(normalize_email(email))
        if user is None or not user.is_active:
            log.info("password_reset_requested", account_found=False)
            return

        reset = self._tokens.issue(user, TokenKind.PASSWORD_RESET)
        await self._users.save_token_slot(user, TokenKind.PASSWORD_RESET)
        log.info("password_reset_requested", account_found=True, user_id=str(user.id))
        self._dispatch(
            self._email.send_password_reset_email(user.email, user.user_name, reset),
            kind=TokenKind.PASSWORD_RESET,
            user_id=str(user.id),
        )

    async def validate_reset_token(self, token: str) -> bool:
        """Read-only check, e.g. before showing the "new password" form."""
        user = await self._users.find_by_token(TokenKind.PASSWORD_RESET, hash_token(token))
        return user is not None and self._tokens.validate(user, TokenKind.PASSWORD_RESET, token)

    async def reset_password(self, token: str, new_password: str) -> UserDoc:
        user = await self._find_valid(TokenKind.PASSWORD_RESET, token)

        password_hash = await asyncio.to_thread(self._hash_password, new_password)
        user.update_password(password_hash)
        updated = await self._consume(
            user, TokenKind.PASSWORD_RESET, token, {"password_hash": password_hash}
        )
        log.info("password_reset_completed", user_id=str(updated.id))
        return updated

    # ── Email verification ──────────────────────────────────────────────────

    async def verify_email(self, token: str) -> UserDoc:
        user = await self._find_valid(TokenKind.EMAIL_VERIFICATION, token)

        user.verify_email()
        updated = await self._consume(
            user, TokenKind.EMAIL_VERIFICATION, token, {"email_verified": True}
        )
        log.info("email_verified", user_id=str(updated.id))
        return updated

    async def resend_verification(self, email: str) -> None:
        """Re-issue the verification link; silent for unknown or verified accounts."""
        user = await self._users.find_by_email(normalize_email(email))
        if user is None or user.email_verified:
            log.info("verification_resend_skipped", account_found=user is not None)
            return

        verification = self._tokens.issue(user, TokenKind.EMAIL_VERIFICATION)
        await self._users.save_token_slot(user, TokenKind.EMAIL_VERIFICATION)
        self._dispatch(
            self._email.send_verification_email(user.email, user.user_name, verification),
            kind=TokenKind.EMAIL_VERIFICATION,
            user_id=str(user.id),
        )

    # ── Background email dispatch ───────────────────────────────────────────

    async def drain(self) -> None:
        """Wait for every email dispatch started so far."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ── Internals ───────────────────────────────────────────────────────────

    async def _require_captcha(self, captcha_id: str, answer: str) -> None:
        if not await self._captcha.validate(captcha_id, answer):
            raise InvalidCaptchaError()

    async def _find_valid(self, kind: TokenKind, token: str) -> UserDoc:
        user = await self._users.find_by_token(kind, hash_token(token))
        if user is None or not self._tokens.validate(user, kind, token):
            log.warning("account_secret_rejected", kind=kind.value, user_found=user is not None)
            raise InvalidOrExpiredTokenError()
        return user

    async def _consume(
        self, user: UserDoc, kind: TokenKind, token: str, changes: dict[str, Any]
    ) -> UserDoc:
        # Applies only while the slot still holds this token, so a concurrent
        # or repeated attempt with the same token fails here
        updated = await self._users.consume_token(
            user, kind, hash_token(token), changes, now=self._clock()
        )
        if updated is None:
            raise InvalidOrExpiredTokenError()
        return updated

    def _dispatch(
        self, send: Awaitable[bool], *, kind: TokenKind, user_id: Optional[str]
    ) -> None:
        task = asyncio.create_task(self._deliver(send, kind, user_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(
        self, send: Awaitable[bool], kind: TokenKind, user_id: Optional[str]
    ) -> None:
        try:
            sent = await send
        except Exception as e:
            log.warning(
                "account_email_failed",
                kind=kind.value,
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return
        if sent:
            log.info("account_email_sent", kind=kind.value, user_id=user_id)
        else:
            log.warning(
                "account_email_failed",
                kind=kind.value,
                user_id=user_id,
                reason="provider_rejected",
            )
