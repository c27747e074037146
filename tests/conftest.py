"""
Shared test configuration and fakes.

Patches dotenv so pydantic-settings never reads the project's real .env file
during tests, and provides in-memory stand-ins for the collaborators the
services depend on (clock, user repository, email provider, renderer).
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest
from bson import ObjectId
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pymongo.errors import DuplicateKeyError

from config import AccountTokenSettings, JWTSettings
from errors import register_error_handlers
from infrastructure.cache.challenge_store import InMemoryChallengeStore
from routes.auth_routes import router as auth_router
from routes.captcha_routes import router as captcha_router
from schemas.models.user import TokenKind, UserDoc
from services.auth_service import AuthenticationFlow
from services.captcha_service import CaptchaChallengeService
from services.token_policy import AccountSecurityTokenPolicy

TEST_JWT_SECRET = "test-secret-with-at-least-32-bytes!!"


@pytest.fixture(autouse=True)
def disable_dotenv_loading(monkeypatch):
    """Prevent pydantic-settings from loading .env files in all tests."""
    import pydantic_settings.sources.providers.dotenv as ps_dotenv

    monkeypatch.setattr(ps_dotenv, "dotenv_values", lambda *a, **kw: {})


# ── Fakes ─────────────────────────────────────────────────────────────────────


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now += timedelta(**kwargs)


class FakeUserRepository:
    """Dict-backed UserRepository with the same consume-if-still-live rule."""

    def __init__(self) -> None:
        self.docs: dict[ObjectId, UserDoc] = {}

    async def ensure_indexes(self) -> None:
        return None

    async def find_by_email(self, email: str) -> Optional[UserDoc]:
        for doc in self.docs.values():
            if doc.email == email:
                return doc.model_copy(deep=True)
        return None

    async def find_by_token(self, kind: TokenKind, token_hash: str) -> Optional[UserDoc]:
        for doc in self.docs.values():
            slot = doc.token_slot(kind)
            if slot is not None and slot.value == token_hash:
                return doc.model_copy(deep=True)
        return None

    async def insert(self, user: UserDoc) -> UserDoc:
        if any(doc.email == user.email for doc in self.docs.values()):
            raise DuplicateKeyError("E11000 duplicate key error: email")
        user.id = ObjectId()
        self.docs[user.id] = user.model_copy(deep=True)
        return user

    async def save_token_slot(self, user: UserDoc, kind: TokenKind) -> None:
        self.docs[user.id].set_token_slot(kind, user.token_slot(kind))

    async def consume_token(
        self,
        user: UserDoc,
        kind: TokenKind,
        token_hash: str,
        changes: dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Optional[UserDoc]:
        stored = self.docs.get(user.id)
        slot = stored.token_slot(kind) if stored else None
        if slot is None or slot.value != token_hash or slot.is_expired(now):
            return None
        for field, value in changes.items():
            setattr(stored, field, value)
        stored.set_token_slot(kind, None)
        return stored.model_copy(deep=True)

    def get(self, email: str) -> Optional[UserDoc]:
        return next((d for d in self.docs.values() if d.email == email), None)


class FakeEmailProvider:
    def __init__(self, result: bool = True, error: Optional[Exception] = None) -> None:
        self.result = result
        self.error = error
        self.sent: list[tuple[str, str, str]] = []

    async def _record(self, kind: str, email: str, token: str) -> bool:
        if self.error is not None:
            raise self.error
        self.sent.append((kind, email, token))
        return self.result

    async def send_verification_email(
        self, email: str, user_name: Optional[str], token: str
    ) -> bool:
        return await self._record("email_verification", email, token)

    async def send_password_reset_email(
        self, email: str, user_name: Optional[str], token: str
    ) -> bool:
        return await self._record("password_reset", email, token)

    def last_token(self, kind: str) -> str:
        return [t for k, _, t in self.sent if k == kind][-1]


class StubRenderer:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.rendered: list[str] = []

    def render(self, text, rng) -> bytes:
        if self.error is not None:
            raise self.error
        self.rendered.append(text)
        return b"\x89PNG\r\n\x1a\n" + text.encode()


def fake_hash(password: str) -> str:
    return f"hashed:{password}"


def fake_verify(password: str, password_hash: str) -> bool:
    return password_hash == f"hashed:{password}"


# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> InMemoryChallengeStore:
    return InMemoryChallengeStore(clock=clock)


@pytest.fixture
def renderer() -> StubRenderer:
    return StubRenderer()


@pytest.fixture
def make_renderer():
    return StubRenderer


@pytest.fixture
def captcha_service(store, renderer, clock) -> CaptchaChallengeService:
    import random

    return CaptchaChallengeService(store, renderer, rng=random.Random(1234), clock=clock)


@pytest.fixture
def users() -> FakeUserRepository:
    return FakeUserRepository()


@pytest.fixture
def email_provider() -> FakeEmailProvider:
    return FakeEmailProvider()


@pytest.fixture
def token_settings() -> AccountTokenSettings:
    return AccountTokenSettings(
        email_verification_ttl_seconds=86400,
        password_reset_ttl_seconds=3600,
        require_verified_email_for_login=False,
    )


@pytest.fixture
def token_policy(token_settings, clock) -> AccountSecurityTokenPolicy:
    return AccountSecurityTokenPolicy(token_settings, clock=clock)


@pytest.fixture
def jwt_settings() -> JWTSettings:
    return JWTSettings(jwt_secret=TEST_JWT_SECRET, jwt_private_key="", jwt_public_key="")


@pytest.fixture
def make_flow(users, captcha_service, token_policy, email_provider, jwt_settings, clock):
    """Build an AuthenticationFlow; keyword overrides replace collaborators."""

    def _make(**overrides: Any) -> AuthenticationFlow:
        params: dict[str, Any] = dict(
            users=users,
            captcha=captcha_service,
            tokens=token_policy,
            email=email_provider,
            jwt_settings=jwt_settings,
            require_verified_email_for_login=False,
            password_hasher=fake_hash,
            password_verifier=fake_verify,
            clock=clock,
        )
        params.update(overrides)
        return AuthenticationFlow(**params)

    return _make


@pytest.fixture
def flow(make_flow) -> AuthenticationFlow:
    return make_flow()


@pytest.fixture
def api_client(captcha_service, flow, mocker):
    """TestClient over the captcha and auth routers wired to the fakes.

    Every generated captcha has the answer ``K3F9``.
    """
    mocker.patch("services.captcha_service.generate_captcha_text", return_value="K3F9")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.captcha_service = captcha_service
        app.state.auth_flow = flow
        yield
        await flow.drain()

    app = FastAPI(lifespan=lifespan)
    register_error_handlers(app)
    app.include_router(captcha_router)
    app.include_router(auth_router)

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client


@pytest.fixture
def solved_captcha(store):
    """Put a known answer in the store and return (captcha_id, answer)."""

    async def _solved(captcha_id: str = "cid-ok", answer: str = "K3F9") -> tuple[str, str]:
        await store.put(captcha_id, answer.lower(), timedelta(minutes=5))
        return captcha_id, answer

    return _solved
