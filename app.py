"""
FastAPI application factory.
create_app() is the single entry point for building the app.
"""

from __future__ import annotations

import asyncio
import random
from contextlib import asynccontextmanager, suppress
from datetime import timedelta
from typing import AsyncIterator, Optional

import redis.asyncio as aioredis
import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.asynchronous.mongo_client import AsyncMongoClient

from config import AppSettings
from errors import register_error_handlers
from infrastructure.cache.challenge_store import (
    ChallengeStore,
    InMemoryChallengeStore,
    RedisChallengeStore,
)
from infrastructure.cache.redis_client import create_redis_client
from infrastructure.captcha.renderer import PillowCaptchaRenderer
from infrastructure.email.console import ConsoleEmailProvider
from infrastructure.email.protocol import EmailProvider
from infrastructure.email.zeptomail import ZeptoMailProvider
from infrastructure.http_client import HttpClient
from repositories.user_repository import UserRepository
from routes.auth_routes import router as auth_router
from routes.captcha_routes import router as captcha_router
from routes.health_routes import router as health_router
from services.auth_service import AuthenticationFlow
from services.captcha_service import CaptchaChallengeService
from services.token_policy import AccountSecurityTokenPolicy
from shared.logging import get_logger, setup_logging

log = get_logger(__name__)

PURGE_INTERVAL_SECONDS = 60


def build_email_provider(
    settings: AppSettings, http_client: HttpClient
) -> EmailProvider:
    if settings.email.email_backend == "zeptomail":
        return ZeptoMailProvider(
            settings=settings.email,
            http_client=http_client,
            app_url=settings.app_url,
            verification_ttl_hours=settings.tokens.email_verification_ttl_seconds // 3600,
            reset_ttl_minutes=settings.tokens.password_reset_ttl_seconds // 60,
        )
    return ConsoleEmailProvider(app_url=settings.app_url)


def wire_services(
    app: FastAPI,
    settings: AppSettings,
    db: AsyncDatabase,
    store: ChallengeStore,
    email: EmailProvider,
) -> None:
    """Build the captcha service and auth flow and attach them to app.state."""
    users = UserRepository(db)
    captcha = CaptchaChallengeService(
        store,
        PillowCaptchaRenderer(
            width=settings.captcha.captcha_width,
            height=settings.captcha.captcha_height,
            font_path=settings.captcha.captcha_font_path,
        ),
        rng=random.SystemRandom(),
        ttl=timedelta(seconds=settings.captcha.captcha_ttl_seconds),
        length=settings.captcha.captcha_length,
    )
    app.state.users = users
    app.state.captcha_service = captcha
    app.state.auth_flow = AuthenticationFlow(
        users,
        captcha,
        AccountSecurityTokenPolicy(settings.tokens),
        email,
        settings.jwt,
        require_verified_email_for_login=settings.tokens.require_verified_email_for_login,
    )


async def _purge_periodically(store: InMemoryChallengeStore) -> None:
    while True:
        await asyncio.sleep(PURGE_INTERVAL_SECONDS)
        store.purge_expired()


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Create and return a fully configured FastAPI application."""
    if settings is None:
        settings = AppSettings()

    setup_logging(
        log_level=settings.logging.log_level,
        log_format=settings.logging.log_format,
        env=settings.env,
    )

    if settings.is_production and settings.email.email_backend == "console":
        log.critical("console_email_backend_in_production")
        raise RuntimeError("EMAIL_BACKEND=console is not allowed in production")

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        mongo_client: AsyncMongoClient = AsyncMongoClient(
            settings.db.mongodb_uri, tz_aware=True
        )
        app.state.mongo_client = mongo_client
        app.state.db = mongo_client[settings.db.db_name]
        app.state.settings = settings

        # Redis is optional; without it captcha answers stay in this process
        redis_client: Optional[aioredis.Redis] = None
        if settings.redis.redis_uri:
            redis_client = await create_redis_client(settings.redis.redis_uri)
        app.state.redis = redis_client

        purge_task: Optional[asyncio.Task] = None
        if redis_client is not None:
            store: ChallengeStore = RedisChallengeStore(redis_client)
        else:
            memory_store: InMemoryChallengeStore[str] = InMemoryChallengeStore()
            purge_task = asyncio.create_task(_purge_periodically(memory_store))
            store = memory_store

        http_client = HttpClient()
        wire_services(
            app,
            settings,
            app.state.db,
            store,
            build_email_provider(settings, http_client),
        )
        await app.state.users.ensure_indexes()
        log.info(
            "app_started",
            challenge_store=type(store).__name__,
            require_verified_email=settings.tokens.require_verified_email_for_login,
        )

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        await app.state.auth_flow.drain()
        if purge_task is not None:
            purge_task.cancel()
            with suppress(asyncio.CancelledError):
                await purge_task
        await http_client.aclose()
        await mongo_client.close()
        if redis_client is not None:
            await redis_client.aclose()

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(captcha_router)
    app.include_router(auth_router)

    return app
