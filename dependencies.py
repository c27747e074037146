"""
FastAPI dependency providers.

All injectable dependencies are defined here as plain functions used with
FastAPI's Depends() system. The objects themselves are built once in the
app lifespan and stored on app.state.
"""

from __future__ import annotations

from fastapi import Request

from config import AppSettings
from services.auth_service import AuthenticationFlow
from services.captcha_service import CaptchaChallengeService


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


def get_captcha_service(request: Request) -> CaptchaChallengeService:
    return request.app.state.captcha_service


def get_auth_flow(request: Request) -> AuthenticationFlow:
    return request.app.state.auth_flow
