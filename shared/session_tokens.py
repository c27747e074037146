"""
Session credential issuing: stateless access JWTs.

RS256 when a key pair is configured, HS256 with ``jwt_secret`` otherwise.
Verification belongs to the services that accept the credential; they share
the public key (or the secret) and check ``iss`` and ``aud``.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional

import jwt

from config import JWTSettings
from shared.datetime_utils import Clock, utc_now


def _signing_key(settings: JWTSettings) -> tuple[Any, str]:
    if settings.use_rs256:
        # Support keys provided via env with literal \n sequences
        private_key = settings.jwt_private_key.replace("\\n", "\n").encode("utf-8")
        return private_key, "RS256"
    if not settings.jwt_secret:
        raise RuntimeError("JWT_SECRET must be set when RS256 keys are not provided")
    return settings.jwt_secret, "HS256"


def generate_access_jwt(
    user_id: str,
    settings: JWTSettings,
    *,
    email_verified: bool = False,
    ttl_seconds: Optional[int] = None,
    clock: Clock = utc_now,
) -> str:
    key, algorithm = _signing_key(settings)
    now = clock()
    ttl = ttl_seconds if ttl_seconds is not None else settings.access_token_ttl_seconds
    claims = {
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl)).timestamp()),
        "email_verified": email_verified,
        "amr": ["pwd"],  # Authentication Methods References
    }
    return jwt.encode(claims, key, algorithm=algorithm)
