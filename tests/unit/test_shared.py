"""
Unit tests for the shared/ utility modules.

Covers:
- shared.generators      (generate_captcha_text, generate_challenge_id,
                          generate_secure_token)
- shared.datetime_utils  (ensure_utc, to_iso_z)
- shared.crypto          (hash_password, verify_password, hash_token,
                          constant_time_equals)
- shared.session_tokens  (generate_access_jwt)
- shared.logging         (redact_sensitive_fields)
"""

from __future__ import annotations

import hashlib
import random
import re
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from config import JWTSettings
from shared.crypto import (
    constant_time_equals,
    hash_password,
    hash_token,
    verify_password,
)
from shared.datetime_utils import ensure_utc, to_iso_z, utc_now
from shared.generators import (
    CAPTCHA_ALPHABET,
    generate_captcha_text,
    generate_challenge_id,
    generate_secure_token,
)
from shared.logging import redact_sensitive_fields
from shared.session_tokens import generate_access_jwt


# ---------------------------------------------------------------------------
# shared.generators
# ---------------------------------------------------------------------------


class TestGenerateCaptchaText:
    def test_default_length(self):
        assert len(generate_captcha_text(random.Random(1))) == 4

    def test_custom_length(self):
        assert len(generate_captcha_text(random.Random(1), 6)) == 6

    def test_alphabet_only(self):
        text = generate_captcha_text(random.Random(3), 200)
        assert set(text) <= set(CAPTCHA_ALPHABET)

    def test_alphabet_has_no_lookalikes(self):
        assert not set("01ILO") & set(CAPTCHA_ALPHABET)

    def test_seeded_is_reproducible(self):
        assert generate_captcha_text(random.Random(5)) == generate_captcha_text(
            random.Random(5)
        )


class TestGenerateChallengeId:
    def test_is_32_hex(self):
        assert re.fullmatch(r"[0-9a-f]{32}", generate_challenge_id())

    def test_unique(self):
        assert len({generate_challenge_id() for _ in range(100)}) == 100


class TestGenerateSecureToken:
    def test_url_safe_characters(self):
        assert re.match(r"^[A-Za-z0-9_\-]+$", generate_secure_token())

    def test_at_least_256_bits(self):
        assert len(generate_secure_token()) >= 43

    def test_produces_variety(self):
        assert len({generate_secure_token() for _ in range(10)}) > 1


# ---------------------------------------------------------------------------
# shared.datetime_utils
# ---------------------------------------------------------------------------


class TestEnsureUtc:
    def test_naive_assumed_utc(self):
        result = ensure_utc(datetime(2025, 1, 1, 12, 0))
        assert result == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_other_zone_converted(self):
        plus_two = timezone(timedelta(hours=2))
        result = ensure_utc(datetime(2025, 1, 1, 14, 0, tzinfo=plus_two))
        assert result == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert result.utcoffset() == timedelta(0)


def test_to_iso_z():
    assert to_iso_z(datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)) == "2025-01-01T12:00:00Z"


def test_utc_now_is_aware():
    assert utc_now().tzinfo is not None


# ---------------------------------------------------------------------------
# shared.crypto
# ---------------------------------------------------------------------------


class TestHashPassword:
    def test_returns_string(self):
        assert isinstance(hash_password("secret"), str)

    def test_differs_from_input(self):
        assert hash_password("secret") != "secret"

    def test_unique_salts(self):
        # argon2 produces a new salt each call
        assert hash_password("same") != hash_password("same")


class TestVerifyPassword:
    @pytest.mark.parametrize(
        "candidate, expected",
        [("correct_password", True), ("wrong_password", False)],
        ids=["correct", "wrong"],
    )
    def test_verify(self, candidate, expected):
        h = hash_password("correct_password")
        assert verify_password(candidate, h) is expected

    def test_invalid_hash_returns_false(self):
        assert verify_password("any", "not-a-valid-hash") is False


def test_hash_token_known_value():
    assert hash_token("test") == hashlib.sha256(b"test").hexdigest()


def test_hash_token_distinct_inputs():
    assert hash_token("token_a") != hash_token("token_b")


@pytest.mark.parametrize(
    "left, right, expected",
    [("k3f9", "k3f9", True), ("k3f9", "k3f8", False), ("k3f9", "k3f", False), ("", "", True)],
)
def test_constant_time_equals(left, right, expected):
    assert constant_time_equals(left, right) is expected


# ---------------------------------------------------------------------------
# shared.session_tokens
# ---------------------------------------------------------------------------


def _decode(token: str, settings: JWTSettings) -> dict:
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=["HS256"],
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
    )


class TestAccessJwt:
    def test_round_trip_hs256(self, jwt_settings):
        token = generate_access_jwt("user-1", jwt_settings, email_verified=True)
        claims = _decode(token, jwt_settings)
        assert claims["sub"] == "user-1"
        assert claims["email_verified"] is True
        assert claims["amr"] == ["pwd"]
        assert claims["exp"] - claims["iat"] == jwt_settings.access_token_ttl_seconds

    def test_explicit_ttl(self, jwt_settings):
        token = generate_access_jwt("user-1", jwt_settings, ttl_seconds=60)
        claims = _decode(token, jwt_settings)
        assert claims["exp"] - claims["iat"] == 60

    def test_expired_token_rejected(self, jwt_settings):
        past = datetime(2020, 1, 1, tzinfo=timezone.utc)
        token = generate_access_jwt("user-1", jwt_settings, clock=lambda: past)
        with pytest.raises(jwt.ExpiredSignatureError):
            _decode(token, jwt_settings)

    def test_wrong_audience_rejected(self, jwt_settings):
        token = generate_access_jwt("user-1", jwt_settings)
        other = jwt_settings.model_copy(update={"jwt_audience": "someone-else"})
        with pytest.raises(jwt.InvalidAudienceError):
            _decode(token, other)

    def test_missing_secret_raises(self):
        settings = JWTSettings(jwt_secret="", jwt_private_key="", jwt_public_key="")
        with pytest.raises(RuntimeError):
            generate_access_jwt("user-1", settings)


# ---------------------------------------------------------------------------
# shared.logging
# ---------------------------------------------------------------------------


class TestRedactSensitiveFields:
    def test_redacts_known_and_fragment_keys(self):
        event = {
            "event": "x",
            "password": "p",
            "reset_token": "t",
            "captcha_answer": "k3f9",
            "client_secret": "s",
        }
        out = redact_sensitive_fields(None, "info", event)
        for key in ("password", "reset_token", "captcha_answer", "client_secret"):
            assert out[key] == "***REDACTED***"

    def test_keeps_ordinary_keys(self):
        event = {"event": "captcha_generated", "captcha_id": "abc", "kind": "password_reset"}
        out = redact_sensitive_fields(None, "info", dict(event))
        assert out == event

    def test_redacts_links_carrying_tokens(self):
        event = {
            "event": "email_console_delivery",
            "link": "http://localhost:5173/reset-password?token=abc",
        }
        out = redact_sensitive_fields(None, "info", event)
        assert out["link"] == "***REDACTED***"
