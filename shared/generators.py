"""
Random code and token generators: pure functions.

Account tokens and challenge ids come from the ``secrets`` module. Captcha
text takes an explicit ``random.Random`` so callers decide between a seeded
generator (tests) and ``random.SystemRandom`` (production).
"""

from __future__ import annotations

import random
import secrets
import uuid

# No 0/O, 1/I/L: the answer must be readable after distortion
CAPTCHA_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"


def generate_captcha_text(rng: random.Random, length: int = 4) -> str:
    """Draw *length* characters from :data:`CAPTCHA_ALPHABET`.

    Args:
        rng: Random source; pass a seeded ``random.Random`` for reproducibility.
        length: Number of characters (default 4).

    Returns:
        Uppercase alphanumeric string.
    """
    return "".join(rng.choice(CAPTCHA_ALPHABET) for _ in range(length))


def generate_challenge_id() -> str:
    """Return an opaque 128-bit identifier as 32 hex characters."""
    return uuid.uuid4().hex


def generate_secure_token(length: int = 32) -> str:
    """Generate a cryptographically secure URL-safe random token.

    Args:
        length: Number of random bytes before base64 encoding (default 32).
            The resulting string will be longer than *length* characters.

    Returns:
        URL-safe base64-encoded token string.
    """
    return secrets.token_urlsafe(length)
