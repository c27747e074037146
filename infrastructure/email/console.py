"""Console EmailProvider for local development: logs instead of sending.

The plaintext token never reaches the log. Each delivery records the
frontend path and the first characters of the token's SHA-256 digest, which
match the digest held in the user's token slot.
"""

from typing import Optional

from shared.crypto import hash_token
from shared.logging import get_logger

log = get_logger(__name__)

DIGEST_PREFIX_LENGTH = 12


class ConsoleEmailProvider:
    def __init__(self, app_url: str = "http://localhost:5173") -> None:
        self._app_url = app_url.rstrip("/")

    def _record(self, email: str, kind: str, path: str, token: str) -> bool:
        log.info(
            "email_console_delivery",
            to_email=email,
            kind=kind,
            path=f"{self._app_url}{path}",
            digest_prefix=hash_token(token)[:DIGEST_PREFIX_LENGTH],
        )
        return True

    async def send_verification_email(
        self, email: str, user_name: Optional[str], token: str
    ) -> bool:
        return self._record(email, "email_verification", "/verify-email", token)

    async def send_password_reset_email(
        self, email: str, user_name: Optional[str], token: str
    ) -> bool:
        return self._record(email, "password_reset", "/reset-password", token)
