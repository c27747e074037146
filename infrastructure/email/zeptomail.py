"""ZeptoMail implementation of EmailProvider.

Sends the two account links (verify email, reset password) through the
ZeptoMail HTTP API. The HTML body comes from a Jinja2 template under
``templates/emails``; a plain-text body is always attached too.

Delivery is best-effort: every failure is logged and reported as ``False``.
"""

import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import EmailSettings
from infrastructure.http_client import HttpClient
from shared.logging import get_logger

log = get_logger(__name__)

ZEPTO_API_URL = "https://api.zeptomail.com/v1.1/email"
ZEPTO_AUTH_SCHEME = "Zoho-enczapikey"
TEMPLATE_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(__file__))),
    "templates",
    "emails",
)


def build_link(app_url: str, path: str, token: str) -> str:
    """Frontend URL that carries *token* as its ``token`` query parameter."""
    return f"{app_url.rstrip('/')}{path}?{urlencode({'token': token})}"


@dataclass(frozen=True)
class AccountEmail:
    subject: str
    html: str
    text: str


class ZeptoMailProvider:
    def __init__(
        self,
        settings: EmailSettings,
        http_client: HttpClient,
        app_url: str = "http://localhost:5173",
        template_dir: str = TEMPLATE_DIR,
        verification_ttl_hours: int = 24,
        reset_ttl_minutes: int = 60,
    ) -> None:
        self._settings = settings
        self._http = http_client
        self._app_url = app_url
        self._verification_ttl_hours = verification_ttl_hours
        self._reset_ttl_minutes = reset_ttl_minutes
        self._templates = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html"]),
        )

    async def send_verification_email(
        self, email: str, user_name: Optional[str], token: str
    ) -> bool:
        link = build_link(self._app_url, "/verify-email", token)
        message = AccountEmail(
            subject=f"Verify your email - {self._settings.zepto_from_name}",
            html=self._templates.get_template("verification.html").render(
                link=link, user_name=user_name, ttl_hours=self._verification_ttl_hours
            ),
            text="\n\n".join(
                [
                    "Verify your email",
                    _greeting(user_name),
                    f"Confirm your address by opening this link:\n{link}",
                    f"The link expires in {self._verification_ttl_hours} hours.",
                ]
            ),
        )
        return await self._deliver(email, user_name, message, kind="email_verification")

    async def send_password_reset_email(
        self, email: str, user_name: Optional[str], token: str
    ) -> bool:
        link = build_link(self._app_url, "/reset-password", token)
        message = AccountEmail(
            subject=f"Reset your password - {self._settings.zepto_from_name}",
            html=self._templates.get_template("password_reset.html").render(
                link=link, user_name=user_name, ttl_minutes=self._reset_ttl_minutes
            ),
            text="\n\n".join(
                [
                    "Reset your password",
                    _greeting(user_name),
                    f"Choose a new password here:\n{link}",
                    f"The link expires in {self._reset_ttl_minutes} minutes. "
                    "If you did not ask for this, ignore this email.",
                ]
            ),
        )
        return await self._deliver(email, user_name, message, kind="password_reset")

    def _authorization(self) -> str:
        credential = self._settings.zepto_api_token
        if credential.startswith(f"{ZEPTO_AUTH_SCHEME} "):
            return credential
        return f"{ZEPTO_AUTH_SCHEME} {credential}"

    def _payload(self, to_email: str, to_name: Optional[str], message: AccountEmail) -> dict:
        return {
            "from": {
                "address": self._settings.zepto_from_email,
                "name": self._settings.zepto_from_name,
            },
            "to": [{"email_address": {"address": to_email, "name": to_name or to_email}}],
            "subject": message.subject,
            "htmlbody": message.html,
            "textbody": message.text,
        }

    async def _deliver(
        self, to_email: str, to_name: Optional[str], message: AccountEmail, *, kind: str
    ) -> bool:
        if not self._settings.zepto_api_token:
            log.error("account_email_not_sent", kind=kind, reason="api_credentials_missing")
            return False

        try:
            response = await self._http.post(
                ZEPTO_API_URL,
                json=self._payload(to_email, to_name, message),
                headers={
                    "Authorization": self._authorization(),
                    "Content-Type": "application/json",
                },
            )
        except Exception as e:
            log.error(
                "account_email_not_sent",
                kind=kind,
                to_email=to_email,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        if response.status_code not in (200, 201, 202):
            log.error(
                "account_email_not_sent",
                kind=kind,
                to_email=to_email,
                status_code=response.status_code,
                response=response.text[:200],
            )
            return False

        log.info("account_email_accepted", kind=kind, to_email=to_email)
        return True


def _greeting(user_name: Optional[str]) -> str:
    return f"Hello {user_name}," if user_name else "Hello,"
