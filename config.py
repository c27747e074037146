"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (and .env file).
AppSettings composes the per-concern sub-configs; each sub-config reads
the same environment so it can also be instantiated on its own in tests.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    mongodb_uri: str
    db_name: str = "todo-app"


class RedisSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Optional: without Redis, captcha answers live in process memory
    redis_uri: Optional[str] = None


class JWTSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    jwt_issuer: str = "todo-app"
    jwt_audience: str = "todo-app.api"
    access_token_ttl_seconds: int = 900
    remember_me_ttl_seconds: int = 2592000

    # RS256 keys (preferred)
    jwt_private_key: str = ""
    jwt_public_key: str = ""

    # HS256 fallback (used when RS256 keys are absent)
    jwt_secret: str = ""

    @property
    def use_rs256(self) -> bool:
        return bool(self.jwt_private_key and self.jwt_public_key)


class EmailSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # "console" only logs the link; create_app refuses it in production
    email_backend: Literal["console", "zeptomail"] = "console"
    zepto_api_token: str = ""
    zepto_from_email: str = "noreply@todo-app.local"
    zepto_from_name: str = "Todo App"


class CaptchaSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    captcha_ttl_seconds: int = 300
    # Glyphs are squeezed to fit the canvas; past 8 they overlap illegibly
    captcha_length: int = Field(default=4, ge=1, le=8)
    captcha_width: int = 120
    captcha_height: int = 40
    # TrueType font for glyphs; Pillow's bundled font is used when unset
    captcha_font_path: Optional[str] = None


class AccountTokenSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    email_verification_ttl_seconds: int = 86400
    password_reset_ttl_seconds: int = 3600
    require_verified_email_for_login: bool = False


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = "INFO"
    log_format: str = "console"  # "json" in production


class SentrySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sentry_dsn: str = ""
    sentry_send_pii: bool = False
    sentry_traces_sample_rate: float = 0.1


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    env: str = "development"
    app_url: str = "http://localhost:5173"
    app_name: str = "todo-app"
    docs_url: Optional[str] = "/docs"

    cors_origins: list[str] = ["http://localhost:5173"]

    db: Optional[DatabaseSettings] = None
    redis: Optional[RedisSettings] = None
    jwt: Optional[JWTSettings] = None
    email: Optional[EmailSettings] = None
    captcha: Optional[CaptchaSettings] = None
    tokens: Optional[AccountTokenSettings] = None
    logging: Optional[LoggingSettings] = None
    sentry: Optional[SentrySettings] = None

    @model_validator(mode="after")
    def _populate_sub_configs(self) -> "AppSettings":
        # Populate sub-configs from the same env/dotenv source
        if self.db is None:
            self.db = DatabaseSettings()
        if self.redis is None:
            self.redis = RedisSettings()
        if self.jwt is None:
            self.jwt = JWTSettings()
        if self.email is None:
            self.email = EmailSettings()
        if self.captcha is None:
            self.captcha = CaptchaSettings()
        if self.tokens is None:
            self.tokens = AccountTokenSettings()
        if self.logging is None:
            self.logging = LoggingSettings()
        if self.sentry is None:
            self.sentry = SentrySettings()

        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"
