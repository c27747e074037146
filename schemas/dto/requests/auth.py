"""
Request DTOs for authentication endpoints.

Bodies use camelCase on the wire (``captchaId``, ``newPassword``);
snake_case names are accepted too.

LoginRequest             : POST /auth/login
RegisterRequest          : POST /auth/register
ForgotPasswordRequest    : POST /auth/forgot-password
ResetPasswordRequest     : POST /auth/reset-password
TokenRequest             : POST /auth/validate-reset-token, /auth/verify-email
ResendVerificationRequest: POST /auth/resend-verification
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel

MIN_PASSWORD_LENGTH = 6


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class CaptchaFields(_CamelModel):
    """Captcha answer embedded in login/register bodies.

    Clients send exactly 4 characters, but only equality with the stored
    answer is enforced server-side.
    """

    captcha_id: str = Field(min_length=1)
    captcha_answer: str


class LoginRequest(CaptchaFields):
    email: EmailStr
    password: str = Field(min_length=1)
    remember_me: bool = False


class RegisterRequest(CaptchaFields):
    email: EmailStr
    password: str = Field(min_length=MIN_PASSWORD_LENGTH)
    confirm_password: str
    user_name: Optional[str] = None

    @model_validator(mode="after")
    def _passwords_match(self) -> "RegisterRequest":
        if self.password != self.confirm_password:
            raise ValueError("passwords do not match")
        return self


class ForgotPasswordRequest(_CamelModel):
    email: EmailStr


class ResetPasswordRequest(_CamelModel):
    token: str = Field(min_length=1)
    new_password: str = Field(min_length=MIN_PASSWORD_LENGTH)


class TokenRequest(_CamelModel):
    token: str = Field(min_length=1)


class ResendVerificationRequest(_CamelModel):
    email: EmailStr
