"""
Response DTOs for authentication endpoints.

UserProfileResponse     : user shape embedded in login/register responses
LoginResponse           : POST /auth/login  (200)
RegisterResponse        : POST /auth/register  (201)
ValidateTokenResponse   : POST /auth/validate-reset-token  (200)
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from schemas.models.user import UserDoc


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class UserProfileResponse(_CamelModel):
    id: str
    email: str
    email_verified: bool
    user_name: Optional[str] = None

    @classmethod
    def from_user(cls, user: UserDoc) -> "UserProfileResponse":
        return cls(
            id=str(user.id),
            email=user.email,
            email_verified=user.email_verified,
            user_name=user.user_name,
        )


class LoginResponse(_CamelModel):
    access_token: str
    expires_in: int
    user: UserProfileResponse


class RegisterResponse(_CamelModel):
    user: UserProfileResponse
    requires_verification: bool


class ValidateTokenResponse(_CamelModel):
    valid: bool
