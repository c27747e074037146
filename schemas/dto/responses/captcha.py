"""
Response DTOs for captcha endpoints.

CaptchaResponse: POST /captcha/generate, POST /captcha/refresh
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from services.captcha_service import CaptchaChallenge
from shared.datetime_utils import to_iso_z


class CaptchaResponse(BaseModel):
    """Challenge id, base64 PNG and ISO-8601 UTC expiry."""

    model_config = ConfigDict(populate_by_name=True)

    captcha_id: str = Field(alias="captchaId")
    image_base64: str = Field(alias="imageBase64")
    expires_at: str = Field(alias="expiresAt")

    @classmethod
    def from_challenge(cls, challenge: CaptchaChallenge) -> "CaptchaResponse":
        return cls(
            captcha_id=challenge.captcha_id,
            image_base64=challenge.image_base64,
            expires_at=to_iso_z(challenge.expires_at),
        )
