"""
Request DTOs for captcha endpoints.

RefreshCaptchaRequest: POST /captcha/refresh
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class RefreshCaptchaRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    captcha_id: str = Field(alias="captchaId", min_length=1)
