"""
Captcha endpoints.

POST /captcha/generate: new challenge: {captchaId, imageBase64, expiresAt}
POST /captcha/refresh : discard {captchaId} and return a new challenge

The answer itself is submitted later inside the login/register body.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from dependencies import get_captcha_service
from schemas.dto.requests.captcha import RefreshCaptchaRequest
from schemas.dto.responses.captcha import CaptchaResponse
from schemas.dto.responses.common import ErrorResponse
from services.captcha_service import CaptchaChallengeService

router = APIRouter(
    prefix="/captcha",
    tags=["captcha"],
    responses={500: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)


@router.post("/generate", response_model=CaptchaResponse)
async def generate_captcha(
    captcha: CaptchaChallengeService = Depends(get_captcha_service),
) -> CaptchaResponse:
    challenge = await captcha.generate()
    return CaptchaResponse.from_challenge(challenge)


@router.post("/refresh", response_model=CaptchaResponse)
async def refresh_captcha(
    body: RefreshCaptchaRequest,
    captcha: CaptchaChallengeService = Depends(get_captcha_service),
) -> CaptchaResponse:
    challenge = await captcha.refresh(body.captcha_id)
    return CaptchaResponse.from_challenge(challenge)
