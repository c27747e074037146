"""
Authentication endpoints.

POST /auth/register             : 201, requires a valid captcha
POST /auth/login                : 200 {accessToken, expiresIn, user}
POST /auth/forgot-password      : always 200 (no account-existence leak)
POST /auth/validate-reset-token : 200 {valid}
POST /auth/reset-password       : 200, or 400 invalid_or_expired_token
POST /auth/verify-email         : 200, or 400 invalid_or_expired_token
POST /auth/resend-verification  : always 200

Failures are raised as AppError subclasses and rendered by the global
handler in errors.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from dependencies import get_auth_flow
from schemas.dto.requests.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResendVerificationRequest,
    ResetPasswordRequest,
    TokenRequest,
)
from schemas.dto.responses.auth import (
    LoginResponse,
    RegisterResponse,
    UserProfileResponse,
    ValidateTokenResponse,
)
from schemas.dto.responses.common import ErrorResponse, MessageResponse
from services.auth_service import AuthenticationFlow

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)


@router.post(
    "/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED
)
async def register(
    body: RegisterRequest, flow: AuthenticationFlow = Depends(get_auth_flow)
) -> RegisterResponse:
    user = await flow.register(body)
    return RegisterResponse(
        user=UserProfileResponse.from_user(user), requires_verification=True
    )


@router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest, flow: AuthenticationFlow = Depends(get_auth_flow)
) -> LoginResponse:
    result = await flow.login(body)
    return LoginResponse(
        access_token=result.access_token,
        expires_in=result.expires_in,
        user=UserProfileResponse.from_user(result.user),
    )


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    body: ForgotPasswordRequest, flow: AuthenticationFlow = Depends(get_auth_flow)
) -> MessageResponse:
    await flow.forgot_password(body.email)
    return MessageResponse(
        success=True,
        message="If an account exists for that email, a reset link has been sent",
    )


@router.post("/validate-reset-token", response_model=ValidateTokenResponse)
async def validate_reset_token(
    body: TokenRequest, flow: AuthenticationFlow = Depends(get_auth_flow)
) -> ValidateTokenResponse:
    return ValidateTokenResponse(valid=await flow.validate_reset_token(body.token))


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    body: ResetPasswordRequest, flow: AuthenticationFlow = Depends(get_auth_flow)
) -> MessageResponse:
    await flow.reset_password(body.token, body.new_password)
    return MessageResponse(success=True, message="Password reset successfully")


@router.post("/verify-email", response_model=MessageResponse)
async def verify_email(
    body: TokenRequest, flow: AuthenticationFlow = Depends(get_auth_flow)
) -> MessageResponse:
    await flow.verify_email(body.token)
    return MessageResponse(success=True, message="Email verified")


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification(
    body: ResendVerificationRequest, flow: AuthenticationFlow = Depends(get_auth_flow)
) -> MessageResponse:
    await flow.resend_verification(body.email)
    return MessageResponse(
        success=True,
        message="If the account needs verification, a new link has been sent",
    )
