"""Pydantic schemas for API validation"""

from farmauth.schemas.auth import (
    SignupRequest,
    LoginRequest,
    RefreshRequest,
    ForgotPasswordRequest,
    ResetPasswordRequest,
    VerificationRequest,
    VerifyEmailRequest,
    PublicUser,
    SessionResponse,
    RefreshResponse,
    ValidateResponse,
    LogoutResponse,
    MessageResponse,
    RefreshStatusResponse,
    VerifyEmailResponse,
)
from farmauth.schemas.response import ErrorResponse, HealthResponse

__all__ = [
    "SignupRequest", "LoginRequest", "RefreshRequest",
    "ForgotPasswordRequest", "ResetPasswordRequest", "VerificationRequest", "VerifyEmailRequest",
    "PublicUser", "SessionResponse", "RefreshResponse", "ValidateResponse",
    "LogoutResponse", "MessageResponse", "RefreshStatusResponse", "VerifyEmailResponse",
    "ErrorResponse", "HealthResponse",
]
