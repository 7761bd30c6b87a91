"""Database models"""

from farmauth.models.user import User
from farmauth.models.security import (
    RefreshToken,
    RevokedToken,
    CsrfToken,
    LoginAttempt,
    PasswordResetToken,
    EmailVerificationToken,
)
from farmauth.models.audit import SecurityEvent

__all__ = [
    "User",
    "RefreshToken",
    "RevokedToken",
    "CsrfToken",
    "LoginAttempt",
    "PasswordResetToken",
    "EmailVerificationToken",
    "SecurityEvent",
]
