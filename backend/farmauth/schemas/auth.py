"""Auth request/response schemas"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from farmauth.config import BCRYPT_MAX_PASSWORD_BYTES, settings

EMAIL_PATTERN = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)


def normalize_email(value: str) -> str:
    """Trim, validate and lowercase an email address."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError("Email is required")
    email = value.strip()
    if len(email) > 255:
        raise ValueError("Email is too long")
    local, _, _ = email.partition("@")
    if ".." in local or not EMAIL_PATTERN.match(email):
        raise ValueError("Invalid email format")
    return email.lower()


def check_password_strength(value: str) -> str:
    """Enforce the configured password policy; returns the password unchanged."""
    if not isinstance(value, str) or not value:
        raise ValueError("Password is required")
    if len(value) < settings.PASSWORD_MIN_LENGTH:
        raise ValueError(f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters long")
    if len(value.encode("utf-8")) > settings.PASSWORD_MAX_LENGTH:
        raise ValueError(f"Password must be at most {settings.PASSWORD_MAX_LENGTH} bytes long")
    if settings.PASSWORD_REQUIRE_COMPLEXITY:
        if not re.search(r"[A-Z]", value):
            raise ValueError("Password must contain at least one uppercase letter")
        if not re.search(r"[a-z]", value):
            raise ValueError("Password must contain at least one lowercase letter")
        if not re.search(r"[0-9]", value):
            raise ValueError("Password must contain at least one number")
        if not re.search(r"[^A-Za-z0-9]", value):
            raise ValueError("Password must contain at least one special character")
    return value


def normalize_name(value: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("Name is required")
    name = value.strip()
    if len(name) > 100:
        raise ValueError("Name too long")
    return name


class CamelModel(BaseModel):
    """Base schema exchanging camelCase JSON keys"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SignupRequest(CamelModel):
    """User signup schema"""
    email: str
    password: str
    name: str

    @field_validator("email")
    @classmethod
    def _email(cls, v):
        return normalize_email(v)

    @field_validator("password")
    @classmethod
    def _password(cls, v):
        return check_password_strength(v)

    @field_validator("name")
    @classmethod
    def _name(cls, v):
        return normalize_name(v)


class LoginRequest(CamelModel):
    """User login schema"""
    email: str
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def _email(cls, v):
        return normalize_email(v)

    @field_validator("password")
    @classmethod
    def _password(cls, v):
        if len(v.encode("utf-8")) > BCRYPT_MAX_PASSWORD_BYTES:
            raise ValueError("Password is too long")
        return v


class RefreshRequest(CamelModel):
    """Optional body for clients that cannot send the refresh cookie"""
    refresh_token: Optional[str] = None


class ForgotPasswordRequest(CamelModel):
    email: str

    @field_validator("email")
    @classmethod
    def _email(cls, v):
        return normalize_email(v)


class VerificationRequest(CamelModel):
    """Send or resend a verification link"""
    email: str

    @field_validator("email")
    @classmethod
    def _email(cls, v):
        return normalize_email(v)


class VerifyEmailRequest(CamelModel):
    token: str = Field(..., min_length=1, max_length=512)


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1, max_length=512)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def _password(cls, v):
        return check_password_strength(v)


class PublicUser(CamelModel):
    """User fields safe to return to clients"""
    id: str
    email: str
    name: str
    email_verified: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_user(cls, user) -> "PublicUser":
        data = user.to_dict()
        return cls(
            id=data["id"],
            email=data["email"],
            name=data["name"],
            email_verified=data["emailVerified"],
            created_at=data["createdAt"],
            updated_at=data["updatedAt"],
        )


class SessionResponse(CamelModel):
    """Signup/login response"""
    user: PublicUser
    access_token: str
    refresh_token: str
    csrf_token: str
    expires_in: int


class RefreshResponse(CamelModel):
    access_token: str
    refresh_token: str
    csrf_token: str
    expires_in: int


class ValidateResponse(CamelModel):
    valid: bool = True
    user: PublicUser


class LogoutResponse(CamelModel):
    success: bool = True


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class RefreshStatusResponse(CamelModel):
    has_refresh_token: bool
    message: str


class VerifyEmailResponse(CamelModel):
    success: bool = True
    message: str
    email_verified: bool = True
