"""Custom exception classes for the application"""

from typing import Optional, Dict, Any


class BaseAPIException(Exception):
    """Base exception for all API errors"""

    code = "API_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        code: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        if code:
            self.code = code
        super().__init__(self.message)


# Validation Errors
class ValidationError(BaseAPIException):
    """Malformed or policy-violating input"""
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=400, details=details)


class DuplicateUserError(BaseAPIException):
    """Email already registered"""
    code = "DUPLICATE_USER"

    def __init__(self):
        super().__init__("User with this email already exists", status_code=409)


# Authentication Errors
class AuthenticationError(BaseAPIException):
    """Base authentication error"""
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=401, details=details)


class UnauthorizedError(AuthenticationError):
    """Missing, expired, invalid or revoked token"""
    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message)


class InvalidCredentialsError(AuthenticationError):
    """Invalid email or password (indistinguishable from unknown email)"""
    code = "INVALID_CREDENTIALS"

    def __init__(self):
        super().__init__("Invalid email or password")


class LockedOutError(BaseAPIException):
    """Too many failed logins for this email from this address"""
    code = "LOCKED_OUT"

    def __init__(self):
        super().__init__("Too many failed attempts. Try again later.", status_code=429)


# Token codec errors. Never surfaced as-is: the session layer maps them to
# UnauthorizedError so callers cannot tell the reasons apart.
class TokenError(AuthenticationError):
    """Token could not be verified"""


class TokenMalformedError(TokenError):
    """Token is not a decodable JWT or lacks required claims"""
    def __init__(self):
        super().__init__("Malformed token")


class TokenInvalidError(TokenError):
    """JWT signature or type is invalid"""
    def __init__(self):
        super().__init__("Invalid token")


class TokenExpiredError(TokenError):
    """JWT token has expired"""
    def __init__(self):
        super().__init__("Token has expired")


# Authorization Errors
class ForbiddenError(BaseAPIException):
    """CSRF mismatch or otherwise refused request"""
    code = "FORBIDDEN"

    def __init__(self, message: str = "CSRF validation failed"):
        super().__init__(message, status_code=403)


class RateLimitExceededError(BaseAPIException):
    """Rate limit exceeded"""
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, message: str = "Rate limit exceeded. Please try again later.", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=429, details=details)


# System Errors
class InternalError(BaseAPIException):
    """Store unavailable or unexpected failure"""
    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message, status_code=500)
