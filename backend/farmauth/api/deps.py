"""API dependencies - request context and authentication"""

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional

from farmauth.config import settings
from farmauth.core.database import get_db
from farmauth.core.exceptions import UnauthorizedError, RateLimitExceededError
from farmauth.models.user import User
from farmauth.services.rate_limiter import rate_limiter
from farmauth.services.session_service import RequestContext, session_service

# HTTP Bearer token scheme; missing credentials are reported as 401 by us, not 403
security = HTTPBearer(auto_error=False)


def get_client_ip(request: Request) -> str:
    """
    Resolve the caller's address

    Proxy headers are honored only when TRUST_PROXY_HEADERS is set.
    """
    if settings.TRUST_PROXY_HEADERS:
        for header in ("CF-Connecting-IP", "X-Forwarded-For", "X-Real-IP"):
            value = request.headers.get(header)
            if value:
                return value.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def get_request_context(request: Request) -> RequestContext:
    return RequestContext(
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    return credentials.credentials if credentials else None


def get_csrf_token(request: Request) -> Optional[str]:
    return request.headers.get(settings.CSRF_HEADER_NAME)


def get_current_user(
    token: Optional[str] = Depends(get_bearer_token),
    db: Session = Depends(get_db)
) -> User:
    """
    Get current authenticated user from the access token

    Raises:
        UnauthorizedError: Token missing, invalid, expired or revoked
    """
    if not token:
        raise UnauthorizedError("Authorization token required")
    return session_service.validate(db, token)


def enforce_rate_limit(scope: str, per_minute: int, per_hour: int):
    """Build a dependency throttling ``scope`` per client IP"""

    def _check(request: Request) -> None:
        if not settings.RATE_LIMIT_ENABLED:
            return
        decision = rate_limiter.check(scope, get_client_ip(request), [(per_minute, 60), (per_hour, 3600)])
        if not decision.allowed:
            raise RateLimitExceededError(
                "Too many requests. Please try again later.",
                details={"retryAfter": decision.retry_after},
            )

    return _check
