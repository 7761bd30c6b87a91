"""Security utilities - JWT codec, password hashing, random tokens"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
import hashlib
import hmac
import secrets

from jose import JWTError, jwt
import bcrypt

from farmauth.config import BCRYPT_MAX_PASSWORD_BYTES, settings
from farmauth.core.exceptions import (
    TokenExpiredError,
    TokenInvalidError,
    TokenMalformedError,
)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

_REQUIRED_CLAIMS = {
    ACCESS_TOKEN_TYPE: ("sub", "jti", "iat", "exp", "sid"),
    REFRESH_TOKEN_TYPE: ("sub", "jti", "iat", "exp", "fam"),
}


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_timestamp(dt: datetime) -> int:
    """Seconds since epoch; naive datetimes are treated as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def from_timestamp(ts: int) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash

    Args:
        plain_password: Plain text password
        hashed_password: Hashed password

    Returns:
        bool: True if password matches
    """
    password_bytes = plain_password.encode("utf-8")
    if len(password_bytes) > BCRYPT_MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(password_bytes, hashed_password.encode("utf-8"))
    except ValueError:
        # Corrupt or non-bcrypt hash in storage
        return False


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt

    Args:
        password: Plain text password

    Returns:
        str: Hashed password
    """
    return bcrypt.hashpw(
        password.encode('utf-8'),
        bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    ).decode('utf-8')


def _encode(
    data: Dict[str, Any],
    token_type: str,
    expires_delta: timedelta,
    now: Optional[datetime],
) -> str:
    issued_at = to_timestamp(now or utcnow())
    to_encode = data.copy()
    to_encode.update({
        "iat": issued_at,
        "exp": issued_at + int(expires_delta.total_seconds()),
        "jti": secrets.token_urlsafe(32),  # Unique token ID
        "typ": token_type,
    })
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_access_token(
    data: Dict[str, Any],
    expires_delta: Optional[timedelta] = None,
    *,
    now: Optional[datetime] = None,
) -> str:
    """
    Create JWT access token

    Args:
        data: Claims to encode; must carry ``sub`` and ``sid``
        expires_delta: Token lifetime (defaults to ACCESS_TOKEN_EXPIRE_MINUTES)
        now: Issue time override

    Returns:
        str: Encoded JWT token
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _encode(data, ACCESS_TOKEN_TYPE, expires_delta, now)


def create_refresh_token(
    data: Dict[str, Any],
    family_id: str,
    expires_delta: Optional[timedelta] = None,
    *,
    now: Optional[datetime] = None,
) -> str:
    """Create a JWT refresh token bound to a token family (login session)."""
    if expires_delta is None:
        expires_delta = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    payload = dict(data)
    payload["fam"] = family_id
    return _encode(payload, REFRESH_TOKEN_TYPE, expires_delta, now)


def verify_token(
    token: str,
    expected_type: str,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Verify signature, type and expiry of a token. No I/O.

    Expiry is exclusive: a token checked at exactly its ``exp`` second is
    rejected.

    Raises:
        TokenMalformedError: Not a JWT or required claims missing
        TokenInvalidError: Bad signature or wrong token type
        TokenExpiredError: ``now >= exp``
    """
    if not token or not isinstance(token, str):
        raise TokenMalformedError()

    try:
        jwt.get_unverified_claims(token)
    except JWTError:
        raise TokenMalformedError()

    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            options={"verify_exp": False},
        )
    except JWTError:
        raise TokenInvalidError()

    for claim in _REQUIRED_CLAIMS.get(expected_type, ()):
        if claim not in payload:
            raise TokenMalformedError()

    if payload.get("typ") != expected_type:
        raise TokenInvalidError()

    exp = payload["exp"]
    if not isinstance(exp, int):
        raise TokenMalformedError()

    if to_timestamp(now or utcnow()) >= exp:
        raise TokenExpiredError()

    return payload


def generate_csrf_token() -> str:
    """
    Generate CSRF token

    Returns:
        str: Random CSRF token (256 bits, urlsafe)
    """
    return secrets.token_urlsafe(32)


def generate_secure_token() -> str:
    """Random single-use token for emailed links (password reset, email verification)."""
    return secrets.token_urlsafe(48)


def hash_token(value: str) -> str:
    """SHA-256 hex digest for storing bearer secrets."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def tokens_match(presented: str, stored_hash: str) -> bool:
    """Constant-time comparison of a presented secret against its stored hash."""
    return hmac.compare_digest(hash_token(presented), stored_hash)
