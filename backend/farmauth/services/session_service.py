"""Session orchestration: signup, login, validate, refresh, logout, password reset, email verification"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from farmauth.config import settings
from farmauth.core.exceptions import (
    ForbiddenError,
    InvalidCredentialsError,
    LockedOutError,
    TokenError,
    UnauthorizedError,
    ValidationError,
)
from farmauth.core.security import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    create_access_token,
    from_timestamp,
    utcnow,
    verify_token,
)
from farmauth.models.user import User
from farmauth.schemas.auth import check_password_strength, normalize_email, normalize_name
from farmauth.services.audit_service import audit_service
from farmauth.services.csrf_service import csrf_service
from farmauth.services.email_service import email_service
from farmauth.services.email_verification_service import email_verification_service
from farmauth.services.login_limiter import login_limiter
from farmauth.services.password_reset_service import password_reset_service
from farmauth.services.revocation_service import revocation_service
from farmauth.services.token_service import IssuedRefreshToken, RotationResult, token_service
from farmauth.services.user_service import user_service

logger = logging.getLogger(__name__)


@dataclass
class RequestContext:
    """Caller attributes recorded with security events"""
    ip_address: str = "unknown"
    user_agent: Optional[str] = None


@dataclass
class SessionBundle:
    user: User
    access_token: str
    refresh_token: str
    csrf_token: str
    expires_in: int
    refresh_expires_at: datetime


def _clean(func, value):
    try:
        return func(value)
    except ValueError as exc:
        raise ValidationError(str(exc))


class SessionService:
    """Compose the credential, token, CSRF, ledger and limiter stores into auth flows."""

    @staticmethod
    def _audit(db: Session, event_type: str, ctx: RequestContext, user_id: Optional[str] = None, **metadata: Any) -> None:
        audit_service.log_event(
            db,
            event_type=event_type,
            user_id=user_id,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
            metadata=metadata,
        )

    @staticmethod
    def _reuse_detected(db: Session, ctx: RequestContext, result: RotationResult) -> None:
        SessionService._audit(
            db, "token_reuse_detected", ctx, result.user_id,
            status=result.status.value, revoked_count=result.revoked_count,
        )

    @staticmethod
    def _access_token(user: User, session_id: str, now: datetime) -> str:
        return create_access_token(
            {
                "sub": user.id,
                "email": user.email,
                "sid": session_id,
                "ver": user.session_version,
            },
            now=now,
        )

    @staticmethod
    def _bundle(db: Session, user: User, issued: IssuedRefreshToken, now: datetime) -> SessionBundle:
        return SessionBundle(
            user=user,
            access_token=SessionService._access_token(user, issued.family_id, now),
            refresh_token=issued.token,
            csrf_token=csrf_service.issue(db, issued.family_id, user.id, now=now),
            expires_in=settings.access_token_ttl_seconds,
            refresh_expires_at=issued.expires_at,
        )

    @staticmethod
    def _start_session(db: Session, user: User, now: datetime) -> SessionBundle:
        issued = token_service.issue(db, user, now=now)
        return SessionService._bundle(db, user, issued, now)

    @staticmethod
    def signup(db: Session, email: str, password: str, name: str, ctx: RequestContext) -> SessionBundle:
        """
        Register a user and open their first session

        Raises:
            ValidationError: Malformed email, weak password or empty name
            DuplicateUserError: Email already registered
        """
        email = _clean(normalize_email, email)
        password = _clean(check_password_strength, password)
        name = _clean(normalize_name, name)

        user = user_service.create_user(db, email, password, name)
        user_service.record_login(db, user)
        SessionService._audit(db, "user_registered", ctx, user.id, email=user.email)
        SessionService._send_verification_link(db, user)
        return SessionService._start_session(db, user, utcnow())

    @staticmethod
    def login(db: Session, email: str, password: str, ctx: RequestContext, now: Optional[datetime] = None) -> SessionBundle:
        """
        Authenticate with email/password

        The lockout check runs first, so a locked pair is refused even with the
        right password.

        Raises:
            LockedOutError: Too many recent failures for (email, ip)
            InvalidCredentialsError: Unknown email or wrong password
        """
        now = now or utcnow()
        try:
            email = normalize_email(email)
        except ValueError:
            raise InvalidCredentialsError()

        locked_until = login_limiter.is_locked(db, email, ctx.ip_address, now=now)
        if locked_until:
            SessionService._audit(db, "login_blocked", ctx, email=email, locked_until=locked_until.isoformat())
            raise LockedOutError()

        user = user_service.verify_credentials(db, email, password or "")
        if user is None:
            outcome = login_limiter.record_failure(db, email, ctx.ip_address, now=now)
            SessionService._audit(db, "login_failed", ctx, email=email, attempt=outcome.attempt_count)
            if outcome.locked:
                SessionService._audit(
                    db, "account_locked", ctx,
                    email=email, locked_until=outcome.locked_until.isoformat(),
                )
            raise InvalidCredentialsError()

        login_limiter.record_success(db, email, ctx.ip_address)
        user_service.record_login(db, user)
        SessionService._audit(db, "login_success", ctx, user.id)
        return SessionService._start_session(db, user, now)

    @staticmethod
    def authenticate(db: Session, access_token: Optional[str], now: Optional[datetime] = None) -> Tuple[User, Dict[str, Any]]:
        """Resolve an access token to its user; every failure is UnauthorizedError."""
        try:
            payload = verify_token(access_token, ACCESS_TOKEN_TYPE, now=now)
        except TokenError:
            raise UnauthorizedError()
        if revocation_service.is_revoked(db, payload["jti"]):
            raise UnauthorizedError()
        user = user_service.get_user_by_id(db, str(payload["sub"]))
        if user is None or payload.get("ver") != user.session_version:
            raise UnauthorizedError()
        return user, payload

    @staticmethod
    def validate(db: Session, access_token: Optional[str], now: Optional[datetime] = None) -> User:
        user, _ = SessionService.authenticate(db, access_token, now=now)
        return user

    @staticmethod
    def refresh(
        db: Session,
        refresh_token: Optional[str],
        csrf_token: Optional[str],
        ctx: RequestContext,
        now: Optional[datetime] = None,
    ) -> SessionBundle:
        """
        Rotate the refresh token and mint a new access token and CSRF token

        Raises:
            UnauthorizedError: Missing, invalid, expired or reused refresh token
            ForbiddenError: CSRF header does not match the session's token
        """
        now = now or utcnow()
        if not refresh_token:
            raise UnauthorizedError("Refresh token required")
        try:
            payload = verify_token(refresh_token, REFRESH_TOKEN_TYPE, now=now)
        except TokenError:
            raise UnauthorizedError()

        family_id = payload["fam"]
        if not csrf_service.validate(db, csrf_token, family_id, now=now):
            # A replayed token rarely carries the session's current CSRF token.
            reuse = token_service.detect_reuse(db, refresh_token, now=now)
            if reuse is not None:
                SessionService._reuse_detected(db, ctx, reuse)
                raise UnauthorizedError()
            if not token_service.has_active_token(db, refresh_token, now=now):
                raise UnauthorizedError()
            SessionService._audit(db, "csrf_validation_failed", ctx, str(payload["sub"]), action="refresh")
            raise ForbiddenError()

        result = token_service.rotate(db, refresh_token, now=now)
        if not result.ok:
            if result.theft_suspected:
                SessionService._reuse_detected(db, ctx, result)
            raise UnauthorizedError()

        user = user_service.get_user_by_id(db, result.user_id)
        bundle = SessionService._bundle(db, user, result.issued, now)
        SessionService._audit(db, "token_refreshed", ctx, user.id)
        return bundle

    @staticmethod
    def logout(
        db: Session,
        access_token: Optional[str],
        csrf_token: Optional[str],
        ctx: RequestContext,
        refresh_token: Optional[str] = None,
    ) -> None:
        """
        End the session of ``access_token``

        Revokes the access token's jti, every active refresh token of its
        session, the presented refresh cookie and the session's CSRF token.

        Raises:
            UnauthorizedError: Access token missing, invalid or already revoked
            ForbiddenError: CSRF header does not match the session's token
        """
        user, payload = SessionService.authenticate(db, access_token)
        session_id = payload["sid"]
        if not csrf_service.validate(db, csrf_token, session_id):
            SessionService._audit(db, "csrf_validation_failed", ctx, user.id, action="logout")
            raise ForbiddenError()

        revocation_service.revoke(db, payload["jti"], ACCESS_TOKEN_TYPE, user.id, from_timestamp(payload["exp"]))
        revoked = token_service.revoke_family(db, session_id, reason="logout")
        for record in revoked:
            revocation_service.revoke(db, record.token_jti, REFRESH_TOKEN_TYPE, user.id, record.expires_at)

        if refresh_token:
            try:
                cookie_payload = verify_token(refresh_token, REFRESH_TOKEN_TYPE)
            except TokenError:
                cookie_payload = None
            if cookie_payload and str(cookie_payload["sub"]) == user.id:
                record = token_service.revoke(db, cookie_payload["jti"], reason="logout")
                if record is not None:
                    revocation_service.revoke(db, record.token_jti, REFRESH_TOKEN_TYPE, user.id, record.expires_at)

        csrf_service.revoke(db, session_id)
        revocation_service.purge_expired(db)
        SessionService._audit(db, "logout", ctx, user.id, refresh_tokens_revoked=len(revoked))

    @staticmethod
    def forgot_password(db: Session, email: str, ctx: RequestContext) -> None:
        """Send a reset link when the email is registered; silent otherwise."""
        try:
            email = normalize_email(email)
        except ValueError:
            return
        user = user_service.get_user_by_email(db, email)
        if user is None:
            SessionService._audit(db, "password_reset_requested", ctx, known=False)
            return

        token = password_reset_service.create_token(db, user)
        link = f"{settings.APP_URL.rstrip('/')}/reset-password?token={token}"
        if not email_service.send(user.email, "password_reset", {"name": user.name, "reset_link": link}):
            logger.error(f"Password reset email to user {user.id} was not sent")
        SessionService._audit(db, "password_reset_requested", ctx, user.id, known=True)

    @staticmethod
    def reset_password(db: Session, token: str, new_password: str, ctx: RequestContext) -> None:
        """
        Consume a reset token and set a new password

        Every refresh family of the user is revoked and the session version is
        bumped, so no earlier token keeps working.

        Raises:
            ValidationError: Weak password, or unknown/expired/used token
        """
        new_password = _clean(check_password_strength, new_password)
        user_id = password_reset_service.consume(db, token or "")
        user = user_service.get_user_by_id(db, user_id) if user_id else None
        if user is None:
            raise ValidationError("Invalid or expired reset token")

        user_service.set_password(db, user, new_password)
        revoked = token_service.revoke_all_for_user(db, user.id, reason="password_reset")
        SessionService._audit(db, "password_reset_completed", ctx, user.id, refresh_tokens_revoked=revoked)

    @staticmethod
    def _send_verification_link(db: Session, user: User) -> None:
        token = email_verification_service.create_token(db, user)
        link = f"{settings.APP_URL.rstrip('/')}/verify-email?token={token}"
        if not email_service.send(user.email, "email_verification", {"name": user.name, "verification_link": link}):
            logger.error(f"Verification email to user {user.id} was not sent")

    @staticmethod
    def send_verification(db: Session, email: str, ctx: RequestContext) -> None:
        """
        (Re)send a verification link, replacing any unused one

        Unknown and already verified addresses are answered the same way as
        pending ones, without sending anything.
        """
        try:
            email = normalize_email(email)
        except ValueError:
            return
        user = user_service.get_user_by_email(db, email)
        if user is None or user.email_verified:
            SessionService._audit(db, "verification_requested", ctx, user.id if user else None, sent=False)
            return

        SessionService._send_verification_link(db, user)
        SessionService._audit(db, "verification_requested", ctx, user.id, sent=True)

    @staticmethod
    def verify_email(db: Session, token: str, ctx: RequestContext) -> User:
        """
        Redeem a verification link

        Raises:
            ValidationError: Unknown, expired, used or superseded token
        """
        user = email_verification_service.verify(db, token or "")
        if user is None:
            raise ValidationError("Invalid or expired verification token")
        SessionService._audit(db, "email_verified", ctx, user.id)
        return user


session_service = SessionService()
