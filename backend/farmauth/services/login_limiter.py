"""Failed-login tracking and temporary lockout per (email, ip)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from farmauth.config import settings
from farmauth.core.security import utcnow
from farmauth.models.security import LoginAttempt

logger = logging.getLogger(__name__)


@dataclass
class FailureOutcome:
    attempt_count: int
    locked_until: Optional[datetime] = None

    @property
    def locked(self) -> bool:
        return self.locked_until is not None


class LoginLimiter:
    """Lockout is decided before credentials are checked and ignores whether they are right."""

    @staticmethod
    def _get(db: Session, email: str, ip_address: str) -> Optional[LoginAttempt]:
        return (
            db.query(LoginAttempt)
            .filter(LoginAttempt.email == email.lower(), LoginAttempt.ip_address == ip_address)
            .first()
        )

    @staticmethod
    def _lockout_duration(lockout_count: int) -> timedelta:
        minutes = settings.LOGIN_LOCKOUT_MINUTES
        if settings.LOGIN_LOCKOUT_BACKOFF:
            minutes = min(minutes * (2 ** lockout_count), settings.LOGIN_LOCKOUT_MAX_MINUTES)
        return timedelta(minutes=minutes)

    @staticmethod
    def is_locked(db: Session, email: str, ip_address: str, now: Optional[datetime] = None) -> Optional[datetime]:
        """Return the lock expiry while a lock is in force, else None."""
        record = LoginLimiter._get(db, email, ip_address)
        if record and record.locked_until and (now or utcnow()) < record.locked_until:
            return record.locked_until
        return None

    @staticmethod
    def record_failure(db: Session, email: str, ip_address: str, now: Optional[datetime] = None) -> FailureOutcome:
        now = now or utcnow()
        email = email.lower()
        record = LoginLimiter._get(db, email, ip_address)
        if record is None:
            record = LoginAttempt(
                email=email,
                ip_address=ip_address,
                attempt_count=0,
                lockout_count=0,
                window_started_at=now,
                last_attempt_at=now,
            )
            db.add(record)
            try:
                db.flush()
            except IntegrityError:
                db.rollback()
                record = LoginLimiter._get(db, email, ip_address)

        window = timedelta(minutes=settings.LOGIN_ATTEMPT_WINDOW_MINUTES)
        lock_expired = record.locked_until is not None and now >= record.locked_until
        if lock_expired or now - record.window_started_at >= window:
            record.attempt_count = 0
            record.window_started_at = now
            record.locked_until = None

        record.attempt_count += 1
        record.last_attempt_at = now
        if record.attempt_count >= settings.LOGIN_MAX_FAILED_ATTEMPTS:
            record.locked_until = now + LoginLimiter._lockout_duration(record.lockout_count)
            record.lockout_count += 1
            logger.warning(f"Login locked for {email} from {ip_address} until {record.locked_until.isoformat()}")

        db.commit()
        return FailureOutcome(attempt_count=record.attempt_count, locked_until=record.locked_until)

    @staticmethod
    def record_success(db: Session, email: str, ip_address: str) -> None:
        db.query(LoginAttempt).filter(
            LoginAttempt.email == email.lower(),
            LoginAttempt.ip_address == ip_address,
        ).delete(synchronize_session=False)
        db.commit()

    @staticmethod
    def purge_stale(db: Session, now: Optional[datetime] = None) -> int:
        """Drop rows whose window and lock have both lapsed."""
        now = now or utcnow()
        cutoff = now - timedelta(minutes=settings.LOGIN_ATTEMPT_WINDOW_MINUTES)
        count = (
            db.query(LoginAttempt)
            .filter(
                LoginAttempt.last_attempt_at <= cutoff,
                (LoginAttempt.locked_until.is_(None)) | (LoginAttempt.locked_until <= now),
            )
            .delete(synchronize_session=False)
        )
        db.commit()
        return count


login_limiter = LoginLimiter()
