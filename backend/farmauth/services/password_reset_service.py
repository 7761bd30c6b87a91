"""Single-use password reset tokens."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from farmauth.config import settings
from farmauth.core.security import generate_secure_token, hash_token, utcnow
from farmauth.models.security import PasswordResetToken
from farmauth.models.user import User


class PasswordResetService:
    """Only sha256 digests are stored; the raw token exists in the emailed link."""

    @staticmethod
    def create_token(db: Session, user: User, now: Optional[datetime] = None) -> str:
        """Replace any unused tokens of the user with a fresh one."""
        now = now or utcnow()
        db.query(PasswordResetToken).filter(
            PasswordResetToken.user_id == user.id,
            PasswordResetToken.used_at.is_(None),
        ).delete(synchronize_session=False)

        value = generate_secure_token()
        db.add(PasswordResetToken(
            user_id=user.id,
            token_hash=hash_token(value),
            created_at=now,
            expires_at=now + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES),
        ))
        db.commit()
        return value

    @staticmethod
    def consume(db: Session, token: str, now: Optional[datetime] = None) -> Optional[str]:
        """
        Mark a token used and return its user id.

        Returns None for unknown, expired or already used tokens. Two concurrent
        consumers of the same token cannot both succeed.
        """
        now = now or utcnow()
        token_hash = hash_token(token)
        record = db.query(PasswordResetToken).filter(PasswordResetToken.token_hash == token_hash).first()
        if record is None:
            return None
        claimed = (
            db.query(PasswordResetToken)
            .filter(
                PasswordResetToken.id == record.id,
                PasswordResetToken.used_at.is_(None),
                PasswordResetToken.expires_at > now,
            )
            .update({PasswordResetToken.used_at: now}, synchronize_session=False)
        )
        db.commit()
        return record.user_id if claimed == 1 else None

    @staticmethod
    def purge_expired(db: Session, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        count = (
            db.query(PasswordResetToken)
            .filter((PasswordResetToken.expires_at <= now) | (PasswordResetToken.used_at.isnot(None)))
            .delete(synchronize_session=False)
        )
        db.commit()
        return count


password_reset_service = PasswordResetService()
