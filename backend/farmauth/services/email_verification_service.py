"""Single-use email verification tokens."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional
import logging

from sqlalchemy.orm import Session

from farmauth.config import settings
from farmauth.core.security import generate_secure_token, hash_token, utcnow
from farmauth.models.security import EmailVerificationToken
from farmauth.models.user import User

logger = logging.getLogger(__name__)


class EmailVerificationService:
    """Issue and redeem verification links; the store keeps sha256 digests only."""

    @staticmethod
    def create_token(db: Session, user: User, now: Optional[datetime] = None) -> str:
        """Issue a token for the user's current email, dropping earlier unused ones."""
        now = now or utcnow()
        db.query(EmailVerificationToken).filter(
            EmailVerificationToken.user_id == user.id,
            EmailVerificationToken.used_at.is_(None),
        ).delete(synchronize_session=False)

        value = generate_secure_token()
        db.add(EmailVerificationToken(
            user_id=user.id,
            email=user.email,
            token_hash=hash_token(value),
            created_at=now,
            expires_at=now + timedelta(hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS),
        ))
        db.commit()
        return value

    @staticmethod
    def verify(db: Session, token: str, now: Optional[datetime] = None) -> Optional[User]:
        """
        Redeem a token and mark its user verified.

        Returns:
            The verified user, or None for unknown, expired, used or stale
            tokens (issued for an address the user no longer has)
        """
        now = now or utcnow()
        record = (
            db.query(EmailVerificationToken)
            .filter(EmailVerificationToken.token_hash == hash_token(token))
            .first()
        )
        if record is None:
            return None
        user = db.query(User).filter(User.id == record.user_id).first()
        if user is None or user.email != record.email:
            return None

        claimed = (
            db.query(EmailVerificationToken)
            .filter(
                EmailVerificationToken.id == record.id,
                EmailVerificationToken.used_at.is_(None),
                EmailVerificationToken.expires_at > now,
            )
            .update({EmailVerificationToken.used_at: now}, synchronize_session=False)
        )
        if claimed != 1:
            db.rollback()
            return None

        if not user.email_verified:
            user.email_verified = True
            user.email_verified_at = now
        db.commit()
        db.refresh(user)
        logger.info(f"Email verified for user: {user.id}")
        return user

    @staticmethod
    def purge_expired(db: Session, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        count = (
            db.query(EmailVerificationToken)
            .filter((EmailVerificationToken.expires_at <= now) | (EmailVerificationToken.used_at.isnot(None)))
            .delete(synchronize_session=False)
        )
        db.commit()
        return count


email_verification_service = EmailVerificationService()
