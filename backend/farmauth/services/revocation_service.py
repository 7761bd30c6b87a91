"""Revocation ledger for access and refresh token ids."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from farmauth.core.security import utcnow
from farmauth.models.security import RevokedToken

logger = logging.getLogger(__name__)


class RevocationService:
    """Record revoked jtis until their natural expiry."""

    @staticmethod
    def revoke(
        db: Session,
        jti: str,
        token_type: str,
        user_id: Optional[str],
        expires_at: datetime,
    ) -> bool:
        """Idempotent insert; returns False when the jti was already recorded."""
        if RevocationService.is_revoked(db, jti):
            return False
        db.add(RevokedToken(jti=jti, token_type=token_type, user_id=user_id, expires_at=expires_at))
        try:
            db.commit()
        except IntegrityError:
            # Concurrent revoke of the same jti already landed.
            db.rollback()
            return False
        return True

    @staticmethod
    def is_revoked(db: Session, jti: str) -> bool:
        return db.query(RevokedToken.id).filter(RevokedToken.jti == jti).first() is not None

    @staticmethod
    def purge_expired(db: Session, now: Optional[datetime] = None) -> int:
        """Drop entries whose token could no longer validate anyway."""
        count = (
            db.query(RevokedToken)
            .filter(RevokedToken.expires_at <= (now or utcnow()))
            .delete(synchronize_session=False)
        )
        db.commit()
        if count:
            logger.info(f"Purged {count} expired revocation entries")
        return count


revocation_service = RevocationService()
