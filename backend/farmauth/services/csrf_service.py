"""Per-session CSRF tokens."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from farmauth.config import settings
from farmauth.core.security import generate_csrf_token, hash_token, tokens_match, utcnow
from farmauth.models.security import CsrfToken


class CsrfService:
    """Issue and check the CSRF token bound to a login session (refresh family)."""

    @staticmethod
    def issue(db: Session, session_id: str, user_id: str, now: Optional[datetime] = None) -> str:
        """Replace the session's CSRF token; the previous value stops validating."""
        now = now or utcnow()
        value = generate_csrf_token()
        record = db.query(CsrfToken).filter(CsrfToken.session_id == session_id).first()
        if record is None:
            record = CsrfToken(session_id=session_id, user_id=user_id)
            db.add(record)
        record.token_hash = hash_token(value)
        record.issued_at = now
        record.expires_at = now + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
        db.commit()
        return value

    @staticmethod
    def validate(db: Session, presented: Optional[str], session_id: Optional[str], now: Optional[datetime] = None) -> bool:
        if not presented or not session_id:
            return False
        record = db.query(CsrfToken).filter(CsrfToken.session_id == session_id).first()
        if record is None or (now or utcnow()) >= record.expires_at:
            return False
        return tokens_match(presented, record.token_hash)

    @staticmethod
    def revoke(db: Session, session_id: str) -> None:
        db.query(CsrfToken).filter(CsrfToken.session_id == session_id).delete(synchronize_session=False)
        db.commit()

    @staticmethod
    def purge_expired(db: Session, now: Optional[datetime] = None) -> int:
        count = (
            db.query(CsrfToken)
            .filter(CsrfToken.expires_at <= (now or utcnow()))
            .delete(synchronize_session=False)
        )
        db.commit()
        return count


csrf_service = CsrfService()
