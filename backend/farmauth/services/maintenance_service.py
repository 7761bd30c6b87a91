"""Periodic cleanup of expired security rows."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional
import logging

from sqlalchemy.orm import Session

from farmauth.core.security import utcnow
from farmauth.services.csrf_service import csrf_service
from farmauth.services.email_verification_service import email_verification_service
from farmauth.services.login_limiter import login_limiter
from farmauth.services.password_reset_service import password_reset_service
from farmauth.services.revocation_service import revocation_service
from farmauth.services.token_service import token_service

logger = logging.getLogger(__name__)


def purge_expired(db: Session, now: Optional[datetime] = None) -> Dict[str, int]:
    """Delete rows that can no longer affect any decision; returns counts per table."""
    now = now or utcnow()
    counts = {
        "revoked_tokens": revocation_service.purge_expired(db, now),
        "refresh_tokens": token_service.purge_expired(db, now),
        "csrf_tokens": csrf_service.purge_expired(db, now),
        "password_reset_tokens": password_reset_service.purge_expired(db, now),
        "email_verification_tokens": email_verification_service.purge_expired(db, now),
        "login_attempts": login_limiter.purge_stale(db, now),
    }
    logger.info("Maintenance purge: " + ", ".join(f"{k}={v}" for k, v in counts.items()))
    return counts
