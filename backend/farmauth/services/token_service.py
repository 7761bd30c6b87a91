"""Refresh token rotation and revocation service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional
import logging
import secrets

from sqlalchemy.orm import Session

from farmauth.config import settings
from farmauth.core.exceptions import TokenError, TokenExpiredError
from farmauth.core.security import (
    REFRESH_TOKEN_TYPE,
    create_refresh_token,
    from_timestamp,
    utcnow,
    verify_token,
)
from farmauth.models.security import RefreshToken
from farmauth.models.user import User

logger = logging.getLogger(__name__)


class RotationStatus(str, Enum):
    ROTATED = "rotated"
    INVALID = "invalid"
    NOT_FOUND = "not_found"
    ALREADY_REVOKED = "already_revoked"
    EXPIRED = "expired"


@dataclass
class IssuedRefreshToken:
    token: str
    jti: str
    family_id: str
    expires_at: datetime


@dataclass
class RotationResult:
    """Outcome of a rotate call; ``issued`` is set only when status is ROTATED."""

    status: RotationStatus
    user_id: Optional[str] = None
    family_id: Optional[str] = None
    issued: Optional[IssuedRefreshToken] = None
    revoked_count: int = 0

    @property
    def ok(self) -> bool:
        return self.status == RotationStatus.ROTATED

    @property
    def theft_suspected(self) -> bool:
        return self.status in (RotationStatus.ALREADY_REVOKED, RotationStatus.NOT_FOUND)


class TokenService:
    """Manage refresh-token family lifecycle."""

    @staticmethod
    def new_family_id() -> str:
        return secrets.token_urlsafe(32)

    @staticmethod
    def _mint(user_id: str, email: str, family_id: str, now: datetime) -> IssuedRefreshToken:
        token = create_refresh_token({"sub": user_id, "email": email}, family_id=family_id, now=now)
        payload = verify_token(token, REFRESH_TOKEN_TYPE, now=now)
        return IssuedRefreshToken(
            token=token,
            jti=payload["jti"],
            family_id=family_id,
            expires_at=from_timestamp(payload["exp"]),
        )

    @staticmethod
    def _create_refresh_record(db: Session, *, user_id: str, issued: IssuedRefreshToken, now: datetime) -> RefreshToken:
        record = RefreshToken(
            user_id=user_id,
            family_id=issued.family_id,
            token_jti=issued.jti,
            issued_at=now,
            expires_at=issued.expires_at,
            revoked=False,
        )
        db.add(record)
        db.flush()
        return record

    @staticmethod
    def issue(
        db: Session,
        user: User,
        family_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> IssuedRefreshToken:
        """Mint and persist a refresh token, starting a new family unless one is given."""
        now = now or utcnow()
        issued = TokenService._mint(user.id, user.email, family_id or TokenService.new_family_id(), now)
        TokenService._create_refresh_record(db, user_id=user.id, issued=issued, now=now)
        db.commit()
        return issued

    @staticmethod
    def _revoke_query(db: Session, *criteria):
        return db.query(RefreshToken).filter(RefreshToken.revoked == False, *criteria)  # noqa: E712

    @staticmethod
    def revoke_family(db: Session, family_id: str, reason: str = "revoked", now: Optional[datetime] = None) -> List[RefreshToken]:
        """Revoke every active token of a family; returns the rows that were active."""
        now = now or utcnow()
        tokens = TokenService._revoke_query(db, RefreshToken.family_id == family_id).all()
        for token in tokens:
            token.revoked = True
            token.revoked_at = now
            token.revoked_reason = reason
        db.commit()
        return tokens

    @staticmethod
    def revoke_all_for_user(db: Session, user_id: str, reason: str = "revoked", now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        count = TokenService._revoke_query(db, RefreshToken.user_id == user_id).update(
            {
                RefreshToken.revoked: True,
                RefreshToken.revoked_at: now,
                RefreshToken.revoked_reason: reason,
            },
            synchronize_session=False,
        )
        db.commit()
        return count

    @staticmethod
    def revoke(db: Session, jti: str, reason: str = "logout", now: Optional[datetime] = None) -> Optional[RefreshToken]:
        """Revoke a single token by jti. Idempotent; None when the jti is unknown."""
        record = db.query(RefreshToken).filter(RefreshToken.token_jti == jti).first()
        if not record:
            return None
        if not record.revoked:
            record.revoked = True
            record.revoked_at = now or utcnow()
            record.revoked_reason = reason
            db.commit()
        return record

    @staticmethod
    def _theft_detected(db: Session, status: RotationStatus, family_id: str, user_id: Optional[str], now: datetime) -> RotationResult:
        revoked = TokenService.revoke_family(db, family_id, reason="reuse_detected", now=now)
        logger.warning(
            f"Refresh token reuse detected ({status.value}) for family {family_id[:8]}...; "
            f"revoked {len(revoked)} active token(s)"
        )
        return RotationResult(status=status, user_id=user_id, family_id=family_id, revoked_count=len(revoked))

    @staticmethod
    def _prune_family(db: Session, family_id: str) -> None:
        # Keep token family bounded; only already-rotated rows are dropped.
        family_tokens = (
            db.query(RefreshToken)
            .filter(RefreshToken.family_id == family_id)
            .order_by(RefreshToken.issued_at.desc(), RefreshToken.id.desc())
            .all()
        )
        for stale in family_tokens[settings.MAX_REFRESH_TOKEN_FAMILY_SIZE:]:
            if stale.revoked:
                db.delete(stale)

    @staticmethod
    def rotate(db: Session, refresh_token: str, now: Optional[datetime] = None) -> RotationResult:
        """
        Exchange a refresh token for a new one in the same family.

        The old row is claimed with a conditional update (revoked false -> true),
        so of two concurrent rotations of the same value exactly one wins. A token
        that is already revoked, or that verifies but is unknown to the store,
        is treated as stolen and its whole family is revoked.
        """
        now = now or utcnow()
        try:
            payload = verify_token(refresh_token, REFRESH_TOKEN_TYPE, now=now)
        except TokenExpiredError:
            return RotationResult(status=RotationStatus.EXPIRED)
        except TokenError:
            return RotationResult(status=RotationStatus.INVALID)

        user_id = str(payload["sub"])
        family_id = payload["fam"]
        record = db.query(RefreshToken).filter(RefreshToken.token_jti == payload["jti"]).first()
        if record is None:
            return TokenService._theft_detected(db, RotationStatus.NOT_FOUND, family_id, user_id, now)
        if record.user_id != user_id or record.family_id != family_id:
            return RotationResult(status=RotationStatus.INVALID)
        if record.revoked:
            return TokenService._theft_detected(db, RotationStatus.ALREADY_REVOKED, family_id, user_id, now)
        if now >= record.expires_at:
            TokenService.revoke(db, record.token_jti, reason="expired", now=now)
            return RotationResult(status=RotationStatus.EXPIRED, user_id=user_id, family_id=family_id)

        user = db.query(User).filter(User.id == user_id).first()
        if user is None:
            return RotationResult(status=RotationStatus.INVALID)

        issued = TokenService._mint(user.id, user.email, family_id, now)
        claimed = TokenService._revoke_query(db, RefreshToken.id == record.id).update(
            {
                RefreshToken.revoked: True,
                RefreshToken.revoked_at: now,
                RefreshToken.revoked_reason: "rotated",
                RefreshToken.replaced_by_jti: issued.jti,
            },
            synchronize_session="evaluate",
        )
        if claimed != 1:
            # A concurrent request rotated this token first.
            db.rollback()
            return TokenService._theft_detected(db, RotationStatus.ALREADY_REVOKED, family_id, user_id, now)

        TokenService._create_refresh_record(db, user_id=user.id, issued=issued, now=now)
        TokenService._prune_family(db, family_id)
        db.commit()
        return RotationResult(status=RotationStatus.ROTATED, user_id=user.id, family_id=family_id, issued=issued)

    @staticmethod
    def detect_reuse(db: Session, refresh_token: Optional[str], now: Optional[datetime] = None) -> Optional[RotationResult]:
        """
        Run the theft path for a replayed token without rotating anything.

        Used when a refresh is refused before rotation (bad CSRF header). A
        verified token that is already revoked or unknown to the store revokes
        its family, as in ``rotate``. Returns None when the token is live,
        expired, forged or does not match its stored row.
        """
        now = now or utcnow()
        try:
            payload = verify_token(refresh_token, REFRESH_TOKEN_TYPE, now=now)
        except TokenError:
            return None

        user_id = str(payload["sub"])
        family_id = payload["fam"]
        record = db.query(RefreshToken).filter(RefreshToken.token_jti == payload["jti"]).first()
        if record is None:
            return TokenService._theft_detected(db, RotationStatus.NOT_FOUND, family_id, user_id, now)
        if record.user_id != user_id or record.family_id != family_id:
            return None
        if record.revoked:
            return TokenService._theft_detected(db, RotationStatus.ALREADY_REVOKED, family_id, user_id, now)
        return None

    @staticmethod
    def has_active_token(db: Session, refresh_token: Optional[str], now: Optional[datetime] = None) -> bool:
        """Whether a presented value maps to a stored, unrevoked, unexpired token."""
        if not refresh_token:
            return False
        try:
            payload = verify_token(refresh_token, REFRESH_TOKEN_TYPE, now=now)
        except TokenError:
            return False
        record = db.query(RefreshToken).filter(RefreshToken.token_jti == payload["jti"]).first()
        return bool(record and not record.revoked and (now or utcnow()) < record.expires_at)

    @staticmethod
    def purge_expired(db: Session, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        count = (
            db.query(RefreshToken)
            .filter(RefreshToken.expires_at <= now)
            .delete(synchronize_session=False)
        )
        db.commit()
        return count


token_service = TokenService()
