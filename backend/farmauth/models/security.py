"""Security-related persistence models."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship

from farmauth.core.database import Base
from farmauth.core.security import utcnow


class RefreshToken(Base):
    """Refresh token record for rotation/revocation.

    ``family_id`` identifies the login session: every token minted by
    rotation inherits it, so reuse of any revoked member can revoke the chain.
    """

    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    family_id = Column(String(128), nullable=False, index=True)
    token_jti = Column(String(128), unique=True, nullable=False, index=True)
    replaced_by_jti = Column(String(128), nullable=True)
    revoked = Column(Boolean, default=False, nullable=False)
    revoked_reason = Column(String(32), nullable=True)
    issued_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="refresh_tokens")

    __table_args__ = (
        Index("idx_refresh_tokens_user_family", "user_id", "family_id"),
    )

    def __repr__(self):
        return f"<RefreshToken(jti='{self.token_jti[:8]}...', family='{self.family_id[:8]}...', revoked={self.revoked})>"


class RevokedToken(Base):
    """Ledger of revoked token ids (jti).

    expires_at mirrors the token's own exp so rows can be purged once the
    token could no longer validate anyway.
    """

    __tablename__ = "revoked_tokens"

    id = Column(Integer, primary_key=True, index=True)
    jti = Column(String(128), unique=True, nullable=False, index=True)
    token_type = Column(String(16), nullable=False)
    user_id = Column(String(36), nullable=True)
    revoked_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)


class CsrfToken(Base):
    """Current CSRF token of a login session (one row per session)."""

    __tablename__ = "csrf_tokens"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(128), unique=True, nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_hash = Column(String(64), nullable=False)
    issued_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)


class LoginAttempt(Base):
    """Failed login counter keyed by (email, ip), independent of user existence."""

    __tablename__ = "login_attempts"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False)
    ip_address = Column(String(64), nullable=False)
    attempt_count = Column(Integer, default=0, nullable=False)
    lockout_count = Column(Integer, default=0, nullable=False)
    window_started_at = Column(DateTime, default=utcnow, nullable=False)
    last_attempt_at = Column(DateTime, default=utcnow, nullable=False)
    locked_until = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("email", "ip_address", name="uq_login_attempts_email_ip"),
    )


class PasswordResetToken(Base):
    """Hashed single-use password reset token."""

    __tablename__ = "password_reset_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime, nullable=True)


class EmailVerificationToken(Base):
    """Hashed single-use token proving control of ``email``."""

    __tablename__ = "email_verification_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # Address the link was sent to; a changed email must not be verified by an old link.
    email = Column(String(255), nullable=False)
    token_hash = Column(String(64), unique=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime, nullable=True)
