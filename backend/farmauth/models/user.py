"""User model"""

import uuid

from sqlalchemy import Boolean, Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from farmauth.core.database import Base
from farmauth.core.security import utcnow


def _new_user_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """User model for authentication"""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_user_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(100), nullable=False)
    # Bumped on password reset; access tokens carry it as the "ver" claim.
    session_version = Column(Integer, default=1, nullable=False)
    email_verified = Column(Boolean, default=False, nullable=False)
    email_verified_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    last_login = Column(DateTime)

    # Relationships
    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id='{self.id}', email='{self.email}')>"

    def to_dict(self):
        """Public fields only"""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "emailVerified": bool(self.email_verified),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
