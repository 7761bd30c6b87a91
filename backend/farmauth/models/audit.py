"""Security event model (append-only audit trail)."""

from sqlalchemy import Column, Integer, String, DateTime, Text, Index

from farmauth.core.database import Base
from farmauth.core.security import utcnow


class SecurityEvent(Base):
    """Immutable security events."""

    __tablename__ = "security_events"

    id = Column(Integer, primary_key=True, index=True)
    event_type = Column(String(64), nullable=False, index=True)
    # No FK: events for unknown or failed identities must still be recorded.
    user_id = Column(String(36), nullable=True, index=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    metadata_json = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_security_events_created_at", "created_at"),
    )
