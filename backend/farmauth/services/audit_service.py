"""Audit service for security events."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from prometheus_client import Counter
from sqlalchemy.orm import Session

from farmauth.models.audit import SecurityEvent

logger = logging.getLogger(__name__)

SECURITY_EVENTS = Counter(
    "farmauth_security_events_total",
    "Recorded security events",
    ["event_type"],
)

# Keys never persisted even if a caller passes them in metadata.
_REDACTED_KEYS = {"password", "new_password", "token", "access_token", "refresh_token", "csrf_token"}

_ALERT_EVENTS = {"token_reuse_detected", "account_locked", "login_blocked", "csrf_validation_failed"}


class AuditService:
    """Persist immutable audit trail entries."""

    @staticmethod
    def log_event(
        db: Session,
        *,
        event_type: str,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SecurityEvent:
        clean = {k: v for k, v in (metadata or {}).items() if k not in _REDACTED_KEYS}
        event = SecurityEvent(
            event_type=event_type,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:512] or None,
            metadata_json=json.dumps(clean, ensure_ascii=False, default=str),
        )
        db.add(event)
        db.commit()
        db.refresh(event)
        SECURITY_EVENTS.labels(event_type=event_type).inc()
        level = logging.WARNING if event_type in _ALERT_EVENTS else logging.INFO
        logger.log(level, f"security_event type={event_type} user={user_id} ip={ip_address}")
        return event

    @staticmethod
    def list_events(db: Session, *, user_id: Optional[str] = None, event_type: Optional[str] = None, limit: int = 100):
        query = db.query(SecurityEvent)
        if user_id:
            query = query.filter(SecurityEvent.user_id == user_id)
        if event_type:
            query = query.filter(SecurityEvent.event_type == event_type)
        return query.order_by(SecurityEvent.created_at.desc(), SecurityEvent.id.desc()).limit(limit).all()


audit_service = AuditService()
