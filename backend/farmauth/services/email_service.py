"""Outbound email (delivery intent only for the log backend)."""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Dict, Optional

from farmauth.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """Send templated transactional email."""

    def __init__(self, backend: Optional[str] = None) -> None:
        self.backend = (backend or settings.EMAIL_BACKEND).lower()
        self.sent: deque = deque(maxlen=100)

    def send(self, to: str, template: str, context: Optional[Dict[str, Any]] = None) -> bool:
        """
        Deliver ``template`` to ``to``.

        Context values (reset links and the like) are never logged.

        Returns:
            bool: True if the message was accepted by the backend
        """
        if self.backend == "log":
            logger.info(f"email from={settings.EMAIL_FROM} to={to} template={template}")
            self.sent.append({"to": to, "template": template, "context": dict(context or {})})
            return True
        if self.backend in ("none", "disabled"):
            return False
        logger.error(f"Unsupported EMAIL_BACKEND '{self.backend}'; message to {to} dropped")
        return False

    def clear(self) -> None:
        self.sent.clear()


email_service = EmailService()
