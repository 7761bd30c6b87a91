"""Generic API response schemas"""

from datetime import datetime, timezone
from typing import Optional, Any, Dict

from pydantic import BaseModel, Field


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class ErrorBody(BaseModel):
    """Error detail inside the standard error envelope"""
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: str = Field(default_factory=_timestamp)


class ErrorResponse(BaseModel):
    """Generic API error response"""
    success: bool = False
    error: ErrorBody
    request_id: Optional[str] = None

    @classmethod
    def build(
        cls,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ) -> "ErrorResponse":
        return cls(
            error=ErrorBody(code=code, message=message, details=details or {}),
            request_id=request_id,
        )


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    timestamp: str
    readiness: Dict[str, Any] = Field(default_factory=dict)
