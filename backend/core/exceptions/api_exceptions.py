from fastapi import HTTPException
from datetime import datetime, timezone
from core.utils.uuid_utils import uuid7
from typing import Any, Dict, Optional


class APIException(HTTPException):
    """Custom API exception with enhanced error details"""

    def __init__(
        self,
        status_code: int,
        message: str = "An unexpected API error occurred",
        detail: Optional[str] = None,
        error_code: Optional[str] = None,
        correlation_id: Optional[str] = None,
        errors: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        self.message = message
        self.detail = detail or message
        self.error_code = error_code or f"ERR_{status_code}"
        self.correlation_id = correlation_id or str(uuid7())
        self.errors = errors or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()

        super().__init__(status_code=status_code, detail=self.detail, **kwargs)


class BadRequestException(APIException):
    """Caller input is malformed. Never retried."""

    def __init__(
        self,
        message: str = "Bad request",
        errors: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ):
        super().__init__(
            status_code=400,
            message=message,
            error_code="BAD_REQUEST",
            correlation_id=correlation_id,
            errors=errors,
        )


class PublishFailedException(APIException):
    """The event could not be published; no further automatic retry will happen."""

    def __init__(
        self,
        message: str = "Failed to publish event",
        attempts: int = 0,
        retryable: bool = False,
        correlation_id: Optional[str] = None,
    ):
        self.attempts = attempts
        self.retryable = retryable
        super().__init__(
            status_code=500,
            message=message,
            error_code="PUBLISH_FAILED",
            correlation_id=correlation_id,
        )



class ConflictException(APIException):
    """The request clashes with one already in progress"""

    def __init__(self, message: str = "Resource conflict", correlation_id: Optional[str] = None):
        super().__init__(
            status_code=409,
            message=message,
            error_code="CONFLICT_ERROR",
            correlation_id=correlation_id,
        )
