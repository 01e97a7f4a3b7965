"""
Structured logging utility for the application
"""
import logging
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class StructuredLogger:
    """
    Structured logger that outputs JSON formatted audit lines
    """

    def __init__(self, name: str = "order_events", service: str = "order-events-api"):
        self.logger = logging.getLogger(name)
        self.service = service

    def _create_log_entry(
        self,
        level: str,
        message: str,
        request_id: Optional[str] = None,
        endpoint: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        exception: Optional[BaseException] = None
    ) -> Dict[str, Any]:
        """
        Create a structured log entry
        """
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level.upper(),
            "message": message,
            "service": self.service,
        }

        if request_id:
            log_entry["request_id"] = request_id

        if endpoint:
            log_entry["endpoint"] = endpoint

        if metadata:
            log_entry["metadata"] = metadata

        if exception:
            log_entry["exception"] = {
                "type": type(exception).__name__,
                "message": str(exception),
            }
            retryable = getattr(exception, "retryable", None)
            if retryable is not None:
                log_entry["exception"]["retryable"] = retryable

        return log_entry

    def _log(self, level: str, message: str, **context):
        log_entry = self._create_log_entry(level, message, **context)
        getattr(self.logger, level)(json.dumps(log_entry, default=str))

    def info(
        self,
        message: str,
        request_id: Optional[str] = None,
        endpoint: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ):
        """Log info message"""
        self._log("info", message, request_id=request_id, endpoint=endpoint, metadata=metadata)

    def warning(
        self,
        message: str,
        request_id: Optional[str] = None,
        endpoint: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        exception: Optional[BaseException] = None
    ):
        """Log warning message"""
        self._log("warning", message, request_id=request_id, endpoint=endpoint,
                  metadata=metadata, exception=exception)

    def error(
        self,
        message: str,
        request_id: Optional[str] = None,
        endpoint: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        exception: Optional[BaseException] = None
    ):
        """Log error message"""
        self._log("error", message, request_id=request_id, endpoint=endpoint,
                  metadata=metadata, exception=exception)


# Create global logger instance
structured_logger = StructuredLogger()
