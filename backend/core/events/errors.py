"""
Error taxonomy for the event pipeline
"""
from typing import Any, Dict, Optional


class EventError(Exception):
    """Base class for event pipeline failures"""

    retryable = False


class EventValidationError(EventError, ValueError):
    """Payload does not match the schema registered for its topic. Never retried."""

    def __init__(self, message: str, topic: Optional[str] = None, errors: Optional[Dict[str, Any]] = None):
        self.topic = topic
        self.errors = errors or {}
        super().__init__(message)


class BrokerConnectionError(EventError, ConnectionError):
    """Broker unreachable after the configured connection attempts."""

    def __init__(self, message: str, attempts: int = 0, cause: Optional[BaseException] = None):
        self.attempts = attempts
        self.cause = cause
        super().__init__(message)


class SendError(EventError):
    """A single message could not be delivered to the broker."""

    def __init__(self, message: str, retryable: bool, cause: Optional[BaseException] = None):
        self.retryable = retryable
        self.cause = cause
        super().__init__(message)

    def __repr__(self) -> str:
        return f"SendError({str(self)!r}, retryable={self.retryable})"
