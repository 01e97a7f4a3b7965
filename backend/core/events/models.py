"""
Event data model: immutable domain events and publish bookkeeping
"""
import copy
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from core.utils.uuid_utils import uuid7_str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _freeze(value: Any) -> Any:
    """Read-only deep copy: mappings become mappingproxy, lists become tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return copy.deepcopy(value)


def thaw(value: Any) -> Any:
    """Plain dict/list copy of a frozen payload."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value


class DomainEvent(BaseModel):
    """
    A fact about the domain, ready to be published.

    Frozen once constructed, payload included: the payload is copied into
    read-only mappings and tuples, so neither the caller's dict nor
    ``event.payload`` can change what gets published.
    """
    model_config = ConfigDict(frozen=True)

    topic: str = Field(..., min_length=1)
    key: str = Field(..., min_length=1)
    payload: Mapping[str, Any]
    event_type: str = "event"
    event_id: str = Field(default_factory=uuid7_str)
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("payload")
    @classmethod
    def _freeze_payload(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return _freeze(value)

    @field_serializer("payload")
    def _serialize_payload(self, value: Mapping[str, Any]) -> Dict[str, Any]:
        return thaw(value)

    def payload_dict(self) -> Dict[str, Any]:
        """Mutable copy of the payload."""
        return thaw(self.payload)

    def headers(self) -> List[Tuple[str, bytes]]:
        """Metadata carried as Kafka record headers, outside the value bytes."""
        return [
            ("event_id", self.event_id.encode("utf-8")),
            ("event_type", self.event_type.encode("utf-8")),
            ("created_at", self.created_at.isoformat().encode("utf-8")),
        ]


@dataclass(frozen=True)
class AckToken:
    """Broker acknowledgment for one record"""
    topic: str
    partition: int
    offset: int
    timestamp: Optional[int] = None

    @classmethod
    def from_record_metadata(cls, metadata) -> "AckToken":
        return cls(
            topic=metadata.topic,
            partition=metadata.partition,
            offset=metadata.offset,
            timestamp=getattr(metadata, "timestamp", None),
        )


@dataclass
class PublishAttempt:
    """Mutable retry state, owned by the publisher for the span of one publish"""
    event: DomainEvent
    attempt_count: int = 0
    last_error: Optional[Exception] = None


@dataclass(frozen=True)
class PublishResult:
    success: bool
    event_id: str
    attempts: int
    ack: Optional[AckToken] = None
    error: Optional[Exception] = None

    @classmethod
    def acknowledged(cls, attempt: PublishAttempt, ack: AckToken) -> "PublishResult":
        return cls(success=True, event_id=attempt.event.event_id,
                   attempts=attempt.attempt_count, ack=ack)

    @classmethod
    def failed(cls, attempt: PublishAttempt) -> "PublishResult":
        return cls(success=False, event_id=attempt.event.event_id,
                   attempts=attempt.attempt_count, error=attempt.last_error)
