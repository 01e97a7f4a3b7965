"""
Event pipeline core: immutable domain events, per-topic schemas,
deterministic serialization and at-least-once publishing to Kafka.
"""

from .errors import EventError, EventValidationError, BrokerConnectionError, SendError
from .models import DomainEvent, AckToken, PublishAttempt, PublishResult
from .schemas import SchemaRegistry, OrderCreatedPayload, default_registry
from .serialization import serialize_payload, deserialize_payload
from .publisher import EventPublisher

__all__ = [
    'EventError',
    'EventValidationError',
    'BrokerConnectionError',
    'SendError',
    'DomainEvent',
    'AckToken',
    'PublishAttempt',
    'PublishResult',
    'SchemaRegistry',
    'OrderCreatedPayload',
    'default_registry',
    'serialize_payload',
    'deserialize_payload',
    'EventPublisher',
]
