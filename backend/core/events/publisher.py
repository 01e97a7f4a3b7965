"""
Event Publisher Module - Turns domain events into acknowledged broker records
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional, Set

from core.config import settings
from core.retry import RetryPolicy, Sleep
from core.utils.logging import structured_logger
from .errors import EventValidationError, SendError
from .models import DomainEvent, PublishAttempt, PublishResult
from .schemas import SchemaRegistry, default_registry
from .serialization import serialize_payload

logger = logging.getLogger(__name__)


class KeyedLocks:
    """
    One FIFO lock per key, dropped when nobody holds or waits on it.

    Holders of different keys never contend.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class EventPublisher:
    """
    Publishes domain events with an at-least-once guarantee.

    A successful result means the broker acknowledged the record at least
    once. A failed result means no further automatic retry will happen.
    """

    def __init__(
        self,
        broker,
        registry: SchemaRegistry,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Sleep = asyncio.sleep,
        order_topic: Optional[str] = None,
    ):
        self.broker = broker
        self.registry = registry
        self.order_topic = order_topic
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._key_locks = KeyedLocks()
        self._pending: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, broker, config=settings, **overrides) -> "EventPublisher":
        options = dict(
            registry=default_registry(config.KAFKA_TOPIC_ORDER),
            retry_policy=RetryPolicy.for_publish(config),
            order_topic=config.KAFKA_TOPIC_ORDER,
        )
        options.update(overrides)
        return cls(broker, **options)

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    async def publish(self, event: DomainEvent) -> PublishResult:
        """
        Validate, serialize and deliver ``event``.

        Validation happens before anything touches the network and raises
        EventValidationError. Delivery runs in its own task; cancelling the
        caller does not cancel a delivery that has already started.
        """
        payload = self.registry.validate(event.topic, event.payload_dict())
        value = serialize_payload(payload)

        task = asyncio.create_task(self._deliver(event, value), name=f"publish:{event.event_id}")
        self._pending.add(task)
        task.add_done_callback(self._delivery_done)
        return await asyncio.shield(task)

    async def publish_order_created(
        self,
        order_id: str,
        amount: float,
        currency: str = "USD",
        event_type: str = "order.created",
    ) -> PublishResult:
        """
        Publish an order event on the configured order topic, keyed by order_id.

        Args:
            order_id: Order identifier, also the partitioning key
            amount: Order amount
            currency: ISO currency code
            event_type: Type of order event

        Returns:
            PublishResult: outcome of the publish
        """
        if not self.order_topic:
            raise EventValidationError("No order topic configured for this publisher")
        event = DomainEvent(
            topic=self.order_topic,
            key=order_id,
            event_type=event_type,
            payload={"order_id": order_id, "amount": amount, "currency": currency},
        )
        return await self.publish(event)

    async def _deliver(self, event: DomainEvent, value: bytes) -> PublishResult:
        # Same-key events go out one at a time, in submission order, retries included.
        async with self._key_locks.hold(event.key):
            attempt = PublishAttempt(event=event)
            while True:
                attempt.attempt_count += 1
                try:
                    ack = await self.broker.send(event.topic, event.key, value, headers=event.headers())
                except SendError as e:
                    attempt.last_error = e
                    if not e.retryable or not self.retry_policy.can_retry(attempt.attempt_count):
                        return self._failed(attempt)
                    logger.warning(
                        f"Retryable failure publishing {event.event_type} {event.event_id} "
                        f"(attempt {attempt.attempt_count}/{self.retry_policy.max_attempts}): {e}"
                    )
                    await self.retry_policy.wait(attempt.attempt_count, self._sleep)
                    continue

                result = PublishResult.acknowledged(attempt, ack)
                structured_logger.info(
                    "Event published",
                    metadata={
                        "event_id": event.event_id,
                        "event_type": event.event_type,
                        "topic": ack.topic,
                        "key": event.key,
                        "partition": ack.partition,
                        "offset": ack.offset,
                        "attempts": result.attempts,
                    },
                )
                return result

    def _delivery_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        # Retrieved here too, since a cancelled caller no longer awaits the task.
        exc = task.exception()
        if exc is not None:
            structured_logger.error(
                "Event delivery crashed",
                metadata={"task": task.get_name()},
                exception=exc,
            )

    def _failed(self, attempt: PublishAttempt) -> PublishResult:
        event = attempt.event
        error = attempt.last_error
        reason = "non-retryable error" if not getattr(error, "retryable", False) else "retry budget exhausted"
        structured_logger.error(
            f"Failed to publish event: {reason}",
            metadata={
                "event_id": event.event_id,
                "event_type": event.event_type,
                "topic": event.topic,
                "key": event.key,
                "attempts": attempt.attempt_count,
            },
            exception=error,
        )
        return PublishResult.failed(attempt)

    async def close(self, timeout: Optional[float] = None) -> None:
        """Wait for deliveries already under way to finish."""
        if not self._pending:
            return
        logger.info(f"Draining {len(self._pending)} in-flight publish(es)...")
        _, pending = await asyncio.wait(set(self._pending), timeout=timeout)
        if pending:
            logger.error(f"{len(pending)} publish(es) still in flight after {timeout}s; cancelling")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
