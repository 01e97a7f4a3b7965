"""
Kafka broker client.

Owns the single long-lived AIOKafkaProducer of the process. The producer is
started once by ``connect()`` and shared by every ``send()`` until ``close()``;
nothing opens or tears down a connection per message.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from aiokafka import AIOKafkaProducer
from aiokafka.errors import (
    KafkaConnectionError,
    KafkaError,
    KafkaTimeoutError,
    LeaderNotAvailableError,
    MessageSizeTooLargeError,
    NotLeaderForPartitionError,
    RequestTimedOutError,
    TopicAuthorizationFailedError,
    UnknownTopicOrPartitionError,
)

from core.config import settings
from core.events.errors import BrokerConnectionError, SendError
from core.events.models import AckToken
from core.retry import RetryPolicy, Sleep

logger = logging.getLogger(__name__)

Headers = Sequence[Tuple[str, bytes]]

# The broker reports these as retriable, but retrying cannot fix a missing
# topic, a denied ACL or an oversized record.
NON_RETRYABLE_ERRORS = (
    UnknownTopicOrPartitionError,
    TopicAuthorizationFailedError,
    MessageSizeTooLargeError,
)

RETRYABLE_ERRORS = (
    KafkaTimeoutError,
    KafkaConnectionError,
    LeaderNotAvailableError,
    NotLeaderForPartitionError,
    RequestTimedOutError,
)


def is_retryable_error(exc: BaseException) -> bool:
    """Classify a send failure as transient (worth retrying) or terminal."""
    if isinstance(exc, NON_RETRYABLE_ERRORS):
        return False
    if isinstance(exc, (asyncio.TimeoutError,) + RETRYABLE_ERRORS):
        return True
    if isinstance(exc, KafkaError):
        return bool(getattr(exc, "retriable", False))
    return False


def _parse_acks(value: Any):
    if isinstance(value, str) and value.lstrip("-").isdigit():
        return int(value)
    return value


class KafkaBrokerClient:
    """
    Long-lived connection to the Kafka cluster.

    Same-key ordering comes from the producer: records are keyed, the default
    partitioner maps a key to a fixed partition, and idempotent delivery keeps
    producer-level retries from reordering records within that partition.
    """

    def __init__(
        self,
        bootstrap_servers: str,
        *,
        client_id: Optional[str] = None,
        acks: Any = "all",
        compression_type: Optional[str] = None,
        linger_ms: int = 5,
        request_timeout_ms: int = 30000,
        retry_backoff_ms: int = 100,
        send_timeout: float = 10.0,
        max_in_flight: int = 100,
        connect_policy: Optional[RetryPolicy] = None,
        producer_factory: Optional[Callable[[], Any]] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.bootstrap_servers = bootstrap_servers
        self.client_id = client_id
        self.acks = _parse_acks(acks)
        self.compression_type = compression_type or None
        self.linger_ms = linger_ms
        self.request_timeout_ms = request_timeout_ms
        self.retry_backoff_ms = retry_backoff_ms
        self.send_timeout = send_timeout
        self.connect_policy = connect_policy or RetryPolicy(max_attempts=5, base_delay=0.5, max_delay=10.0)
        self._producer_factory = producer_factory or self._create_producer
        self._sleep = sleep

        self._producer = None
        self._connect_lock = asyncio.Lock()
        self._in_flight = asyncio.Semaphore(max_in_flight)
        self._closed = False
        self.connect_attempts = 0
        self.last_error: Optional[str] = None
        self.connected_at: Optional[float] = None

    @classmethod
    def from_settings(cls, config=settings, **overrides) -> "KafkaBrokerClient":
        options = dict(
            client_id=config.KAFKA_CLIENT_ID,
            acks=config.KAFKA_ACKS,
            compression_type=config.KAFKA_COMPRESSION_TYPE,
            linger_ms=config.KAFKA_LINGER_MS,
            request_timeout_ms=config.KAFKA_REQUEST_TIMEOUT_MS,
            retry_backoff_ms=config.KAFKA_RETRY_BACKOFF_MS,
            send_timeout=config.PUBLISH_SEND_TIMEOUT,
            max_in_flight=config.KAFKA_MAX_IN_FLIGHT,
            connect_policy=RetryPolicy.for_broker_connect(config),
        )
        options.update(overrides)
        return cls(config.KAFKA_BOOTSTRAP_SERVERS, **options)

    def _create_producer(self) -> AIOKafkaProducer:
        return AIOKafkaProducer(
            bootstrap_servers=self.bootstrap_servers,
            client_id=self.client_id,
            acks=self.acks,
            enable_idempotence=self.acks in ("all", -1),
            compression_type=self.compression_type,
            linger_ms=self.linger_ms,
            request_timeout_ms=self.request_timeout_ms,
            retry_backoff_ms=self.retry_backoff_ms,
        )

    @property
    def is_connected(self) -> bool:
        return self._producer is not None

    async def connect(self) -> None:
        """
        Start the producer, retrying with backoff.

        A no-op when already connected. Raises BrokerConnectionError once the
        connect policy's attempts are exhausted.
        """
        await self._connect(self.connect_policy)

    async def _connect(self, policy: RetryPolicy) -> None:
        async with self._connect_lock:
            if self._producer is not None:
                return
            if self._closed:
                raise BrokerConnectionError("Broker client is closed")

            last_exc: Optional[BaseException] = None
            for attempt in range(1, policy.max_attempts + 1):
                self.connect_attempts += 1
                producer = self._producer_factory()
                try:
                    await producer.start()
                except (KafkaError, OSError) as e:
                    last_exc = e
                    self.last_error = f"{type(e).__name__}: {e}"
                    logger.warning(
                        f"Kafka connect attempt {attempt}/{policy.max_attempts} "
                        f"to {self.bootstrap_servers} failed: {e}"
                    )
                    await self._stop_quietly(producer)
                    if policy.can_retry(attempt):
                        await policy.wait(attempt, self._sleep)
                    continue

                self._producer = producer
                self.last_error = None
                self.connected_at = time.time()
                logger.info(f"Kafka producer connected to {self.bootstrap_servers}")
                return

            raise BrokerConnectionError(
                f"Kafka unreachable at {self.bootstrap_servers} after {policy.max_attempts} attempts",
                attempts=policy.max_attempts,
                cause=last_exc,
            ) from last_exc

    async def send(self, topic: str, key: str, value: bytes, headers: Optional[Headers] = None) -> AckToken:
        """
        Send one record and wait for the broker acknowledgment.

        Each call waits at most ``send_timeout`` seconds. Failures surface as
        SendError with ``retryable`` set from the broker error class.
        """
        if self._producer is None:
            try:
                await self._connect(RetryPolicy(max_attempts=1, base_delay=0, max_delay=0))
            except BrokerConnectionError as e:
                raise SendError(str(e), retryable=not self._closed, cause=e) from e

        producer = self._producer
        async with self._in_flight:
            try:
                metadata = await asyncio.wait_for(
                    producer.send_and_wait(
                        topic,
                        value=value,
                        key=key.encode("utf-8"),
                        headers=list(headers) if headers else None,
                    ),
                    timeout=self.send_timeout,
                )
            except asyncio.TimeoutError as e:
                self.last_error = f"send timed out after {self.send_timeout}s"
                raise SendError(
                    f"No acknowledgment from '{topic}' within {self.send_timeout}s",
                    retryable=True,
                    cause=e,
                ) from e
            except KafkaError as e:
                self.last_error = f"{type(e).__name__}: {e}"
                raise SendError(
                    f"Kafka rejected record for '{topic}': {type(e).__name__}: {e}",
                    retryable=is_retryable_error(e),
                    cause=e,
                ) from e
            except (TypeError, ValueError) as e:
                raise SendError(f"Record for '{topic}' could not be sent: {e}", retryable=False, cause=e) from e

        return AckToken.from_record_metadata(metadata)

    async def close(self) -> None:
        """Stop the producer, flushing pending records. Safe to call more than once."""
        async with self._connect_lock:
            self._closed = True
            producer, self._producer = self._producer, None
        if producer is not None:
            logger.info("Stopping Kafka producer...")
            await producer.stop()
            logger.info("Kafka producer stopped.")

    async def _stop_quietly(self, producer) -> None:
        try:
            await producer.stop()
        except Exception as e:
            logger.debug(f"Ignoring error while stopping unstarted producer: {e}")

    def health(self) -> Dict[str, Any]:
        return {
            "connected": self.is_connected,
            "bootstrap_servers": self.bootstrap_servers,
            "connect_attempts": self.connect_attempts,
            "connected_since": self.connected_at,
            "last_error": self.last_error,
        }

    async def __aenter__(self) -> "KafkaBrokerClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
