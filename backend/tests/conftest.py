import sys
import os
import zlib
import asyncio
from collections import namedtuple
from typing import Any, Dict, List, Optional

import pytest

# Add the backend directory to the Python path
# This is necessary for pytest to find the 'main' module and other packages
backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if backend_dir not in sys.path:
    sys.path.insert(0, backend_dir)

from aiokafka.errors import KafkaConnectionError

from core.config import Settings
from core.events import EventPublisher, default_registry
from core.kafka import KafkaBrokerClient
from core.retry import RetryPolicy

ORDER_TOPIC = "orders-test"

FakeRecordMetadata = namedtuple("FakeRecordMetadata", "topic partition offset timestamp")
SentRecord = namedtuple("SentRecord", "topic key value headers partition offset")


class FakeProducer:
    """
    Stand-in for AIOKafkaProducer.

    ``outcomes`` is consumed one entry per send: an exception instance is
    raised, anything else means success. ``log`` holds what a consumer would
    read: acknowledged records in acknowledgment order.
    """

    def __init__(self, partitions: int = 6, start_failures: int = 0, delay: float = 0.0):
        self.partitions = partitions
        self.start_failures = start_failures
        self.delay = delay
        self.outcomes: List[Any] = []
        self.attempts: List[Dict[str, Any]] = []
        self.log: List[SentRecord] = []
        self.started = 0
        self.stopped = 0
        self._offsets: Dict[int, int] = {}

    async def start(self):
        self.started += 1
        if self.start_failures > 0:
            self.start_failures -= 1
            raise KafkaConnectionError("Unable to bootstrap from test broker")

    async def stop(self):
        self.stopped += 1

    def partition_for(self, key: bytes) -> int:
        return zlib.crc32(key) % self.partitions

    async def send_and_wait(self, topic, value=None, key=None, headers=None, **kwargs):
        self.attempts.append({"topic": topic, "key": key, "value": value, "headers": headers})
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if self.delay:
            await asyncio.sleep(self.delay)
        else:
            await asyncio.sleep(0)
        if isinstance(outcome, BaseException):
            raise outcome
        partition = self.partition_for(key)
        offset = self._offsets.get(partition, 0)
        self._offsets[partition] = offset + 1
        self.log.append(SentRecord(topic, key, value, headers, partition, offset))
        return FakeRecordMetadata(topic, partition, offset, 1700000000000)


class SharedProducerFactory:
    """Hands out one FakeProducer per start attempt and keeps the last one"""

    def __init__(self, **producer_kwargs):
        self.producer_kwargs = producer_kwargs
        self.created: List[FakeProducer] = []
        self.start_failures = producer_kwargs.pop("start_failures", 0)
        # Shared by every producer this factory creates.
        self.outcomes: List[Any] = []

    def __call__(self) -> FakeProducer:
        fails = 1 if self.start_failures > 0 else 0
        self.start_failures -= fails
        producer = FakeProducer(start_failures=fails, **self.producer_kwargs)
        producer.outcomes = self.outcomes
        self.created.append(producer)
        return producer

    @property
    def producer(self) -> Optional[FakeProducer]:
        return self.created[-1] if self.created else None


class RecordingSleep:
    """Replaces asyncio.sleep in retry loops; records requested delays"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


def make_broker(factory: SharedProducerFactory, sleep=None, connect_attempts: int = 3,
                send_timeout: float = 1.0) -> KafkaBrokerClient:
    return KafkaBrokerClient(
        "kafka-test:9092",
        client_id="order-events-test",
        send_timeout=send_timeout,
        connect_policy=RetryPolicy(max_attempts=connect_attempts, base_delay=0.01, max_delay=0.05),
        producer_factory=factory,
        sleep=sleep or RecordingSleep(),
    )


def make_publisher(broker, max_attempts: int = 3, sleep=None) -> EventPublisher:
    return EventPublisher(
        broker,
        default_registry(ORDER_TOPIC),
        retry_policy=RetryPolicy(max_attempts=max_attempts, base_delay=0.01, max_delay=0.05),
        sleep=sleep or RecordingSleep(),
        order_topic=ORDER_TOPIC,
    )


def make_settings(**overrides) -> Settings:
    config = Settings()
    config.ENVIRONMENT = "local"
    config.KAFKA_BOOTSTRAP_SERVERS = "kafka-test:9092"
    config.KAFKA_TOPIC_ORDER = ORDER_TOPIC
    config.REDIS_URL = ""
    for name, value in overrides.items():
        setattr(config, name, value)
    return config


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def producer_factory():
    return SharedProducerFactory()


@pytest.fixture
def broker(producer_factory, recording_sleep):
    return make_broker(producer_factory, sleep=recording_sleep)


@pytest.fixture
def publisher(broker, recording_sleep):
    return make_publisher(broker, sleep=recording_sleep)


@pytest.fixture
def test_settings():
    return make_settings()
