"""
End-to-end HTTP tests for the order ingress API.

The application is built with create_app() around a real EventPublisher and
KafkaBrokerClient whose producer is the in-memory FakeProducer.
"""
import pytest
from fastapi.testclient import TestClient
from aiokafka.errors import LeaderNotAvailableError, UnknownTopicOrPartitionError

from core.events import deserialize_payload
from core.utils.correlation import CORRELATION_HEADER
from main import create_app
from conftest import ORDER_TOPIC, SharedProducerFactory, make_broker, make_publisher, make_settings


@pytest.fixture
def factory():
    return SharedProducerFactory()


@pytest.fixture
def client(factory):
    publisher = make_publisher(make_broker(factory))
    app = create_app(config=make_settings(), publisher=publisher, enable_cache=False)
    with TestClient(app) as test_client:
        yield test_client


class TestCreateOrder:
    """POST /v1/orders"""

    def test_valid_order_is_accepted_after_publish(self, client, factory):
        response = client.post("/v1/orders", json={"identifier": "A1", "amount": 100})

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"] == {"identifier": "A1"}
        assert CORRELATION_HEADER in response.headers

        record = factory.producer.log[0]
        assert record.topic == ORDER_TOPIC
        assert record.key == b"A1"
        assert deserialize_payload(record.value) == {"order_id": "A1", "amount": 100.0, "currency": "USD"}

    def test_missing_amount_is_rejected_without_publishing(self, client, factory):
        response = client.post("/v1/orders", json={"identifier": "A1"})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error_code"] == "BAD_REQUEST"
        assert "amount" in body["errors"]
        assert factory.producer.attempts == []

    def test_malformed_json_is_rejected(self, client, factory):
        response = client.post(
            "/v1/orders", content=b"{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "BAD_REQUEST"
        assert factory.producer.attempts == []

    def test_amount_beyond_float_range_is_rejected(self, client, factory):
        amount = "1" * 400
        response = client.post(
            "/v1/orders",
            content=('{"identifier": "A1", "amount": %s}' % amount).encode(),
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "BAD_REQUEST"
        assert "amount" in response.json()["errors"]
        assert factory.producer.attempts == []

    def test_missing_topic_fails_after_single_attempt(self, client, factory):
        factory.outcomes.append(UnknownTopicOrPartitionError())

        response = client.post("/v1/orders", json={"identifier": "A1", "amount": 100})

        assert response.status_code == 500
        assert response.json()["error_code"] == "PUBLISH_FAILED"
        assert len(factory.producer.attempts) == 1
        assert factory.producer.log == []

    def test_transient_leader_election_is_retried(self, client, factory):
        factory.outcomes.extend([LeaderNotAvailableError(), LeaderNotAvailableError()])

        response = client.post("/v1/orders", json={"identifier": "A1", "amount": 100})

        assert response.status_code == 201
        assert response.json()["data"] == {"identifier": "A1"}
        assert len(factory.producer.attempts) == 3
        assert len(factory.producer.log) == 1

    def test_correlation_id_is_echoed_in_errors(self, client):
        response = client.post(
            "/v1/orders", json={"amount": 100}, headers={CORRELATION_HEADER: "corr-123"}
        )

        assert response.status_code == 400
        assert response.headers[CORRELATION_HEADER] == "corr-123"
        assert response.json()["correlation_id"] == "corr-123"


class TestHealth:
    """Liveness and readiness probes"""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "Running"

    def test_liveness_reports_broker_state(self, client):
        response = client.get("/v1/health/live")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "alive"
        assert body["broker"]["connected"] is True
        assert body["uptime"] >= 0

    def test_ready_when_broker_connected(self, client):
        response = client.get("/v1/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_not_ready_when_broker_unreachable(self):
        factory = SharedProducerFactory(start_failures=100)
        publisher = make_publisher(make_broker(factory, connect_attempts=2))
        app = create_app(config=make_settings(), publisher=publisher, enable_cache=False)

        with TestClient(app) as client:
            ready = client.get("/v1/health/ready")
            live = client.get("/v1/health/live")

        assert ready.status_code == 503
        checks = {check["name"]: check for check in ready.json()["checks"]}
        assert checks["kafka"]["status"] == "unhealthy"
        assert live.status_code == 200

    def test_orders_fail_while_broker_unreachable(self):
        factory = SharedProducerFactory(start_failures=100)
        publisher = make_publisher(make_broker(factory, connect_attempts=1), max_attempts=2)
        app = create_app(config=make_settings(), publisher=publisher, enable_cache=False)

        with TestClient(app) as client:
            response = client.post("/v1/orders", json={"identifier": "A1", "amount": 100})

        assert response.status_code == 500
        assert response.json()["error_code"] == "PUBLISH_FAILED"


class TestShutdown:
    """Lifespan teardown"""

    def test_producer_is_stopped_on_shutdown(self, factory):
        publisher = make_publisher(make_broker(factory))
        app = create_app(config=make_settings(), publisher=publisher, enable_cache=False)

        with TestClient(app) as client:
            client.post("/v1/orders", json={"identifier": "A1", "amount": 100})

        assert factory.producer.stopped == 1
        assert not publisher.broker.is_connected
