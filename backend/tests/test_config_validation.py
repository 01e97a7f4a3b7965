"""
Tests for startup configuration validation
"""
import pytest

from core.config import Settings, parse_cors, validate_startup_environment
from conftest import make_settings


class TestValidateStartupEnvironment:
    """validate_startup_environment()"""

    def test_defaults_are_valid(self):
        result = validate_startup_environment(make_settings(REDIS_URL="redis://localhost:6379/0"))

        assert result.is_valid
        assert result.errors == []
        assert result.warnings == []

    @pytest.mark.parametrize("overrides, fragment", [
        ({"KAFKA_BOOTSTRAP_SERVERS": " , "}, "KAFKA_BOOTSTRAP_SERVERS"),
        ({"KAFKA_TOPIC_ORDER": ""}, "KAFKA_TOPIC_ORDER"),
        ({"PUBLISH_MAX_ATTEMPTS": 0}, "PUBLISH_MAX_ATTEMPTS"),
        ({"BROKER_CONNECT_MAX_ATTEMPTS": 0}, "BROKER_CONNECT_MAX_ATTEMPTS"),
        ({"PUBLISH_BASE_DELAY": -0.1}, "PUBLISH_BASE_DELAY"),
        ({"BROKER_CONNECT_BASE_DELAY": 5.0, "BROKER_CONNECT_MAX_DELAY": 1.0}, "BROKER_CONNECT_MAX_DELAY"),
        ({"PUBLISH_SEND_TIMEOUT": 0}, "PUBLISH_SEND_TIMEOUT"),
        ({"KAFKA_MAX_IN_FLIGHT": 0}, "KAFKA_MAX_IN_FLIGHT"),
    ])
    def test_invalid_settings_are_errors(self, overrides, fragment):
        result = validate_startup_environment(make_settings(**overrides))

        assert not result.is_valid
        assert fragment in result.error_message

    def test_weak_acks_is_a_warning(self):
        result = validate_startup_environment(make_settings(KAFKA_ACKS="1", REDIS_URL="redis://r:6379/0"))

        assert result.is_valid
        assert any("KAFKA_ACKS" in warning for warning in result.warnings)

    def test_missing_redis_disables_replay_with_warning(self):
        result = validate_startup_environment(make_settings(REDIS_URL=""))

        assert result.is_valid
        assert any("Idempotency-Key" in warning for warning in result.warnings)


class TestSettings:
    """Derived settings"""

    def test_bootstrap_servers_list(self):
        config = make_settings(KAFKA_BOOTSTRAP_SERVERS="k1:9092, k2:9092,")

        assert config.kafka_bootstrap_servers_list == ["k1:9092", "k2:9092"]

    @pytest.mark.parametrize("environment, expected", [
        ("local", True),
        ("development", True),
        ("staging", False),
        ("production", False),
    ])
    def test_is_local(self, environment, expected):
        config = Settings()
        config.ENVIRONMENT = environment

        assert config.is_local is expected

    @pytest.mark.parametrize("value, expected", [
        ("http://a.test,http://b.test", ["http://a.test", "http://b.test"]),
        ('["http://a.test", "http://b.test"]', ["http://a.test", "http://b.test"]),
    ])
    def test_parse_cors(self, value, expected):
        assert parse_cors(value) == expected

    def test_parse_cors_defaults(self):
        assert "http://localhost:3000" in parse_cors("")
