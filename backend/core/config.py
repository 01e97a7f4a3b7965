import os
from dataclasses import dataclass, field
from typing import List, Literal
from dotenv import load_dotenv
import logging


logger = logging.getLogger(__name__)

# Load environment variables from .env file located in the parent directory
# Environment variables explicitly set (e.g., by Docker Compose) take precedence.
BASE_DIR = os.path.dirname(os.path.dirname(__file__))
ENV_PATH = os.path.join(BASE_DIR, '.env')
load_dotenv(ENV_PATH)


def parse_cors(value: str) -> List[str]:
    """
    Parses CORS origins. Accepts comma-separated string or list-like string.
    Example: "http://localhost,http://127.0.0.1" → ["http://localhost", "http://127.0.0.1"]
    If the value is empty, a default list of common development origins is provided.
    """
    if not value:
        return [
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
        ]
    if isinstance(value, str):
        value = value.strip()
        if value.startswith("[") and value.endswith("]"):
            return [i.strip().strip('"').strip("'") for i in value[1:-1].split(",")]
        return [i.strip() for i in value.split(",")]
    raise ValueError("Invalid CORS format")


class Settings:
    # --- General Environment Settings ---
    # ENVIRONMENT determines application behavior (e.g., fatal config validation outside local).
    ENVIRONMENT: Literal["local", "staging",
                         "production"] = os.getenv('ENVIRONMENT', 'local')
    SERVICE_NAME: str = os.getenv('SERVICE_NAME', 'order-events-api')
    SERVICE_VERSION: str = os.getenv('SERVICE_VERSION', '1.0.0')
    # PORT the HTTP server listens on.
    PORT: int = int(os.getenv('PORT', 8000))

    # --- Logging ---
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FORMAT: str = os.getenv(
        'LOG_FORMAT', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    # --- Redis Configuration ---
    # REDIS_URL for the cache used by idempotent order submission. Empty disables it.
    REDIS_URL: str = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    # How long an accepted Idempotency-Key is remembered.
    IDEMPOTENCY_TTL_SECONDS: int = int(os.getenv('IDEMPOTENCY_TTL_SECONDS', 86400))
    # How long an in-progress request holds its Idempotency-Key.
    IDEMPOTENCY_RESERVATION_TTL_SECONDS: int = int(os.getenv('IDEMPOTENCY_RESERVATION_TTL_SECONDS', 60))

    # --- Kafka Configuration ---
    KAFKA_BOOTSTRAP_SERVERS: str = os.getenv('KAFKA_BOOTSTRAP_SERVERS', 'kafka:29092')
    KAFKA_TOPIC_ORDER: str = os.getenv('KAFKA_TOPIC_ORDER', 'orders')
    KAFKA_CLIENT_ID: str = os.getenv('KAFKA_CLIENT_ID', 'order-events-api')
    KAFKA_ACKS: str = os.getenv('KAFKA_ACKS', 'all')
    KAFKA_COMPRESSION_TYPE: str = os.getenv('KAFKA_COMPRESSION_TYPE', '')
    KAFKA_LINGER_MS: int = int(os.getenv('KAFKA_LINGER_MS', 5))
    KAFKA_REQUEST_TIMEOUT_MS: int = int(os.getenv('KAFKA_REQUEST_TIMEOUT_MS', 30000))
    KAFKA_RETRY_BACKOFF_MS: int = int(os.getenv('KAFKA_RETRY_BACKOFF_MS', 100))
    # Upper bound on sends awaiting acknowledgment at the same time.
    KAFKA_MAX_IN_FLIGHT: int = int(os.getenv('KAFKA_MAX_IN_FLIGHT', 100))

    # --- Broker connection retry ---
    BROKER_CONNECT_MAX_ATTEMPTS: int = int(os.getenv('BROKER_CONNECT_MAX_ATTEMPTS', 5))
    BROKER_CONNECT_BASE_DELAY: float = float(os.getenv('BROKER_CONNECT_BASE_DELAY', 0.5))
    BROKER_CONNECT_MAX_DELAY: float = float(os.getenv('BROKER_CONNECT_MAX_DELAY', 10.0))

    # --- Publish retry ---
    PUBLISH_MAX_ATTEMPTS: int = int(os.getenv('PUBLISH_MAX_ATTEMPTS', 3))
    PUBLISH_BASE_DELAY: float = float(os.getenv('PUBLISH_BASE_DELAY', 0.2))
    PUBLISH_MAX_DELAY: float = float(os.getenv('PUBLISH_MAX_DELAY', 5.0))
    # Bounded wait for a single broker acknowledgment.
    PUBLISH_SEND_TIMEOUT: float = float(os.getenv('PUBLISH_SEND_TIMEOUT', 10.0))

    # --- CORS Configuration ---
    RAW_CORS_ORIGINS: str = os.getenv('BACKEND_CORS_ORIGINS', '')
    BACKEND_CORS_ORIGINS: List[str] = parse_cors(RAW_CORS_ORIGINS)

    @property
    def is_local(self) -> bool:
        return self.ENVIRONMENT.lower() in ("local", "development", "dev")

    @property
    def kafka_bootstrap_servers_list(self) -> List[str]:
        """Bootstrap servers as a list, accepting a comma-separated value."""
        return [s.strip() for s in self.KAFKA_BOOTSTRAP_SERVERS.split(",") if s.strip()]


@dataclass
class ValidationResult:
    """Outcome of startup configuration validation"""
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def error_message(self) -> str:
        return "; ".join(self.errors)


def validate_startup_environment(config: "Settings" = None) -> ValidationResult:
    """
    Validate the settings the event pipeline depends on.

    Checks that the broker is addressable and that both retry policies are
    bounded and well-formed. Warnings are returned for settings that work
    but are probably unintended.
    """
    config = config or settings
    result = ValidationResult()

    if not config.kafka_bootstrap_servers_list:
        result.errors.append("KAFKA_BOOTSTRAP_SERVERS must name at least one broker")
    if not config.KAFKA_TOPIC_ORDER:
        result.errors.append("KAFKA_TOPIC_ORDER must not be empty")

    for prefix in ("BROKER_CONNECT", "PUBLISH"):
        attempts = getattr(config, f"{prefix}_MAX_ATTEMPTS")
        base_delay = getattr(config, f"{prefix}_BASE_DELAY")
        max_delay = getattr(config, f"{prefix}_MAX_DELAY")
        if attempts < 1:
            result.errors.append(f"{prefix}_MAX_ATTEMPTS must be at least 1")
        if base_delay < 0:
            result.errors.append(f"{prefix}_BASE_DELAY must not be negative")
        if max_delay < base_delay:
            result.errors.append(f"{prefix}_MAX_DELAY must be >= {prefix}_BASE_DELAY")

    if config.PUBLISH_SEND_TIMEOUT <= 0:
        result.errors.append("PUBLISH_SEND_TIMEOUT must be positive")
    if config.KAFKA_MAX_IN_FLIGHT < 1:
        result.errors.append("KAFKA_MAX_IN_FLIGHT must be at least 1")

    if config.KAFKA_ACKS != "all":
        result.warnings.append(
            f"KAFKA_ACKS={config.KAFKA_ACKS!r}: acknowledged sends may be lost on leader failover")
    if not config.REDIS_URL:
        result.warnings.append("REDIS_URL is empty; Idempotency-Key replay is disabled")

    return result


# Instantiate the settings object to be used throughout the application
settings = Settings()
