from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
from typing import Optional
import logging

from core.config import settings, validate_startup_environment
from core.events import BrokerConnectionError, EventPublisher
from core.exceptions import (
    APIException,
    api_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    general_exception_handler
)
from core.kafka import KafkaBrokerClient
from core.logging_config import setup_logging
from core.middleware import CorrelationIdMiddleware
from core.redis import IdempotencyStore, RedisManager
from routes import health_router, orders_router
from services.orders import OrderIngressService

logger = logging.getLogger(__name__)


def create_app(
    config=settings,
    broker: Optional[KafkaBrokerClient] = None,
    publisher: Optional[EventPublisher] = None,
    redis_manager: Optional[RedisManager] = None,
    enable_cache: Optional[bool] = None,
) -> FastAPI:
    """
    Build the application.

    The broker client, publisher and cache are created in the lifespan (or
    supplied by the caller) and live on ``app.state`` for the life of the
    process; they are released when the lifespan exits.
    """
    if enable_cache is None:
        enable_cache = bool(config.REDIS_URL) or redis_manager is not None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(config.LOG_LEVEL, config.LOG_FORMAT)

        logger.info("Validating environment configuration...")
        validation_result = validate_startup_environment(config)
        for warning in validation_result.warnings:
            logger.warning(warning)
        if not validation_result.is_valid:
            logger.error(f"Environment validation failed: {validation_result.error_message}")
            if not config.is_local:
                raise RuntimeError("Invalid environment configuration. Please check your .env file.")
            logger.warning("Continuing with invalid environment configuration in development mode")

        app_publisher = publisher
        app_broker = broker or (app_publisher.broker if app_publisher else None) \
            or KafkaBrokerClient.from_settings(config)
        if app_publisher is None:
            app_publisher = EventPublisher.from_settings(app_broker, config)

        app_redis = None
        idempotency_store = None
        if enable_cache:
            app_redis = redis_manager or RedisManager(config.REDIS_URL)
            idempotency_store = IdempotencyStore(
                app_redis,
                ttl_seconds=config.IDEMPOTENCY_TTL_SECONDS,
                reservation_ttl_seconds=config.IDEMPOTENCY_RESERVATION_TTL_SECONDS,
            )

        app.state.broker = app_broker
        app.state.publisher = app_publisher
        app.state.redis_manager = app_redis
        app.state.order_ingress = OrderIngressService(
            app_publisher, config.KAFKA_TOPIC_ORDER, idempotency_store
        )

        try:
            await app_broker.connect()
        except BrokerConnectionError as e:
            # Keep serving so the readiness probe can report the outage.
            logger.error(f"Kafka unavailable at startup, readiness will fail: {e}")

        try:
            yield
        finally:
            drain_timeout = config.PUBLISH_SEND_TIMEOUT * config.PUBLISH_MAX_ATTEMPTS + config.PUBLISH_MAX_DELAY
            await app_publisher.close(timeout=drain_timeout)
            await app_broker.close()
            if app_redis is not None:
                await app_redis.close()
            logger.info("Shutdown complete")

    app = FastAPI(
        title="Order Events API",
        description="Accepts orders and publishes them as order events to Kafka.",
        version=config.SERVICE_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(orders_router, prefix="/v1")
    app.include_router(health_router, prefix="/v1")

    @app.get("/")
    async def read_root():
        return {
            "service": config.SERVICE_NAME,
            "status": "Running",
            "version": config.SERVICE_VERSION,
        }

    # Register exception handlers
    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=settings.PORT)
