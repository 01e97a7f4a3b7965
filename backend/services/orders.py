# Order ingress: the only layer that knows the shape of an order request.

from dataclasses import dataclass
from typing import Any, Optional
from pydantic import ValidationError
from core.events import DomainEvent, EventPublisher, EventValidationError
from core.exceptions import BadRequestException, ConflictException, PublishFailedException
from core.redis import IdempotencyStore
from core.utils.logging import structured_logger
from schemas.orders import OrderCreateRequest
import logging

logger = logging.getLogger(__name__)

ORDER_CREATED = "order.created"
IDEMPOTENCY_SCOPE = "orders:create"
STATUS_PENDING = "pending"
STATUS_ACCEPTED = "accepted"


@dataclass(frozen=True)
class OrderAccepted:
    identifier: str
    event_id: Optional[str] = None
    attempts: int = 0
    replayed: bool = False


def _format_errors(exc: ValidationError) -> dict:
    return {
        ".".join(str(loc) for loc in error["loc"]) or "body": error["msg"]
        for error in exc.errors()
    }


class OrderIngressService:
    """
    Accepts order creation requests and publishes them as order.created events.

    A request is accepted only when the publisher reports success; every
    other outcome is raised as an APIException.
    """

    def __init__(
        self,
        publisher: EventPublisher,
        order_topic: str,
        idempotency_store: Optional[IdempotencyStore] = None,
    ):
        self.publisher = publisher
        self.order_topic = order_topic
        self.idempotency_store = idempotency_store

    def parse_request(self, body: Any, correlation_id: Optional[str] = None) -> OrderCreateRequest:
        """Validate the raw body. Raises BadRequestException; nothing is published."""
        if not isinstance(body, dict):
            raise BadRequestException("Request body must be a JSON object", correlation_id=correlation_id)
        try:
            return OrderCreateRequest.model_validate(body)
        except ValidationError as e:
            raise BadRequestException(
                "Invalid order request", errors=_format_errors(e), correlation_id=correlation_id
            ) from e

    def build_event(self, request: OrderCreateRequest) -> DomainEvent:
        # Keyed by identifier so every event for one order lands on one partition.
        return DomainEvent(
            topic=self.order_topic,
            key=request.identifier,
            event_type=ORDER_CREATED,
            payload={
                "order_id": request.identifier,
                "amount": float(request.amount),
                "currency": request.currency,
            },
        )

    def _replay(self, previous: dict, request: OrderCreateRequest,
                correlation_id: Optional[str]) -> OrderAccepted:
        if previous.get("identifier") != request.identifier:
            raise BadRequestException(
                "Idempotency-Key was already used for a different order",
                correlation_id=correlation_id,
            )
        if previous.get("status") == STATUS_PENDING:
            raise ConflictException(
                "A request with this Idempotency-Key is still in progress",
                correlation_id=correlation_id,
            )
        logger.info(f"Replaying accepted order {request.identifier} for Idempotency-Key")
        return OrderAccepted(
            identifier=request.identifier,
            event_id=previous.get("event_id"),
            replayed=True,
        )

    async def handle_create(
        self,
        body: Any,
        idempotency_key: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> OrderAccepted:
        request = self.parse_request(body, correlation_id)

        store = self.idempotency_store if idempotency_key else None
        reserved = False
        if store is not None:
            previous = await store.get(IDEMPOTENCY_SCOPE, idempotency_key)
            if previous is None:
                reserved = await store.reserve(
                    IDEMPOTENCY_SCOPE,
                    idempotency_key,
                    {"identifier": request.identifier, "status": STATUS_PENDING},
                )
                if not reserved:
                    # Lost the race to a concurrent request, or Redis is down.
                    previous = await store.get(IDEMPOTENCY_SCOPE, idempotency_key)
            if previous is not None:
                return self._replay(previous, request, correlation_id)

        event = self.build_event(request)
        try:
            result = await self.publisher.publish(event)
        except EventValidationError as e:
            if reserved:
                await store.release(IDEMPOTENCY_SCOPE, idempotency_key)
            raise BadRequestException(str(e), errors=e.errors, correlation_id=correlation_id) from e

        if not result.success:
            if reserved:
                await store.release(IDEMPOTENCY_SCOPE, idempotency_key)
            structured_logger.warning(
                "Order rejected: publish failed",
                request_id=correlation_id,
                endpoint="POST /v1/orders",
                metadata={"identifier": request.identifier, "attempts": result.attempts},
                exception=result.error,
            )
            raise PublishFailedException(
                f"Order {request.identifier} could not be published after {result.attempts} attempt(s)",
                attempts=result.attempts,
                retryable=bool(getattr(result.error, "retryable", False)),
                correlation_id=correlation_id,
            )

        if store is not None:
            await store.remember(
                IDEMPOTENCY_SCOPE,
                idempotency_key,
                {"identifier": request.identifier, "event_id": result.event_id, "status": STATUS_ACCEPTED},
            )

        structured_logger.info(
            "Order accepted",
            request_id=correlation_id,
            endpoint="POST /v1/orders",
            metadata={"identifier": request.identifier, "event_id": result.event_id, "attempts": result.attempts},
        )
        return OrderAccepted(identifier=request.identifier, event_id=result.event_id, attempts=result.attempts)
