"""
Per-topic payload schemas.

Each topic maps to a pydantic model. Publishing validates the payload against
the model for its topic and sends the normalized dump, so consumers see the
same field set and types for every event on a topic.
"""
import math
from typing import Any, Dict, Mapping, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import EventValidationError


class OrderCreatedPayload(BaseModel):
    """Payload of the order-created event"""
    model_config = ConfigDict(extra="forbid")

    order_id: str = Field(..., min_length=1, max_length=128)
    amount: float
    currency: str = Field("USD", pattern=r"^[A-Z]{3}$")

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_in_float_range(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                float(value)
            except OverflowError:
                raise ValueError("amount is too large") from None
        return value

    @field_validator("amount")
    @classmethod
    def _amount_positive(cls, value: float) -> float:
        if not math.isfinite(value) or value <= 0:
            raise ValueError("amount must be a positive finite number")
        return value


class SchemaRegistry:
    """Topic name -> payload model"""

    def __init__(self, schemas: Optional[Mapping[str, Type[BaseModel]]] = None):
        self._schemas: Dict[str, Type[BaseModel]] = dict(schemas or {})

    def register(self, topic: str, model: Type[BaseModel]) -> None:
        self._schemas[topic] = model

    def get(self, topic: str) -> Optional[Type[BaseModel]]:
        return self._schemas.get(topic)

    def __contains__(self, topic: str) -> bool:
        return topic in self._schemas

    def validate(self, topic: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Validate ``payload`` for ``topic`` and return its normalized form.

        Raises:
            EventValidationError: no schema for the topic, or the payload does
                not match it.
        """
        model = self._schemas.get(topic)
        if model is None:
            raise EventValidationError(f"No schema registered for topic '{topic}'", topic=topic)
        try:
            return model.model_validate(dict(payload)).model_dump(mode="json")
        except ValidationError as e:
            errors = {
                ".".join(str(loc) for loc in error["loc"]) or "payload": error["msg"]
                for error in e.errors()
            }
            raise EventValidationError(
                f"Payload does not match schema for topic '{topic}'", topic=topic, errors=errors
            ) from e


def default_registry(order_topic: str) -> SchemaRegistry:
    """Registry with the schemas this service publishes."""
    return SchemaRegistry({order_topic: OrderCreatedPayload})
