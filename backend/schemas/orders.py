import math
from typing import Optional, Union
from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr, field_validator


class OrderCreateRequest(BaseModel):
    """Body of POST /v1/orders. Unknown fields are ignored."""
    model_config = ConfigDict(str_strip_whitespace=True)

    identifier: StrictStr = Field(..., min_length=1, max_length=128)
    amount: Union[StrictInt, StrictFloat]
    currency: Optional[StrictStr] = Field("USD", pattern=r"^[A-Za-z]{3}$")

    @field_validator("amount")
    @classmethod
    def _amount_positive(cls, value: Union[int, float]) -> Union[int, float]:
        # Integers beyond float range cannot be published as a JSON number.
        try:
            as_float = float(value)
        except OverflowError:
            raise ValueError("amount is too large") from None
        if not math.isfinite(as_float) or as_float <= 0:
            raise ValueError("amount must be a positive finite number")
        return value

    @field_validator("currency")
    @classmethod
    def _currency_upper(cls, value: Optional[str]) -> str:
        return (value or "USD").upper()


class OrderAcceptedResponse(BaseModel):
    identifier: str
