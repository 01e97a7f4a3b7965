from core.utils.uuid_utils import uuid7
from typing import Optional, Any

CORRELATION_HEADER = "X-Correlation-ID"


def get_correlation_id(request: Optional[Any] = None) -> str:
    """
    Return the correlation ID for a request.

    Prefers the value the correlation middleware put on ``request.state``,
    then an inbound ``X-Correlation-ID`` header, and otherwise generates one.
    """
    if request is not None:
        state_value = getattr(getattr(request, "state", None), "correlation_id", None)
        if state_value:
            return state_value
        headers = getattr(request, "headers", None)
        if headers is not None and headers.get(CORRELATION_HEADER):
            return headers.get(CORRELATION_HEADER)
    return str(uuid7())
