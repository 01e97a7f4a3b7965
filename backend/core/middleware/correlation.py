"""
Correlation ID Middleware
Tags every request with an ID that follows it into logs, error bodies and responses
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from core.utils.correlation import CORRELATION_HEADER, get_correlation_id


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Reuses an inbound X-Correlation-ID or mints one, stores it on
    request.state and echoes it on the response.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = get_correlation_id(request)
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response
