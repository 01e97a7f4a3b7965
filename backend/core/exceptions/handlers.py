import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api_exceptions import APIException
from .utils import format_error_response
from core.utils.correlation import get_correlation_id

logger = logging.getLogger(__name__)


async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    """Handle custom API exceptions"""
    extra = {}
    if exc.detail != exc.message:
        extra["detail"] = exc.detail
    if exc.errors:
        extra["errors"] = exc.errors
    return JSONResponse(
        status_code=exc.status_code,
        content=format_error_response(
            exc.message,
            status_code=exc.status_code,
            error_code=exc.error_code,
            correlation_id=exc.correlation_id,
            **extra
        )
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle standard HTTP exceptions"""
    return JSONResponse(
        status_code=exc.status_code,
        content=format_error_response(
            str(exc.detail),
            status_code=exc.status_code,
            error_code=f"HTTP_{exc.status_code}",
            correlation_id=get_correlation_id(request),
        ),
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors (e.g. a body that is not JSON)"""
    errors = {}
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"][1:]) or "body"
        errors[field] = error["msg"]

    return JSONResponse(
        status_code=400,
        content=format_error_response(
            "Validation failed",
            status_code=400,
            error_code="BAD_REQUEST",
            correlation_id=get_correlation_id(request),
            errors=errors
        )
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions"""
    correlation_id = get_correlation_id(request)
    logger.exception(f"Unexpected error [{correlation_id}] on {request.method} {request.url.path}: {exc}")

    return JSONResponse(
        status_code=500,
        content=format_error_response(
            "An unexpected error occurred",
            status_code=500,
            error_code="INTERNAL_ERROR",
            correlation_id=correlation_id
        )
    )
