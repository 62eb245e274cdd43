"""
Shared API Middleware
======================

Common middleware and exception handlers for the FastAPI application.
"""

import re
import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from servicedesk.core import (
    ApplicationException,
    InvalidTransitionException,
    ResourceNotFoundException,
    SurveyAlreadyRespondedException,
    ValidationException,
)
from servicedesk.shared.infrastructure.logging import REDACTED, get_context_logger, get_logger

logger = get_logger(__name__)

# Survey links are bearer URLs; the token must not reach the access log
_SURVEY_TOKEN_PATH = re.compile(r"^/csat/(?!metrics$)[^/]+")


def loggable_path(request: Request) -> str:
    return _SURVEY_TOKEN_PATH.sub(f"/csat/{REDACTED}", request.url.path)


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Adds correlation ID to requests for tracing.

    The same ID is attached to every log line written while the request
    is handled and echoed back in the response header.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """Access log: one line per request, survey tokens masked."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_logger = get_context_logger(
            __name__,
            getattr(request.state, "correlation_id", None),
            method=request.method,
            path=loggable_path(request),
        )
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            request_logger.error("Request failed", extra={
                "error": f"{type(e).__name__}: {e}",
                "response_time_ms": int((time.perf_counter() - start_time) * 1000),
            })
            raise

        request_logger.info("Request completed", extra={
            "status_code": response.status_code,
            "response_time_ms": int((time.perf_counter() - start_time) * 1000),
        })
        return response


_STATUS_BY_EXCEPTION = (
    (InvalidTransitionException, status.HTTP_409_CONFLICT),
    (SurveyAlreadyRespondedException, status.HTTP_409_CONFLICT),
    (ResourceNotFoundException, status.HTTP_404_NOT_FOUND),
    (ValidationException, status.HTTP_422_UNPROCESSABLE_ENTITY),
)


async def application_exception_handler(
    request: Request,
    exc: ApplicationException
) -> JSONResponse:
    """
    Maps domain exceptions to 4xx responses.

    Invalid transitions carry the list of valid destinations so clients
    can offer the right actions.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    status_code = status.HTTP_400_BAD_REQUEST
    for exc_type, code in _STATUS_BY_EXCEPTION:
        if isinstance(exc, exc_type):
            status_code = code
            break

    logger.info(
        "Request rejected",
        extra={
            "correlation_id": correlation_id,
            "path": loggable_path(request),
            "error_type": type(exc).__name__,
            "status_code": status_code,
        }
    )

    return JSONResponse(
        status_code=status_code,
        content={
            "detail": exc.message,
            "error_type": type(exc).__name__,
            "details": exc.details,
            "correlation_id": correlation_id,
        }
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled exceptions.

    Returns consistent error responses for all exceptions.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    logger.error(
        "Unhandled exception",
        extra={
            "correlation_id": correlation_id,
            "path": loggable_path(request),
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_message": str(exc)
        }
    )

    is_dev = getattr(getattr(request.app.state, "settings", None), "environment", None) == "development"

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "correlation_id": correlation_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "debug_info": str(exc) if is_dev else None
        }
    )
