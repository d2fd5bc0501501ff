"""
Exception handlers that turn errors into the service's JSON error envelope.

Every failure leaves the API as::

    {"success": false,
     "error": {"code": ..., "message": ..., "details": {...}},
     "timestamp": ..., "path": ..., "request_id": ...}

Retryable store failures (lost optimistic-concurrency races, store outages) also carry a
``Retry-After`` header so clients can resubmit the same request.
"""

import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse

from app.core.exceptions import RETRYABLE_EXCEPTIONS, AppException

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = "1"
VERBOSE_ENVIRONMENTS = ("development", "dev", "test")


def create_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    path: Optional[str] = None,
    request_id: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> ORJSONResponse:
    """
    Build the standard error envelope.

    Args:
        status_code: HTTP status code
        error_code: Stable machine-readable code (``roster_full``, ``invalid_transition``...)
        message: Message for API clients and logs, not end-user display text
        details: Structured context such as the conflicting ids
        path: Request path where the error occurred
        request_id: Id assigned by the logging middleware
        headers: Extra response headers (``WWW-Authenticate``, ``Retry-After``)
    """
    content: Dict[str, Any] = {
        "success": False,
        "error": {
            "code": error_code,
            "message": message,
            "details": details or {},
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if path:
        content["path"] = path
    if request_id:
        content["request_id"] = request_id
    return ORJSONResponse(status_code=status_code, content=content, headers=headers)


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


async def handle_app_exception(request: Request, exc: AppException) -> ORJSONResponse:
    # Auth failures at WARNING, other 4xx at INFO.
    if exc.status_code >= 500:
        log = logger.error
    elif exc.status_code in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN):
        log = logger.warning
    else:
        log = logger.info
    log(
        f"{request.method} {request.url.path} failed: {exc.error_code} - {exc.message}",
        extra={"error_code": exc.error_code, "details": exc.details},
    )

    headers = dict(exc.headers or {})
    if isinstance(exc, RETRYABLE_EXCEPTIONS):
        headers.setdefault("Retry-After", RETRY_AFTER_SECONDS)

    return create_error_response(
        status_code=exc.status_code,
        error_code=exc.error_code,
        message=exc.message,
        details=exc.details,
        path=request.url.path,
        request_id=_request_id(request),
        headers=headers or None,
    )


async def handle_validation_error(
    request: Request, exc: RequestValidationError
) -> ORJSONResponse:
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.info(
        f"Rejected payload on {request.url.path}: {[e['field'] for e in errors]}"
    )
    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        error_code="validation_error",
        message="Request validation failed",
        details={"errors": errors},
        path=request.url.path,
        request_id=_request_id(request),
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> ORJSONResponse:
    logger.error(
        f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}: {exc}",
        exc_info=True,
    )

    message = "An unexpected error occurred. Please try again later."
    details: Dict[str, Any] = {}
    environment = getattr(request.app.state, "environment", "") or ""
    if environment.lower() in VERBOSE_ENVIRONMENTS:
        message = str(exc)
        details = {
            "error_type": type(exc).__name__,
            "traceback": traceback.format_exc().splitlines(),
        }

    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code="internal_server_error",
        message=message,
        details=details,
        path=request.url.path,
        request_id=_request_id(request),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the envelope handlers on ``app``."""
    app.add_exception_handler(AppException, handle_app_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)


__all__ = ["create_error_response", "register_exception_handlers"]
