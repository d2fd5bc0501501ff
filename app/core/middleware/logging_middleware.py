"""Request logging middleware.

Assigns every request an id (honouring an incoming ``X-Request-ID``), binds it together
with the caller hint and the collaboration id found in the URL to the logging contextvars,
and writes one access-log line per request. Health probes are logged at DEBUG.
"""

import logging
import re
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.logging_config import (
    bind_request_context,
    log_request,
    reset_request_context,
)

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
QUIET_PATHS = frozenset({"/health"})

# /collaborations/{id}/... but not the by-id routes for applications and invitations.
_COLLABORATION_PATH = re.compile(
    r"^/collaborations/(?!applications/|invitations/|mine$|participating$|stats$)([^/]+)"
)


def collaboration_id_from_path(path: str) -> Optional[str]:
    match = _COLLABORATION_PATH.match(path)
    return match.group(1) if match else None


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id

        # The auth dependency rebinds user_id once the caller is verified.
        user_id = request.headers.get("X-User-Id")
        ip_address = request.client.host if request.client else "unknown"
        path = request.url.path

        tokens = bind_request_context(
            request_id=request_id,
            user_id=user_id,
            ip_address=ip_address,
            collaboration_id=collaboration_id_from_path(path),
        )
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            duration_ms = (time.perf_counter() - started) * 1000
            if path in QUIET_PATHS:
                logger.debug(f"{request.method} {path} - {status_code}")
            else:
                log_request(
                    method=request.method,
                    endpoint=path,
                    status_code=status_code,
                    duration_ms=duration_ms,
                    ip_address=ip_address,
                    user_id=user_id,
                    request_id=request_id,
                )
            reset_request_context(tokens)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
