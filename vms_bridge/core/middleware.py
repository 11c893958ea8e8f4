"""Request middleware for VMS Bridge.

Provides:
- Request ID propagation (X-Request-ID)
- Request logging tagged with the connector being served
"""

import re
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from vms_bridge.core.logging import get_logger, set_request_id

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Caller-supplied ids are echoed into headers and logs
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def resolve_request_id(header_value: str | None) -> str:
    """Use the caller's request id when well-formed, else generate one."""
    if header_value and _REQUEST_ID_PATTERN.match(header_value):
        return header_value
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Propagates a request id through context, request state and response."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        set_request_id(request_id)
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request with its outcome and timing.

    Media responses are streamed, so their completion is logged when the
    headers are sent, not when the body ends.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        start_time = time.perf_counter()
        connector_id = request.query_params.get("connectorId")

        logger.debug(
            "Request started",
            method=request.method,
            path=request.url.path,
            connector_id=connector_id,
        )

        response = await call_next(request)

        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "Request completed",
            method=request.method,
            path=request.url.path,
            connector_id=connector_id,
            status_code=response.status_code,
            content_type=response.headers.get("content-type"),
            duration_ms=int((time.perf_counter() - start_time) * 1000),
        )
        return response
