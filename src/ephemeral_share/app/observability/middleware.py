"""HTTP middleware for the share API.

``RequestIdMiddleware`` accepts or mints ``X-Request-ID`` and binds it for
log correlation. ``RequestTelemetryMiddleware`` records the Prometheus HTTP
metrics and one ``request_completed`` log line per request.

Share ids are collapsed out of paths before they reach either sink.
"""

from __future__ import annotations

import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from .logging import get_logger, request_id_ctx
from .metrics import (
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_IN_FLIGHT,
    HTTP_REQUESTS_TOTAL,
)

logger = get_logger(__name__)

_VALID_REQUEST_ID = re.compile(r"^[a-zA-Z0-9\-]{8,128}$")

_SHARE_PATH = re.compile(r"^/api/(share|download)/[^/]+")


def normalize_path(path: str) -> str:
    """Replace the share id in share/download paths with a placeholder."""
    return _SHARE_PATH.sub(r"/api/\1/{share_id}", path)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request id; malformed incoming ids are replaced."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        incoming = request.headers.get("x-request-id", "")
        rid = incoming if _VALID_REQUEST_ID.match(incoming) else str(uuid.uuid4())

        request.state.request_id = rid
        token = request_id_ctx.set(rid)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)

        response.headers["X-Request-ID"] = rid
        return response


class RequestTelemetryMiddleware(BaseHTTPMiddleware):
    """Count, time and log every request under its normalized path."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        path = normalize_path(request.url.path)
        method = request.method
        status = "500"

        HTTP_REQUESTS_IN_FLIGHT.inc()
        start = time.perf_counter()
        try:
            response = await call_next(request)
            status = str(response.status_code)
            return response
        finally:
            duration = time.perf_counter() - start
            HTTP_REQUESTS_IN_FLIGHT.dec()
            HTTP_REQUESTS_TOTAL.labels(method=method, path=path, status=status).inc()
            HTTP_REQUEST_DURATION_SECONDS.labels(method=method, path=path).observe(duration)
            logger.info(
                "request_completed",
                method=method,
                path=path,
                status=int(status),
                duration_ms=round(duration * 1000, 2),
            )
