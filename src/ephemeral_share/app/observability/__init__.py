"""Observability infrastructure for the share service.

Provides structured logging, Prometheus metrics, and request-ID
correlation middleware.

Quick start::

    from ephemeral_share.app.observability import configure_logging, get_logger
    from ephemeral_share.app.observability.middleware import (
        RequestIdMiddleware,
        RequestTelemetryMiddleware,
    )

    configure_logging()
    app.add_middleware(RequestTelemetryMiddleware)
    app.add_middleware(RequestIdMiddleware)
"""

from .logging import configure_logging, get_logger, request_id_ctx
from .metrics import metrics_text

__all__ = [
    "configure_logging",
    "get_logger",
    "metrics_text",
    "request_id_ctx",
]
