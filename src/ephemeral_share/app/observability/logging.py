"""Structured logging configuration for the share service.

Configures structlog for JSON-formatted, request-ID-correlated logging.
Redaction processors strip password and storage-key fields from every
event and cut any raw ``share_id`` field down to a short prefix before
rendering.

Usage::

    from ephemeral_share.app.observability.logging import configure_logging, get_logger

    configure_logging()  # Call once at app startup
    logger = get_logger(__name__)
    logger.info("share_created", kind="text", one_time_view=True)
"""

from __future__ import annotations

import logging
import os
import sys
from contextvars import ContextVar

import structlog

# Context variable for request-scoped correlation ID.
request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

# Event keys that must never reach a log sink.
SENSITIVE_KEYS: frozenset[str] = frozenset({
    "password",
    "password_digest",
    "digest",
    "blob_key",
    "service_role_key",
})

# Event keys that carry a full share id. Call sites normally log
# ``share=<prefix>...``; these are cut down if one slips through.
SHARE_ID_KEYS: frozenset[str] = frozenset({"share_id", "shareId"})
SHARE_ID_LOG_PREFIX = 6

_configured = False


def _add_request_id(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    """Inject the current request_id from context into every log entry."""
    rid = request_id_ctx.get()
    if rid is not None:
        event_dict["request_id"] = rid
    return event_dict


def _redact_sensitive(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = "<redacted>"
    return event_dict


def _truncate_share_ids(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    for key in SHARE_ID_KEYS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str) and len(value) > SHARE_ID_LOG_PREFIX:
            event_dict[key] = f"{value[:SHARE_ID_LOG_PREFIX]}..."
        else:
            event_dict[key] = "<redacted>"
    return event_dict


def configure_logging(
    *,
    level: str | None = None,
    json_output: bool | None = None,
) -> None:
    """Configure structlog and stdlib logging.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR).
            Defaults to LOG_LEVEL env var or INFO.
        json_output: If True, emit JSON lines. If False, emit
            human-readable console output. Defaults to LOG_FORMAT
            env var == "json".
    """
    global _configured
    if _configured:
        return
    _configured = True

    level = level or os.environ.get("LOG_LEVEL", "INFO")
    if json_output is None:
        json_output = os.environ.get("LOG_FORMAT", "json") == "json"

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        _add_request_id,
        _redact_sensitive,
        _truncate_share_ids,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Quiet noisy libraries.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to the given name."""
    return structlog.get_logger(name)
