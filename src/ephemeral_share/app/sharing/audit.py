"""Share lifecycle audit events and id redaction.

Records share create, access, download, delete, expiry and purge
operations as structured events for observability pipelines.

Security invariant:
  A share id is a bearer credential (knowing it grants access), so full ids
  must NEVER appear in audit event data. Only id prefixes (first 6 chars)
  are included for correlation.

This module provides:
  1. ``ShareAuditEvent`` — structured audit record.
  2. ``ShareAuditEmitter`` — protocol for event sinks.
  3. ``InMemoryShareAuditEmitter`` — test implementation.
  4. ``LoggingShareAuditEmitter`` — structlog-backed sink.
  5. ``redact_share_id`` — safely truncate ids for logging.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol

from ..observability.logging import get_logger

# ── Constants ─────────────────────────────────────────────────────────

SHARE_ID_PREFIX_LENGTH = 6

SHARE_CREATED = 'share.created'
SHARE_ACCESSED = 'share.accessed'
SHARE_DOWNLOADED = 'share.downloaded'
SHARE_DELETED = 'share.deleted'
SHARE_EXPIRED = 'share.expired'
SHARE_PURGED = 'share.purged'
SHARE_DENIED = 'share.denied'


# ── Id redaction ─────────────────────────────────────────────────────


def redact_share_id(share_id: str | None) -> str:
    """Truncate a share id to a prefix for logging.

    Returns ``<prefix>...`` or ``<redacted>`` for missing/short ids.
    """
    if not share_id or len(share_id) <= SHARE_ID_PREFIX_LENGTH:
        return '<redacted>'
    return f'{share_id[:SHARE_ID_PREFIX_LENGTH]}...'


# ── Audit event model ───────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ShareAuditEvent:
    """Structured audit event for share operations.

    Attributes:
        event_type: Operation type (share.created, share.accessed, ...).
        share_prefix: First chars of the share id (for correlation only).
        content_kind: 'text' or 'file', when known.
        current_views: View count after the operation, when relevant.
        detail: Additional context (denial reason, purge reason).
        timestamp: When the event occurred.
    """

    event_type: str
    share_prefix: str = '<redacted>'
    content_kind: str = ''
    current_views: int | None = None
    detail: str = ''
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        """Serialize to a dict safe for JSON logging."""
        return {
            'event_type': self.event_type,
            'share_prefix': self.share_prefix,
            'content_kind': self.content_kind,
            'current_views': self.current_views,
            'detail': self.detail,
            'timestamp': self.timestamp.isoformat(),
        }


def make_event(
    event_type: str,
    share_id: str | None,
    *,
    content_kind: str = '',
    current_views: int | None = None,
    detail: str = '',
) -> ShareAuditEvent:
    return ShareAuditEvent(
        event_type=event_type,
        share_prefix=redact_share_id(share_id),
        content_kind=content_kind,
        current_views=current_views,
        detail=detail,
    )


# ── Emitter protocol ────────────────────────────────────────────────


class ShareAuditEmitter(Protocol):
    """Abstract audit event sink."""

    async def emit(self, event: ShareAuditEvent) -> None: ...


# ── Implementations ─────────────────────────────────────────────────


class InMemoryShareAuditEmitter:
    """Test audit emitter that stores events in memory."""

    def __init__(self) -> None:
        self.events: list[ShareAuditEvent] = []

    async def emit(self, event: ShareAuditEvent) -> None:
        self.events.append(event)

    def find(self, event_type: str | None = None) -> list[ShareAuditEvent]:
        """Filter events by type."""
        if event_type:
            return [e for e in self.events if e.event_type == event_type]
        return list(self.events)


class LoggingShareAuditEmitter:
    """Writes audit events to the ``ephemeral_share.audit`` logger."""

    def __init__(self) -> None:
        self._logger = get_logger('ephemeral_share.audit')

    async def emit(self, event: ShareAuditEvent) -> None:
        self._logger.info('audit_event', **event.to_dict())
