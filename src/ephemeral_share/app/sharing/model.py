"""Share-record domain model.

Implements the share data model:

  - Exactly one content kind per share, enforced by the ``ShareContent``
    tagged union (``TextContent`` | ``FileContent``) instead of nullable
    per-kind fields.
  - Only a password digest is ever held; the raw secret never reaches
    a ``ShareRecord``.
  - ``current_views`` is the only field that changes after insertion.

This module provides:
  1. ``ShareRecord`` — the persisted entity.
  2. ``TextContent`` / ``FileContent`` / ``FileMetadata`` / ``BlobRef`` —
     the content variants.
  3. ``ShareProjection`` / ``FileStreamRef`` / ``CreatedShare`` /
     ``DeletedShare`` — values handed back to callers.
  4. ``generate_share_id`` / ``utcnow`` — id and clock helpers.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Union

# ── Constants ─────────────────────────────────────────────────────────

SHARE_ID_BYTES = 16  # 128-bit ids.
DEFAULT_EXPIRY = timedelta(minutes=10)


# ── Helpers ───────────────────────────────────────────────────────────


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_share_id() -> str:
    """Generate a URL-safe random share id.

    128 bits of randomness makes collisions impractical; stores still
    reject a duplicate id on insert.
    """
    return secrets.token_urlsafe(SHARE_ID_BYTES)


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive values are taken to be UTC.
    """
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ── Content variants ─────────────────────────────────────────────────


class ContentKind(str, Enum):
    TEXT = 'text'
    FILE = 'file'


@dataclass(frozen=True, slots=True)
class BlobRef:
    """Opaque handle for bytes held by a BlobStore.

    ``key`` is backend-specific and must never be shown to clients.
    """

    key: str
    checksum: str = ''

    def __repr__(self) -> str:
        return 'BlobRef(key=<redacted>)'


@dataclass(frozen=True, slots=True)
class FileMetadata:
    original_name: str
    mime_type: str
    size: int


@dataclass(frozen=True, slots=True)
class TextContent:
    text: str

    @property
    def kind(self) -> ContentKind:
        return ContentKind.TEXT


@dataclass(frozen=True, slots=True)
class FileContent:
    blob_ref: BlobRef
    metadata: FileMetadata

    @property
    def kind(self) -> ContentKind:
        return ContentKind.FILE


ShareContent = Union[TextContent, FileContent]


# ── Domain model ──────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ShareRecord:
    """A persisted share.

    Attributes:
        id: Opaque unique identifier.
        content: Text or file payload.
        expires_at: When the share stops being retrievable.
        password_digest: CredentialVerifier digest, or None for no gate.
        one_time_view: Destroy after the first content-returning access.
        max_views: Destroy once ``current_views`` reaches this value.
        current_views: Content-returning accesses so far.
        created_at: Insertion timestamp (set by the store).
    """

    id: str
    content: ShareContent
    expires_at: datetime
    password_digest: str | None = field(default=None, repr=False)
    one_time_view: bool = False
    max_views: int | None = None
    current_views: int = 0
    created_at: datetime | None = None

    @property
    def content_kind(self) -> ContentKind:
        return self.content.kind

    @property
    def text_content(self) -> str | None:
        if isinstance(self.content, TextContent):
            return self.content.text
        return None

    @property
    def file_content(self) -> FileContent | None:
        if isinstance(self.content, FileContent):
            return self.content
        return None

    @property
    def blob_ref(self) -> BlobRef | None:
        if isinstance(self.content, FileContent):
            return self.content.blob_ref
        return None

    @property
    def password_protected(self) -> bool:
        return bool(self.password_digest)

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return now >= self.expires_at

    def limit_reached(self, views: int | None = None) -> bool:
        """Whether a content access that produced ``views`` must destroy the share."""
        views = self.current_views if views is None else views
        if self.one_time_view:
            return views >= 1
        return self.max_views is not None and views >= self.max_views

    def with_views(self, views: int) -> ShareRecord:
        return replace(self, current_views=views)


# ── Caller-facing values ─────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class CreatedShare:
    id: str
    expires_at: datetime
    share_url: str


@dataclass(frozen=True, slots=True)
class DeletedShare:
    id: str


@dataclass(frozen=True, slots=True)
class ShareProjection:
    """Public view of a share returned by Access.

    File shares expose a ``download_url`` pointing at the download route,
    never the storage key.
    """

    id: str
    content_kind: ContentKind
    expires_at: datetime
    created_at: datetime | None
    one_time_view: bool
    max_views: int | None
    current_views: int
    password_protected: bool
    text_content: str | None = None
    file: FileMetadata | None = None
    download_url: str | None = None

    @classmethod
    def from_record(
        cls,
        record: ShareRecord,
        *,
        current_views: int,
        download_url: str | None = None,
    ) -> ShareProjection:
        file_content = record.file_content
        return cls(
            id=record.id,
            content_kind=record.content_kind,
            expires_at=record.expires_at,
            created_at=record.created_at,
            one_time_view=record.one_time_view,
            max_views=record.max_views,
            current_views=current_views,
            password_protected=record.password_protected,
            text_content=record.text_content,
            file=file_content.metadata if file_content else None,
            download_url=download_url if file_content else None,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            'shareId': self.id,
            'contentType': self.content_kind.value,
            'expiresAt': self.expires_at.isoformat(),
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'oneTimeView': self.one_time_view,
            'maxViews': self.max_views,
            'currentViews': self.current_views,
            'passwordProtected': self.password_protected,
        }
        if self.content_kind is ContentKind.TEXT:
            data['textContent'] = self.text_content
        elif self.file is not None:
            data['fileMetadata'] = {
                'originalName': self.file.original_name,
                'mimeType': self.file.mime_type,
                'size': self.file.size,
                'downloadUrl': self.download_url,
            }
        return data


@dataclass(frozen=True, slots=True)
class FileStreamRef:
    """Everything the HTTP layer needs to stream a downloaded file.

    ``blob_ref`` stays server-side; it is excluded from ``repr`` and never
    serialized to clients.
    """

    share_id: str
    metadata: FileMetadata
    current_views: int
    blob_ref: BlobRef = field(repr=False)
    deletion_scheduled: bool = False
