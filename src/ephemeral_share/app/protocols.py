"""Store, blob and credential protocol interfaces for dependency injection.

These protocols define the contracts that concrete implementations
(InMemory / filesystem for local dev, Supabase for non-local) must satisfy.
The app factory and the lifecycle engine accept any implementation that
matches them.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .sharing.model import BlobRef, ShareRecord


class ShareStoreError(Exception):
    """A share store operation failed."""


class ShareIdConflict(ShareStoreError):
    """Insert was rejected because the share id already exists."""


class BlobStoreError(Exception):
    """A blob backend operation failed."""


class BlobNotFoundError(BlobStoreError):
    """The referenced blob does not exist."""


@runtime_checkable
class ShareStore(Protocol):
    """Durable mapping from share id to ShareRecord.

    ``insert`` returns the stored record with ``created_at`` set by the
    store. ``increment_views`` atomically adds one view and returns the new
    count, or None if the record is gone. ``delete`` is idempotent and
    returns True only for the call that actually removed the record.
    """

    async def insert(self, record: ShareRecord) -> ShareRecord: ...
    async def get(self, share_id: str) -> ShareRecord | None: ...
    async def increment_views(self, share_id: str) -> int | None: ...
    async def delete(self, share_id: str) -> bool: ...
    async def list_expired(self, now: datetime) -> list[ShareRecord]: ...


@runtime_checkable
class BlobStore(Protocol):
    """Raw byte storage for file shares. ``delete`` is idempotent."""

    async def put(self, data: bytes, *, filename: str, mime_type: str) -> BlobRef: ...
    async def get(self, ref: BlobRef) -> bytes: ...
    async def delete(self, ref: BlobRef) -> None: ...


@runtime_checkable
class CredentialVerifier(Protocol):
    """One-way password digest and verification."""

    def hash(self, secret: str) -> str: ...
    def verify(self, secret: str, digest: str) -> bool: ...
