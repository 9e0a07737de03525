"""In-memory store implementations for local development and tests.

These are used when ENVIRONMENT=local and no blob root is configured. They
satisfy the protocol interfaces but keep everything in dicts (no
persistence across restarts).
"""

from __future__ import annotations

import asyncio
import hashlib
import uuid
from dataclasses import replace
from datetime import datetime

from .protocols import BlobNotFoundError, ShareIdConflict
from .sharing.model import BlobRef, ShareRecord, utcnow


class InMemoryShareStore:
    def __init__(self) -> None:
        self._records: dict[str, ShareRecord] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, share_id: object) -> bool:
        return share_id in self._records

    async def insert(self, record: ShareRecord) -> ShareRecord:
        async with self._lock:
            if record.id in self._records:
                raise ShareIdConflict(record.id)
            stored = replace(record, created_at=record.created_at or utcnow())
            self._records[record.id] = stored
            return stored

    async def get(self, share_id: str) -> ShareRecord | None:
        return self._records.get(share_id)

    async def increment_views(self, share_id: str) -> int | None:
        async with self._lock:
            record = self._records.get(share_id)
            if record is None:
                return None
            updated = record.with_views(record.current_views + 1)
            self._records[share_id] = updated
            return updated.current_views

    async def delete(self, share_id: str) -> bool:
        async with self._lock:
            return self._records.pop(share_id, None) is not None

    async def list_expired(self, now: datetime) -> list[ShareRecord]:
        expired = [r for r in self._records.values() if r.expires_at <= now]
        return sorted(expired, key=lambda r: r.expires_at)

    # Test helper: rewrite a stored record (e.g. to move expiry into the past).
    def replace_record(self, record: ShareRecord) -> None:
        self._records[record.id] = record


class InMemoryBlobStore:
    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}
        self.deleted: list[str] = []

    def __len__(self) -> int:
        return len(self._blobs)

    def __contains__(self, ref: object) -> bool:
        key = ref.key if isinstance(ref, BlobRef) else ref
        return key in self._blobs

    async def put(self, data: bytes, *, filename: str, mime_type: str) -> BlobRef:
        key = f"blob_{uuid.uuid4().hex}"
        self._blobs[key] = bytes(data)
        return BlobRef(key=key, checksum=hashlib.sha256(data).hexdigest())

    async def get(self, ref: BlobRef) -> bytes:
        try:
            return self._blobs[ref.key]
        except KeyError:
            raise BlobNotFoundError('blob not found') from None

    async def delete(self, ref: BlobRef) -> None:
        if self._blobs.pop(ref.key, None) is not None:
            self.deleted.append(ref.key)
