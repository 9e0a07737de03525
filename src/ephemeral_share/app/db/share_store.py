"""Supabase-backed ShareStore implementation.

Persists share records in the ``shares`` table via PostgREST.

  - View increments go through the ``increment_share_views`` SQL function
    so the read-modify-write is a single atomic UPDATE in Postgres.
  - Deletes use ``Prefer: return=representation``; an empty result means
    another caller already removed the row.
  - Only the password digest is stored, never the raw secret.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import httpx

from ..protocols import ShareIdConflict, ShareStoreError
from ..sharing.model import (
    BlobRef,
    FileContent,
    FileMetadata,
    ShareRecord,
    TextContent,
    parse_timestamp,
)
from .errors import SupabaseConflictError, SupabaseError
from .supabase_client import PostgrestFilter, SupabaseClient

INCREMENT_VIEWS_RPC = "increment_share_views"

# Raised while decoding or mapping a response body (non-JSON body,
# missing column, unparseable timestamp).
MALFORMED_RESPONSE_ERRORS = (KeyError, TypeError, ValueError)


def record_to_row(record: ShareRecord) -> dict[str, Any]:
    """Map a ShareRecord to a ``shares`` table row."""
    row: dict[str, Any] = {
        "id": record.id,
        "content_type": record.content_kind.value,
        "text_content": None,
        "file_key": None,
        "file_checksum": None,
        "original_name": None,
        "mime_type": None,
        "file_size": None,
        "expires_at": record.expires_at.isoformat(),
        "password_digest": record.password_digest,
        "one_time_view": record.one_time_view,
        "max_views": record.max_views,
        "current_views": record.current_views,
    }
    content = record.content
    if isinstance(content, TextContent):
        row["text_content"] = content.text
    else:
        row["file_key"] = content.blob_ref.key
        row["file_checksum"] = content.blob_ref.checksum or None
        row["original_name"] = content.metadata.original_name
        row["mime_type"] = content.metadata.mime_type
        row["file_size"] = content.metadata.size
    if record.created_at is not None:
        row["created_at"] = record.created_at.isoformat()
    return row


def row_to_record(row: dict[str, Any]) -> ShareRecord:
    """Map a ``shares`` row back to a ShareRecord."""
    if row.get("content_type") == "file":
        content: TextContent | FileContent = FileContent(
            blob_ref=BlobRef(key=row["file_key"], checksum=row.get("file_checksum") or ""),
            metadata=FileMetadata(
                original_name=row.get("original_name") or "",
                mime_type=row.get("mime_type") or "application/octet-stream",
                size=int(row.get("file_size") or 0),
            ),
        )
    else:
        content = TextContent(text=row.get("text_content") or "")

    created_at = row.get("created_at")
    return ShareRecord(
        id=row["id"],
        content=content,
        expires_at=parse_timestamp(row["expires_at"]),
        password_digest=row.get("password_digest") or None,
        one_time_view=bool(row.get("one_time_view")),
        max_views=row.get("max_views"),
        current_views=int(row.get("current_views") or 0),
        created_at=parse_timestamp(created_at) if created_at else None,
    )


class SupabaseShareStore:
    """ShareStore backed by the ``shares`` table via PostgREST."""

    def __init__(self, client: SupabaseClient, *, table: str = "public.shares") -> None:
        self._client = client
        self._table = table

    async def insert(self, record: ShareRecord) -> ShareRecord:
        try:
            rows = await self._client.insert(self._table, record_to_row(record))
            if not rows:
                raise ShareStoreError("insert returned no rows")
            return row_to_record(rows[0])
        except SupabaseConflictError as e:
            raise ShareIdConflict(record.id) from e
        except SupabaseError as e:
            if e.is_unique_violation:
                raise ShareIdConflict(record.id) from e
            raise ShareStoreError(f"insert failed: status={e.status_code}") from e
        except (httpx.HTTPError, *MALFORMED_RESPONSE_ERRORS) as e:
            raise ShareStoreError(f"insert failed: {type(e).__name__}") from e

    async def get(self, share_id: str) -> ShareRecord | None:
        try:
            rows = await self._client.select(
                self._table, filters={"id": ("eq", share_id)}, limit=1,
            )
            return row_to_record(rows[0]) if rows else None
        except (SupabaseError, httpx.HTTPError, *MALFORMED_RESPONSE_ERRORS) as e:
            raise ShareStoreError(f"get failed: {type(e).__name__}") from e

    async def increment_views(self, share_id: str) -> int | None:
        try:
            result = await self._client.rpc(INCREMENT_VIEWS_RPC, {"share_id": share_id})
            # Scalar functions come back as a bare JSON value; null means no row.
            if isinstance(result, list):
                result = result[0] if result else None
            if isinstance(result, dict):
                result = next(iter(result.values()), None)
            return int(result) if result is not None else None
        except (SupabaseError, httpx.HTTPError, *MALFORMED_RESPONSE_ERRORS) as e:
            raise ShareStoreError(f"increment failed: {type(e).__name__}") from e

    async def delete(self, share_id: str) -> bool:
        try:
            rows = await self._client.delete(self._table, {"id": ("eq", share_id)})
        except (SupabaseError, httpx.HTTPError, *MALFORMED_RESPONSE_ERRORS) as e:
            raise ShareStoreError(f"delete failed: {type(e).__name__}") from e
        return len(rows) > 0

    async def list_expired(self, now: datetime) -> list[ShareRecord]:
        try:
            rows = await self._client.select(
                self._table,
                filters=[PostgrestFilter("expires_at", "lte", now.isoformat())],
                order="expires_at.asc",
            )
            return [row_to_record(row) for row in rows]
        except (SupabaseError, httpx.HTTPError, *MALFORMED_RESPONSE_ERRORS) as e:
            raise ShareStoreError(f"list_expired failed: {type(e).__name__}") from e
