"""Supabase Storage-backed BlobStore implementation.

Objects live in one private bucket under random keys
(``<yyyy>/<mm>/<uuid hex>``). Keys never reach clients.
"""

from __future__ import annotations

import hashlib
import uuid
from datetime import datetime, timezone

import httpx

from ..protocols import BlobNotFoundError, BlobStoreError
from ..sharing.model import BlobRef
from .errors import SupabaseError, SupabaseNotFoundError
from .supabase_client import SupabaseClient


class SupabaseBlobStore:
    """BlobStore backed by a Supabase Storage bucket."""

    def __init__(self, client: SupabaseClient, *, bucket: str = "shares") -> None:
        self._client = client
        self._bucket = bucket

    @staticmethod
    def _new_key() -> str:
        now = datetime.now(timezone.utc)
        return f"{now:%Y}/{now:%m}/{uuid.uuid4().hex}"

    async def put(self, data: bytes, *, filename: str, mime_type: str) -> BlobRef:
        key = self._new_key()
        try:
            await self._client.upload_object(
                self._bucket, key, data, content_type=mime_type,
            )
        except (SupabaseError, httpx.HTTPError) as e:
            raise BlobStoreError(f"upload failed: {type(e).__name__}") from e
        return BlobRef(key=key, checksum=hashlib.sha256(data).hexdigest())

    async def get(self, ref: BlobRef) -> bytes:
        try:
            return await self._client.download_object(self._bucket, ref.key)
        except SupabaseNotFoundError as e:
            raise BlobNotFoundError("blob not found") from e
        except (SupabaseError, httpx.HTTPError) as e:
            raise BlobStoreError(f"download failed: {type(e).__name__}") from e

    async def delete(self, ref: BlobRef) -> None:
        try:
            await self._client.remove_object(self._bucket, ref.key)
        except SupabaseNotFoundError:
            return
        except (SupabaseError, httpx.HTTPError) as e:
            raise BlobStoreError(f"remove failed: {type(e).__name__}") from e
