"""Local filesystem blob store."""
from __future__ import annotations

import asyncio
import hashlib
import uuid
from pathlib import Path

from .protocols import BlobNotFoundError, BlobStoreError
from .sharing.model import BlobRef


class FilesystemBlobStore:
    """Local filesystem blob store.

    Blobs are written under ``root`` using random keys fanned out into
    two-character subdirectories. The original filename is never part of
    the on-disk path.
    """

    def __init__(self, root: Path | str):
        """Initialize with the blob root directory.

        Args:
            root: Directory holding all blobs. Created if missing.
        """
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _abs(self, key: str) -> Path:
        """Map a blob key to its path, validating it stays within root.

        Raises:
            ValueError: If the key escapes the root directory
        """
        resolved = (self.root / key).resolve()
        if self.root not in resolved.parents:
            raise ValueError('Blob key outside of blob root')
        return resolved

    def _write(self, key: str, data: bytes) -> None:
        p = self._abs(key)
        p.parent.mkdir(parents=True, exist_ok=True)
        tmp = p.with_suffix('.part')
        with open(tmp, 'wb') as f:
            f.write(data)
        tmp.replace(p)

    def _read(self, key: str) -> bytes:
        p = self._abs(key)
        try:
            with open(p, 'rb') as f:
                return f.read()
        except FileNotFoundError:
            raise BlobNotFoundError('blob not found') from None

    def _unlink(self, key: str) -> None:
        p = self._abs(key)
        p.unlink(missing_ok=True)

    async def put(self, data: bytes, *, filename: str, mime_type: str) -> BlobRef:
        name = uuid.uuid4().hex
        key = f'{name[:2]}/{name}'
        try:
            await asyncio.to_thread(self._write, key, data)
        except OSError as e:
            raise BlobStoreError(f'blob write failed: {e.strerror}') from e
        return BlobRef(key=key, checksum=hashlib.sha256(data).hexdigest())

    async def get(self, ref: BlobRef) -> bytes:
        try:
            return await asyncio.to_thread(self._read, ref.key)
        except BlobNotFoundError:
            raise
        except OSError as e:
            raise BlobStoreError(f'blob read failed: {e.strerror}') from e

    async def delete(self, ref: BlobRef) -> None:
        try:
            await asyncio.to_thread(self._unlink, ref.key)
        except OSError as e:
            raise BlobStoreError(f'blob delete failed: {e.strerror}') from e

    def exists(self, ref: BlobRef) -> bool:
        return self._abs(ref.key).exists()
