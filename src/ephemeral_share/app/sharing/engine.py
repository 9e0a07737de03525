"""Share lifecycle engine.

Owns every rule about a share's life: create-time validation, access
gating (expiry, then password), view accounting, limit-triggered
destruction, explicit deletion and the purge path shared with the reaper.

Concurrency contract:
  - All mutating work on one share id runs inside that id's critical
    section (``KeyedLockTable``), so read -> increment -> check -> delete is
    linearizable per share. Different ids never contend.
  - The critical section runs as its own task that owns the lock. A caller
    that is cancelled mid-operation does not interrupt it, so a committed
    view increment is always followed by its deletion decision.
  - Purge removes the store entry first. Only the call whose delete actually
    removed the entry touches the blob, so a blob is deleted at most once
    and a failed blob delete never resurrects the share.

This module provides:
  ``ShareLifecycleEngine`` — create / access / download / delete / purge.
"""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Iterator, TypeVar

from ..observability.logging import get_logger
from ..observability.metrics import (
    SHARE_BLOB_ORPHANS_TOTAL,
    SHARE_OPERATIONS_TOTAL,
    SHARE_PENDING_BLOB_DELETIONS,
    SHARE_PURGES_TOTAL,
)
from ..protocols import (
    BlobNotFoundError,
    BlobStore,
    BlobStoreError,
    CredentialVerifier,
    ShareIdConflict,
    ShareStore,
    ShareStoreError,
)
from . import audit
from .errors import (
    ExpiredError,
    InfrastructureError,
    NotAFileError,
    NotFoundError,
    PasswordRequiredError,
    ShareError,
    WrongPasswordError,
)
from .locks import KeyedLockTable
from .model import (
    DEFAULT_EXPIRY,
    BlobRef,
    CreatedShare,
    DeletedShare,
    FileContent,
    FileMetadata,
    FileStreamRef,
    ShareProjection,
    ShareRecord,
    TextContent,
    generate_share_id,
    utcnow,
)
from .policy import (
    MAX_FILE_SIZE_BYTES,
    MIN_PASSWORD_LENGTH,
    CreateShareInput,
    validate_create,
)

logger = get_logger(__name__)

T = TypeVar('T')

BACKEND_ERRORS = (ShareStoreError, BlobStoreError, OSError)

DEFAULT_DOWNLOAD_GRACE_SECONDS = 2.0
_INSERT_ATTEMPTS = 3

# Purge reasons (metric label values).
PURGE_EXPIRED = 'expired'
PURGE_VIEW_LIMIT = 'view_limit'
PURGE_DELETED = 'deleted'
PURGE_REAPED = 'reaped'


def _consume_result(task: asyncio.Task) -> None:
    if not task.cancelled():
        task.exception()


@contextmanager
def _track(operation: str) -> Iterator[None]:
    try:
        yield
    except ShareError as e:
        SHARE_OPERATIONS_TOTAL.labels(operation=operation, outcome=e.code).inc()
        raise
    SHARE_OPERATIONS_TOTAL.labels(operation=operation, outcome='ok').inc()


class ShareLifecycleEngine:
    """Create, gate, count and destroy shares.

    Args:
        store: Share record store.
        blob_store: Byte store for file shares.
        verifier: Password digest/verify implementation.
        audit_emitter: Audit sink (defaults to a structlog-backed emitter).
        frontend_url: Base of the share URL returned by create.
        public_api_url: Base of file download URLs in projections ('' for
            relative URLs).
        default_expiry: Expiry applied when create gets none.
        min_password_length: Minimum password length after trimming.
        max_file_size: Upload size limit in bytes (None disables it).
        download_grace_seconds: Delay before a limit-tripping download's
            blob is deleted, so the response can still stream it.
        clock: Source of "now" (injectable for tests).
    """

    def __init__(
        self,
        store: ShareStore,
        blob_store: BlobStore,
        verifier: CredentialVerifier,
        *,
        audit_emitter: audit.ShareAuditEmitter | None = None,
        frontend_url: str = '',
        public_api_url: str = '',
        default_expiry: timedelta = DEFAULT_EXPIRY,
        min_password_length: int = MIN_PASSWORD_LENGTH,
        max_file_size: int | None = MAX_FILE_SIZE_BYTES,
        download_grace_seconds: float = DEFAULT_DOWNLOAD_GRACE_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._blobs = blob_store
        self._verifier = verifier
        self._audit = audit_emitter or audit.LoggingShareAuditEmitter()
        self._frontend_url = frontend_url.rstrip('/')
        self._public_api_url = public_api_url.rstrip('/')
        self._default_expiry = default_expiry
        self._min_password_length = min_password_length
        self._max_file_size = max_file_size
        self._grace = max(0.0, float(download_grace_seconds))
        self._clock = clock
        self._locks = KeyedLockTable()
        self._pending: set[asyncio.Task] = set()
        self._closing = asyncio.Event()

    def now(self) -> datetime:
        return self._clock()

    # ── URLs ─────────────────────────────────────────────────────────

    def share_url(self, share_id: str) -> str:
        return f'{self._frontend_url}/share/{share_id}'

    def download_url(self, share_id: str) -> str:
        return f'{self._public_api_url}/api/download/{share_id}'

    @property
    def max_file_size(self) -> int | None:
        return self._max_file_size

    @property
    def pending_blob_deletions(self) -> int:
        return len(self._pending)

    # ── Create ───────────────────────────────────────────────────────

    async def create(self, request: CreateShareInput) -> CreatedShare:
        """Validate and persist a new share.

        Raises:
            ValidationError: Input violated one or more rules.
            ForbiddenContentTypeError: File type is denied.
            InfrastructureError: Blob write or record insert failed.
        """
        with _track('create'):
            return await self._create(request)

    async def _create(self, request: CreateShareInput) -> CreatedShare:
        now = self._clock()
        valid = validate_create(
            request,
            now=now,
            default_expiry=self._default_expiry,
            min_password_length=self._min_password_length,
            max_file_size=self._max_file_size,
        )

        digest = None
        if valid.password is not None:
            digest = await asyncio.to_thread(self._verifier.hash, valid.password)

        if valid.file is not None:
            upload = valid.file
            try:
                blob_ref = await self._blobs.put(
                    upload.data,
                    filename=upload.original_name,
                    mime_type=upload.mime_type,
                )
            except BACKEND_ERRORS as e:
                logger.error('blob_put_failed', error=str(e)[:200])
                raise InfrastructureError('blob_put') from e
            content = FileContent(
                blob_ref=blob_ref,
                metadata=FileMetadata(
                    original_name=upload.original_name,
                    mime_type=upload.mime_type,
                    size=upload.effective_size,
                ),
            )
        else:
            content = TextContent(text=valid.text)

        try:
            record = await self._insert(
                content=content,
                expires_at=valid.expires_at,
                password_digest=digest,
                one_time_view=valid.one_time_view,
                max_views=valid.max_views,
            )
        except BACKEND_ERRORS as e:
            logger.error('share_insert_failed', error=str(e)[:200])
            if isinstance(content, FileContent):
                await self._delete_blob(content.blob_ref, None)
            raise InfrastructureError('insert') from e

        logger.info(
            'share_created',
            share=audit.redact_share_id(record.id),
            kind=record.content_kind.value,
            password_protected=record.password_protected,
            one_time_view=record.one_time_view,
            max_views=record.max_views,
            expires_at=record.expires_at.isoformat(),
        )
        await self._audit.emit(audit.make_event(
            audit.SHARE_CREATED, record.id, content_kind=record.content_kind.value,
        ))
        return CreatedShare(
            id=record.id,
            expires_at=record.expires_at,
            share_url=self.share_url(record.id),
        )

    async def _insert(self, **fields) -> ShareRecord:
        attempt = 0
        while True:
            attempt += 1
            record = ShareRecord(id=generate_share_id(), current_views=0, **fields)
            try:
                return await self._store.insert(record)
            except ShareIdConflict:
                if attempt >= _INSERT_ATTEMPTS:
                    raise
                logger.warning('share_id_collision', attempt=attempt)

    # ── Access ───────────────────────────────────────────────────────

    async def access(self, share_id: str, password: str | None = None) -> ShareProjection:
        """Read a share's projection; text shares count a view.

        File shares are view-free here: their views are counted by
        ``download``.

        Raises:
            NotFoundError, ExpiredError, PasswordRequiredError,
            WrongPasswordError, InfrastructureError.
        """
        with _track('access'):
            return await self._exclusive(
                share_id, lambda: self._access_locked(share_id, password),
            )

    async def _access_locked(self, share_id: str, password: str | None) -> ShareProjection:
        record = await self._open_gate(share_id, password)

        views = record.current_views
        if isinstance(record.content, TextContent):
            views = await self._commit_view(record, PURGE_VIEW_LIMIT, defer_blob=False)

        await self._audit.emit(audit.make_event(
            audit.SHARE_ACCESSED,
            record.id,
            content_kind=record.content_kind.value,
            current_views=views,
        ))
        return ShareProjection.from_record(
            record,
            current_views=views,
            download_url=self.download_url(record.id),
        )

    # ── Download ─────────────────────────────────────────────────────

    async def download(self, share_id: str, password: str | None = None) -> FileStreamRef:
        """Count a file download and return what is needed to stream it.

        If the download trips a view limit, the record is removed at once
        and the blob is removed after the grace window.

        Raises:
            NotFoundError, ExpiredError, PasswordRequiredError,
            WrongPasswordError, NotAFileError, InfrastructureError.
        """
        with _track('download'):
            return await self._exclusive(
                share_id, lambda: self._download_locked(share_id, password),
            )

    async def _download_locked(self, share_id: str, password: str | None) -> FileStreamRef:
        record = await self._open_gate(share_id, password)
        content = record.content
        if not isinstance(content, FileContent):
            raise NotAFileError(share_id)

        views = await self._commit_view(record, PURGE_VIEW_LIMIT, defer_blob=True)
        scheduled = record.limit_reached(views)

        await self._audit.emit(audit.make_event(
            audit.SHARE_DOWNLOADED,
            record.id,
            content_kind=record.content_kind.value,
            current_views=views,
        ))
        return FileStreamRef(
            share_id=record.id,
            metadata=content.metadata,
            current_views=views,
            blob_ref=content.blob_ref,
            deletion_scheduled=scheduled,
        )

    async def open_stream(self, ref: FileStreamRef) -> bytes:
        """Fetch the bytes behind a download reference.

        Raises:
            NotFoundError: The blob is already gone.
            InfrastructureError: The blob backend failed.
        """
        try:
            return await self._blobs.get(ref.blob_ref)
        except BlobNotFoundError as e:
            raise NotFoundError(ref.share_id) from e
        except BACKEND_ERRORS as e:
            logger.error('blob_read_failed', share=audit.redact_share_id(ref.share_id))
            raise InfrastructureError('blob_get') from e

    # ── Delete ───────────────────────────────────────────────────────

    async def delete(self, share_id: str, password: str | None = None) -> DeletedShare:
        """Explicitly delete a share. No expiry check is applied.

        Raises:
            NotFoundError, PasswordRequiredError, WrongPasswordError,
            InfrastructureError.
        """
        with _track('delete'):
            return await self._exclusive(
                share_id, lambda: self._delete_locked(share_id, password),
            )

    async def _delete_locked(self, share_id: str, password: str | None) -> DeletedShare:
        record = await self._load(share_id)
        await self._check_password(record, password)
        if not await self.purge(record, PURGE_DELETED):
            raise NotFoundError(share_id)
        await self._audit.emit(audit.make_event(
            audit.SHARE_DELETED, record.id, content_kind=record.content_kind.value,
        ))
        return DeletedShare(id=record.id)

    # ── Expiry / reaper path ─────────────────────────────────────────

    async def list_expired(self, now: datetime | None = None) -> list[ShareRecord]:
        now = now or self._clock()
        try:
            return await self._store.list_expired(now)
        except BACKEND_ERRORS as e:
            raise InfrastructureError('list_expired') from e

    async def purge_if_expired(self, share_id: str, now: datetime | None = None) -> bool:
        """Purge ``share_id`` if it still exists and is expired at ``now``.

        Runs in the share's critical section, so it never races a reader.
        Returns True if this call removed the record.
        """
        async def _locked() -> bool:
            try:
                record = await self._store.get(share_id)
            except BACKEND_ERRORS as e:
                raise InfrastructureError('lookup') from e
            if record is None or not record.is_expired(now or self._clock()):
                return False
            return await self.purge(record, PURGE_REAPED)

        return await self._exclusive(share_id, _locked)

    async def purge(
        self,
        record: ShareRecord,
        reason: str,
        *,
        defer_blob: bool = False,
    ) -> bool:
        """Remove a share: store entry first, then its blob.

        Idempotent. Returns True only if this call removed the store entry;
        only that call deletes the blob. Blob failures are logged and
        swallowed. With ``defer_blob`` the blob is deleted after the
        download grace window instead of inline.

        Raises:
            InfrastructureError: The store delete itself failed.
        """
        try:
            removed = await self._store.delete(record.id)
        except BACKEND_ERRORS as e:
            logger.error(
                'share_delete_failed',
                share=audit.redact_share_id(record.id),
                reason=reason,
                error=str(e)[:200],
            )
            raise InfrastructureError('delete') from e

        if not removed:
            return False

        SHARE_PURGES_TOTAL.labels(reason=reason).inc()
        logger.info(
            'share_purged',
            share=audit.redact_share_id(record.id),
            reason=reason,
            blob_deferred=defer_blob and record.blob_ref is not None,
        )
        await self._audit.emit(audit.make_event(
            audit.SHARE_PURGED,
            record.id,
            content_kind=record.content_kind.value,
            detail=reason,
        ))

        blob_ref = record.blob_ref
        if blob_ref is None:
            return True
        if defer_blob:
            task = asyncio.create_task(self._delete_blob_later(blob_ref, record.id))
            self._pending.add(task)
            SHARE_PENDING_BLOB_DELETIONS.inc()
            task.add_done_callback(self._pending_done)
        else:
            await self._delete_blob(blob_ref, record.id)
        return True

    # ── Shutdown ─────────────────────────────────────────────────────

    async def aclose(self) -> None:
        """Run pending post-download blob deletions now and wait for them."""
        self._closing.set()
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ── Internals ────────────────────────────────────────────────────

    async def _exclusive(self, share_id: str, op: Callable[[], Awaitable[T]]) -> T:
        async def _locked() -> T:
            async with self._locks.hold(share_id):
                return await op()

        task = asyncio.ensure_future(_locked())
        task.add_done_callback(_consume_result)
        return await asyncio.shield(task)

    async def _load(self, share_id: str) -> ShareRecord:
        try:
            record = await self._store.get(share_id)
        except BACKEND_ERRORS as e:
            logger.error('share_lookup_failed', share=audit.redact_share_id(share_id))
            raise InfrastructureError('lookup') from e
        if record is None:
            raise NotFoundError(share_id)
        return record

    async def _open_gate(self, share_id: str, password: str | None) -> ShareRecord:
        """Steps shared by access and download: lookup, expiry, password."""
        record = await self._load(share_id)

        if record.is_expired(self._clock()):
            await self._purge_quietly(record, PURGE_EXPIRED)
            await self._audit.emit(audit.make_event(
                audit.SHARE_EXPIRED, record.id, content_kind=record.content_kind.value,
            ))
            raise ExpiredError(record.id, record.expires_at)

        # A share whose limit was reached should already be gone; if an
        # earlier purge failed, finish it now instead of serving it again.
        if record.limit_reached():
            await self._purge_quietly(record, PURGE_VIEW_LIMIT)
            raise NotFoundError(share_id)

        await self._check_password(record, password)
        return record

    async def _check_password(self, record: ShareRecord, password: str | None) -> None:
        if not record.password_digest:
            return
        if not password:
            await self._audit.emit(audit.make_event(
                audit.SHARE_DENIED, record.id, detail=PasswordRequiredError.code,
            ))
            raise PasswordRequiredError(record.id)
        ok = await asyncio.to_thread(self._verifier.verify, password, record.password_digest)
        if not ok:
            await self._audit.emit(audit.make_event(
                audit.SHARE_DENIED, record.id, detail=WrongPasswordError.code,
            ))
            raise WrongPasswordError(record.id)

    async def _commit_view(self, record: ShareRecord, reason: str, *, defer_blob: bool) -> int:
        """Increment views and destroy the share if that trips its limit."""
        try:
            views = await self._store.increment_views(record.id)
        except BACKEND_ERRORS as e:
            logger.error('share_increment_failed', share=audit.redact_share_id(record.id))
            raise InfrastructureError('increment') from e
        if views is None:
            raise NotFoundError(record.id)

        if record.limit_reached(views):
            await self._purge_quietly(record, reason, defer_blob=defer_blob)
        return views

    async def _purge_quietly(
        self,
        record: ShareRecord,
        reason: str,
        *,
        defer_blob: bool = False,
    ) -> bool:
        try:
            return await self.purge(record, reason, defer_blob=defer_blob)
        except InfrastructureError:
            # Already logged by purge; the reaper or the next access retries.
            return False

    def _pending_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        SHARE_PENDING_BLOB_DELETIONS.dec()
        _consume_result(task)

    async def _delete_blob_later(self, ref: BlobRef, share_id: str) -> None:
        try:
            await asyncio.wait_for(self._closing.wait(), timeout=self._grace)
        except asyncio.TimeoutError:
            pass
        await self._delete_blob(ref, share_id)

    async def _delete_blob(self, ref: BlobRef, share_id: str | None) -> None:
        try:
            await self._blobs.delete(ref)
        except BlobNotFoundError:
            return
        except BACKEND_ERRORS as e:
            SHARE_BLOB_ORPHANS_TOTAL.inc()
            logger.warning(
                'blob_delete_failed',
                share=audit.redact_share_id(share_id),
                error=str(e)[:200],
            )
