"""Share create/access/download/delete API endpoints.

  POST   /api/upload                 → create share (multipart form)
  GET    /api/share/{share_id}       → share projection (text counts a view)
  GET    /api/download/{share_id}    → file bytes as an attachment
  DELETE /api/share/{share_id}       → explicit delete

The password for a protected share is passed as the ``password`` query
parameter. Every handler maps ``ShareError`` to a JSON body of the form
``{"error": <code>, "detail": <message>, ...}`` with the error's status.

This module provides:
  ``create_share_router`` — FastAPI router factory with an injected engine.
"""

from __future__ import annotations

from datetime import datetime
from urllib.parse import quote

from fastapi import APIRouter, File, Form, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from .engine import ShareLifecycleEngine
from .errors import ShareError, ValidationError, ValidationRule
from .policy import CreateShareInput, UploadedFile

_TRUE_VALUES = frozenset({'1', 'true', 'yes', 'on'})

# Share content is single-use; intermediaries must not keep a copy.
_NO_STORE = {'Cache-Control': 'no-store'}


# ── Response schemas ─────────────────────────────────────────────────


class UploadResponse(BaseModel):
    """Body returned by a successful create."""

    success: bool = True
    shareId: str
    shareUrl: str = Field(..., description='Frontend URL for the share')
    expiresAt: datetime


class DeleteResponse(BaseModel):
    success: bool = True
    message: str = 'Share deleted successfully'
    shareId: str


def _error_response(error: ShareError) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_dict(),
        headers=_NO_STORE,
    )


def _form_flag(value: str | None) -> bool:
    return (value or '').strip().lower() in _TRUE_VALUES


def content_disposition(filename: str) -> str:
    """Build an attachment header that survives non-ASCII filenames."""
    fallback = filename.encode('ascii', 'replace').decode('ascii')
    fallback = fallback.replace('"', "'").replace('\\', '_') or 'download'
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


async def _read_upload(upload: UploadFile | None, max_size: int | None) -> UploadedFile | None:
    """Read an uploaded file, refusing anything over ``max_size`` bytes.

    The multipart parser already spooled the part to disk, so the declared
    size is checked before any bytes are pulled into memory. The read itself
    is bounded as well.
    """
    if upload is None or not upload.filename:
        return None
    if max_size is not None:
        if upload.size is not None and upload.size > max_size:
            raise ValidationError([ValidationRule.FILE_TOO_LARGE])
        data = await upload.read(max_size + 1)
        if len(data) > max_size:
            raise ValidationError([ValidationRule.FILE_TOO_LARGE])
    else:
        data = await upload.read()
    return UploadedFile(
        data=data,
        original_name=upload.filename,
        mime_type=upload.content_type or 'application/octet-stream',
        size=len(data),
    )


# ── Route factory ────────────────────────────────────────────────────


def create_share_router(engine: ShareLifecycleEngine) -> APIRouter:
    """Create the share API router.

    Args:
        engine: Lifecycle engine that owns every share rule.

    Returns:
        FastAPI router with the share lifecycle routes.
    """
    router = APIRouter(prefix='/api', tags=['shares'])

    @router.post('/upload', status_code=201, response_model=UploadResponse)
    async def upload(
        text: str | None = Form(default=None),
        file: UploadFile | None = File(default=None),
        expiryDate: str | None = Form(default=None),
        password: str | None = Form(default=None),
        oneTimeView: str | None = Form(default=None),
        maxViews: str | None = Form(default=None),
    ):
        """Create a text or file share."""
        try:
            request = CreateShareInput(
                text=text,
                file=await _read_upload(file, engine.max_file_size),
                expires_at=expiryDate,
                password=password,
                one_time_view=_form_flag(oneTimeView),
                max_views=maxViews,
            )
            created = await engine.create(request)
        except ShareError as e:
            return _error_response(e)

        return UploadResponse(
            shareId=created.id,
            shareUrl=created.share_url,
            expiresAt=created.expires_at,
        )

    @router.get('/share/{share_id}')
    async def get_share(share_id: str, password: str | None = None):
        """Return the share projection; text shares count one view."""
        try:
            projection = await engine.access(share_id, password)
        except ShareError as e:
            return _error_response(e)
        return JSONResponse(content=projection.to_dict(), headers=_NO_STORE)

    @router.get('/download/{share_id}')
    async def download(share_id: str, password: str | None = None):
        """Count a download and return the file bytes."""
        try:
            ref = await engine.download(share_id, password)
            data = await engine.open_stream(ref)
        except ShareError as e:
            return _error_response(e)

        return Response(
            content=data,
            media_type=ref.metadata.mime_type or 'application/octet-stream',
            headers={
                **_NO_STORE,
                'Content-Disposition': content_disposition(ref.metadata.original_name),
                'X-Share-Views': str(ref.current_views),
            },
        )

    @router.delete('/share/{share_id}', response_model=DeleteResponse)
    async def delete_share(share_id: str, password: str | None = None):
        """Delete a share and its file."""
        try:
            deleted = await engine.delete(share_id, password)
        except ShareError as e:
            return _error_response(e)
        return DeleteResponse(shareId=deleted.id)

    return router
