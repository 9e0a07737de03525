"""Ephemeral text/file shares with view limits, expiry and passwords."""

from .audit import (
    InMemoryShareAuditEmitter,
    LoggingShareAuditEmitter,
    ShareAuditEmitter,
    ShareAuditEvent,
    redact_share_id,
)
from .engine import ShareLifecycleEngine
from .errors import (
    ExpiredError,
    ForbiddenContentTypeError,
    InfrastructureError,
    NotAFileError,
    NotFoundError,
    PasswordRequiredError,
    ShareError,
    ValidationError,
    ValidationRule,
    WrongPasswordError,
)
from .model import (
    BlobRef,
    ContentKind,
    CreatedShare,
    DeletedShare,
    FileContent,
    FileMetadata,
    FileStreamRef,
    ShareProjection,
    ShareRecord,
    TextContent,
)
from .policy import CreateShareInput, UploadedFile
from .routes import create_share_router

__all__ = [
    'BlobRef',
    'ContentKind',
    'CreateShareInput',
    'CreatedShare',
    'DeletedShare',
    'ExpiredError',
    'FileContent',
    'FileMetadata',
    'FileStreamRef',
    'ForbiddenContentTypeError',
    'InMemoryShareAuditEmitter',
    'InfrastructureError',
    'LoggingShareAuditEmitter',
    'NotAFileError',
    'NotFoundError',
    'PasswordRequiredError',
    'ShareAuditEmitter',
    'ShareAuditEvent',
    'ShareError',
    'ShareLifecycleEngine',
    'ShareProjection',
    'ShareRecord',
    'TextContent',
    'UploadedFile',
    'ValidationError',
    'ValidationRule',
    'WrongPasswordError',
    'create_share_router',
    'redact_share_id',
]
