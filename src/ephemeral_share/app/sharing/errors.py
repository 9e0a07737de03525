"""Share lifecycle error taxonomy.

Every error carries a stable ``code`` (machine-distinguishable) and the
HTTP status the API layer maps it to. Messages never contain storage keys,
password digests or raw passwords.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Iterable


class ValidationRule(str, Enum):
    MISSING_CONTENT = 'missing_content'
    BOTH_CONTENT_KINDS = 'both_content_kinds'
    EMPTY_TEXT = 'empty_text'
    PASSWORD_TOO_SHORT = 'password_too_short'
    INVALID_MAX_VIEWS = 'invalid_max_views'
    EXPIRY_IN_PAST = 'expiry_in_past'
    INVALID_EXPIRY = 'invalid_expiry'
    FILE_TOO_LARGE = 'file_too_large'


_RULE_MESSAGES: dict[ValidationRule, str] = {
    ValidationRule.MISSING_CONTENT: 'Either text or file required',
    ValidationRule.BOTH_CONTENT_KINDS: 'Only one of text or file',
    ValidationRule.EMPTY_TEXT: 'Text cannot be empty',
    ValidationRule.PASSWORD_TOO_SHORT: 'Password is too short',
    ValidationRule.INVALID_MAX_VIEWS: 'maxViews must be a positive number',
    ValidationRule.EXPIRY_IN_PAST: 'Expiry date must be in the future',
    ValidationRule.INVALID_EXPIRY: 'Expiry date is not a valid timestamp',
    ValidationRule.FILE_TOO_LARGE: 'File exceeds the maximum upload size',
}


class ShareError(Exception):
    """Base class for every share lifecycle failure."""

    code: str = 'share_error'
    status_code: int = 500

    def __init__(self, message: str = '') -> None:
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {'error': self.code, 'detail': self.message}


class ValidationError(ShareError):
    """Share input failed validation."""

    code = 'validation_error'
    status_code = 400

    def __init__(self, violations: Iterable[ValidationRule]) -> None:
        self.violations: tuple[ValidationRule, ...] = tuple(violations)
        super().__init__('; '.join(_RULE_MESSAGES[v] for v in self.violations))

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), 'violations': [v.value for v in self.violations]}


class ForbiddenContentTypeError(ShareError):
    """File type is on the executable/script denylist."""

    code = 'forbidden_content_type'
    status_code = 400

    def __init__(self, extension: str, mime_type: str = '') -> None:
        self.extension = extension
        self.mime_type = mime_type
        rejected = extension or mime_type
        super().__init__(f"File type '{rejected}' is not allowed for security reasons")

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            'extension': self.extension,
            'mimeType': self.mime_type,
        }


class NotFoundError(ShareError):
    """Share not found."""

    code = 'not_found'
    status_code = 404

    def __init__(self, share_id: str) -> None:
        self.share_id = share_id
        super().__init__('Share not found or expired')


class ExpiredError(ShareError):
    """Share has expired and was purged."""

    code = 'expired'
    status_code = 410

    def __init__(self, share_id: str, expired_at: datetime) -> None:
        self.share_id = share_id
        self.expired_at = expired_at
        super().__init__('Share expired')

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), 'expiredAt': self.expired_at.isoformat()}


class PasswordRequiredError(ShareError):
    """Share is password protected and no password was supplied."""

    code = 'password_required'
    status_code = 401

    def __init__(self, share_id: str) -> None:
        self.share_id = share_id
        super().__init__('Password required')

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), 'passwordProtected': True}


class WrongPasswordError(ShareError):
    """Supplied password does not match."""

    code = 'wrong_password'
    status_code = 401

    def __init__(self, share_id: str) -> None:
        self.share_id = share_id
        super().__init__('Wrong password')


class NotAFileError(ShareError):
    """Download was requested for a text share."""

    code = 'not_a_file'
    status_code = 400

    def __init__(self, share_id: str) -> None:
        self.share_id = share_id
        super().__init__('Not a file share')


class InfrastructureError(ShareError):
    """A store or blob backend failed.

    ``operation`` names the step that failed so a client can decide
    whether a retry is safe (``create`` before insert, for example).
    """

    code = 'infrastructure_error'
    status_code = 503

    def __init__(self, operation: str, message: str = '') -> None:
        self.operation = operation
        super().__init__(message or f'Storage backend failed during {operation}')

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), 'operation': self.operation}
