"""Create-time validation and content-type policy.

All checks here run before any storage write. ``validate_create``
collects every violated rule instead of stopping at the first one, so a
client can fix its input in a single round trip.
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from datetime import datetime, timedelta

from .errors import ForbiddenContentTypeError, ValidationError, ValidationRule
from .model import DEFAULT_EXPIRY, parse_timestamp

# ── Denylist ──────────────────────────────────────────────────────────

BLOCKED_EXTENSIONS: frozenset[str] = frozenset({
    '.exe', '.bat', '.cmd', '.com', '.scr', '.vbs', '.cpl', '.msi',
    '.sh', '.bash', '.zsh', '.fish',
})

BLOCKED_MIME_TYPES: frozenset[str] = frozenset({
    'application/x-msdownload',
    'application/x-msdos-program',
    'application/x-executable',
    'application/x-elf',
    'application/x-sh',
    'application/x-shellscript',
    'application/x-bat',
    'text/x-shellscript',
    'application/x-perl',
    'application/x-python',
})

MIN_PASSWORD_LENGTH = 3
MAX_FILE_SIZE_BYTES = 50 * 1024 * 1024


# ── Input schema ──────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class UploadedFile:
    data: bytes
    original_name: str
    mime_type: str
    size: int | None = None

    @property
    def effective_size(self) -> int:
        return self.size if self.size is not None else len(self.data)


@dataclass(frozen=True, slots=True)
class CreateShareInput:
    """Raw create request.

    ``expires_at`` and ``max_views`` accept strings so form fields can be
    passed straight through; they are parsed during validation.
    """

    text: str | None = None
    file: UploadedFile | None = None
    expires_at: datetime | str | None = None
    password: str | None = None
    one_time_view: bool = False
    max_views: int | str | None = None


@dataclass(frozen=True, slots=True)
class ValidatedCreate:
    text: str | None
    file: UploadedFile | None
    expires_at: datetime
    password: str | None
    one_time_view: bool
    max_views: int | None


# ── Checks ────────────────────────────────────────────────────────────


def file_extension(filename: str) -> str:
    """Lower-cased extension including the dot, or '' when there is none."""
    base = posixpath.basename(filename.replace('\\', '/'))
    dot = base.rfind('.')
    if dot <= 0 and not base.startswith('.'):
        return ''
    return base[dot:].lower()


def check_content_type(file: UploadedFile) -> None:
    """Reject executable and script uploads.

    Raises:
        ForbiddenContentTypeError: extension or declared MIME type is denied.
    """
    ext = file_extension(file.original_name)
    mime = (file.mime_type or '').split(';', 1)[0].strip().lower()
    if ext in BLOCKED_EXTENSIONS or mime in BLOCKED_MIME_TYPES:
        raise ForbiddenContentTypeError(ext, mime)


def _parse_max_views(raw: int | str | None) -> tuple[int | None, bool]:
    if raw is None or raw == '':
        return None, True
    if isinstance(raw, bool):
        return None, False
    if isinstance(raw, int):
        return raw, raw >= 1
    try:
        value = int(str(raw).strip())
    except ValueError:
        return None, False
    return value, value >= 1


def validate_create(
    request: CreateShareInput,
    *,
    now: datetime,
    default_expiry: timedelta = DEFAULT_EXPIRY,
    min_password_length: int = MIN_PASSWORD_LENGTH,
    max_file_size: int | None = MAX_FILE_SIZE_BYTES,
) -> ValidatedCreate:
    """Validate a create request and resolve defaults.

    Raises:
        ValidationError: One or more rules were violated.
        ForbiddenContentTypeError: The file type is denied.
    """
    violations: list[ValidationRule] = []

    has_text = request.text is not None and request.text != ''
    has_file = request.file is not None
    if not has_text and not has_file:
        violations.append(ValidationRule.MISSING_CONTENT)
    elif has_text and has_file:
        violations.append(ValidationRule.BOTH_CONTENT_KINDS)
    elif has_text and not request.text.strip():
        violations.append(ValidationRule.EMPTY_TEXT)

    if (
        has_file
        and not has_text
        and max_file_size is not None
        and request.file.effective_size > max_file_size
    ):
        violations.append(ValidationRule.FILE_TOO_LARGE)

    password = request.password
    if password is not None and password.strip():
        if len(password.strip()) < min_password_length:
            violations.append(ValidationRule.PASSWORD_TOO_SHORT)
    else:
        password = None

    max_views, ok = _parse_max_views(request.max_views)
    if not ok:
        violations.append(ValidationRule.INVALID_MAX_VIEWS)

    expires_at = now + default_expiry
    if request.expires_at not in (None, ''):
        try:
            expires_at = parse_timestamp(request.expires_at)
        except (TypeError, ValueError):
            violations.append(ValidationRule.INVALID_EXPIRY)
        else:
            if expires_at <= now:
                violations.append(ValidationRule.EXPIRY_IN_PAST)

    if violations:
        raise ValidationError(violations)

    if has_file:
        check_content_type(request.file)

    return ValidatedCreate(
        text=request.text if has_text else None,
        file=request.file if has_file else None,
        expires_at=expires_at,
        password=password,
        one_time_view=bool(request.one_time_view),
        max_views=max_views,
    )
