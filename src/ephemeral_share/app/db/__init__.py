"""Supabase persistence for the share service (PostgREST + Storage)."""

from .blob_store import SupabaseBlobStore
from .errors import (
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNotFoundError,
)
from .share_store import SupabaseShareStore
from .supabase_client import PostgrestFilter, SupabaseClient

__all__ = [
    "PostgrestFilter",
    "SupabaseAuthError",
    "SupabaseBlobStore",
    "SupabaseClient",
    "SupabaseConflictError",
    "SupabaseError",
    "SupabaseNotFoundError",
    "SupabaseShareStore",
]
