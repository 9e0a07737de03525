"""Supabase client error hierarchy.

These errors carry status and PostgREST error fields only. They never hold
an httpx.Response (or the service-role key that was sent with it).
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SupabaseError(Exception):
    """Base Supabase error for PostgREST and Storage requests."""

    status_code: int
    message: str
    code: str | None = None
    details: str | None = None
    hint: str | None = None

    @property
    def is_unique_violation(self) -> bool:
        """True when Postgres rejected a duplicate key (SQLSTATE 23505)."""
        return self.code == "23505"

    def __str__(self) -> str:
        bits: list[str] = [f"SupabaseError(status={self.status_code})", self.message]
        if self.code:
            bits.append(f"code={self.code}")
        if self.details:
            bits.append(f"details={self.details}")
        return " ".join(bits)


class SupabaseAuthError(SupabaseError):
    """401/403 auth errors (bad key, RLS, etc.)."""


class SupabaseNotFoundError(SupabaseError):
    """404 errors (missing row route, table or storage object)."""


class SupabaseConflictError(SupabaseError):
    """409 conflicts (unique violations, existing storage object)."""
