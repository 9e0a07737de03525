"""Share service configuration settings.

ShareServiceSettings is the single configuration object accepted by
create_app(). It is a plain dataclass (not env-coupled) so tests can inject
config without touching os.environ; ``from_env`` builds it for production.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


@dataclass(frozen=True, slots=True)
class ShareServiceSettings:
    """Configuration for the share service FastAPI application.

    All fields have sensible defaults for local development.
    Non-local environments must supply Supabase credentials.
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, dev, staging, production."""

    # ── Supabase ───────────────────────────────────────────────────
    supabase_url: str = ""
    """Supabase project URL (e.g. https://xyz.supabase.co)."""

    supabase_service_role_key: str = field(default="", repr=False)
    """Supabase service-role key for PostgREST/Storage calls. Never log this."""

    shares_table: str = "public.shares"
    """PostgREST table holding share records."""

    storage_bucket: str = "shares"
    """Supabase Storage bucket holding file blobs."""

    # ── Local storage ──────────────────────────────────────────────
    blob_root: str = ""
    """Filesystem blob directory for local mode. Empty keeps blobs in memory."""

    # ── Public URLs / CORS ─────────────────────────────────────────
    frontend_url: str = "http://localhost:5173"
    """Base URL of the frontend; share URLs are {frontend_url}/share/{id}."""

    public_api_url: str = ""
    """Base URL of this API for download links. Empty yields relative links."""

    cors_origins: tuple[str, ...] = ("http://localhost:5173",)

    # ── Share policy ───────────────────────────────────────────────
    max_file_size_bytes: int = 50 * 1024 * 1024
    default_expiry_minutes: int = 10
    min_password_length: int = 3

    # ── Lifecycle ──────────────────────────────────────────────────
    reaper_enabled: bool = True
    reaper_interval_seconds: float = 300.0
    """Seconds between expired-share sweeps."""

    download_grace_seconds: float = 2.0
    """Delay before a limit-tripping download's blob is deleted."""

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    @property
    def uses_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if not self.is_local:
            if not self.supabase_url:
                errors.append(f"{self.environment}: supabase_url is required")
            if not self.supabase_service_role_key:
                errors.append(
                    f"{self.environment}: supabase_service_role_key is required"
                )
        if self.max_file_size_bytes <= 0:
            errors.append("max_file_size_bytes must be positive")
        if self.default_expiry_minutes <= 0:
            errors.append("default_expiry_minutes must be positive")
        if self.min_password_length < 1:
            errors.append("min_password_length must be >= 1")
        if self.reaper_interval_seconds <= 0:
            errors.append("reaper_interval_seconds must be positive")
        # The download route reads the blob after the view is committed; a
        # zero window would let the deferred delete race that read.
        if self.download_grace_seconds <= 0:
            errors.append("download_grace_seconds must be positive")
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> ShareServiceSettings:
        """Build settings from environment variables.

        This is a convenience factory for production use. Tests should
        construct ShareServiceSettings directly.
        """
        if env is None:
            env = dict(os.environ)
        defaults = cls()

        frontend_url = env.get("FRONTEND_URL", defaults.frontend_url)
        cors_raw = env.get("CORS_ORIGINS", "")
        if cors_raw:
            cors = tuple(o.strip() for o in cors_raw.split(",") if o.strip())
        else:
            cors = (frontend_url,)

        return cls(
            environment=env.get("ENVIRONMENT", "local"),
            supabase_url=env.get("SUPABASE_URL", ""),
            supabase_service_role_key=env.get("SUPABASE_SERVICE_ROLE_KEY", ""),
            shares_table=env.get("SHARES_TABLE", defaults.shares_table),
            storage_bucket=env.get("STORAGE_BUCKET", defaults.storage_bucket),
            blob_root=env.get("BLOB_ROOT", ""),
            frontend_url=frontend_url,
            public_api_url=env.get("PUBLIC_API_URL", ""),
            cors_origins=cors,
            max_file_size_bytes=int(env.get("MAX_FILE_SIZE", defaults.max_file_size_bytes)),
            default_expiry_minutes=int(
                env.get("DEFAULT_EXPIRY_MINUTES", defaults.default_expiry_minutes)
            ),
            min_password_length=int(
                env.get("MIN_PASSWORD_LENGTH", defaults.min_password_length)
            ),
            reaper_enabled=env.get("REAPER_ENABLED", "true").strip().lower() in _TRUE_VALUES,
            reaper_interval_seconds=float(
                env.get("REAPER_INTERVAL_SECONDS", defaults.reaper_interval_seconds)
            ),
            download_grace_seconds=float(
                env.get("DOWNLOAD_GRACE_SECONDS", defaults.download_grace_seconds)
            ),
        )
