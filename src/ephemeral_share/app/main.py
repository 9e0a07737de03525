"""Share service FastAPI application factory.

The create_app() factory is the single entry point for building the share
service ASGI application. It wires middleware (request-ID, metrics, request
logging, CORS), the share routes and the expired-share reaper, and injects
store/verifier implementations via dependency injection.

Usage:
    # Local development (in-memory stores)
    from ephemeral_share.app import create_app, ShareServiceSettings
    app = create_app(ShareServiceSettings())

    # Non-local (Supabase stores built from settings)
    app = create_app(ShareServiceSettings.from_env())

    # Testing (full DI control)
    app = create_app(settings, share_store=store, blob_store=blobs, ...)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from .observability.logging import configure_logging, get_logger
from .observability.metrics import metrics_text
from .observability.middleware import (
    RequestIdMiddleware,
    RequestTelemetryMiddleware,
)
from .operations.reaper import ShareReaper
from .protocols import BlobStore, CredentialVerifier, ShareStore
from .settings import ShareServiceSettings
from .sharing.audit import LoggingShareAuditEmitter, ShareAuditEmitter
from .sharing.engine import ShareLifecycleEngine
from .sharing.model import utcnow
from .sharing.routes import create_share_router

logger = get_logger(__name__)


@dataclass(frozen=True)
class AppDependencies:
    """Container for all injected store/verifier instances.

    Stored on ``app.state.deps`` so handlers and tests can reach them.
    """

    share_store: ShareStore
    blob_store: BlobStore
    verifier: CredentialVerifier
    audit_emitter: ShareAuditEmitter


def _build_local_deps(settings: ShareServiceSettings) -> AppDependencies:
    """Construct local-development dependencies."""
    from .inmemory import InMemoryBlobStore, InMemoryShareStore
    from .security import ScryptCredentialVerifier
    from .storage import FilesystemBlobStore

    blob_store: BlobStore
    if settings.blob_root:
        blob_store = FilesystemBlobStore(settings.blob_root)
    else:
        blob_store = InMemoryBlobStore()

    return AppDependencies(
        share_store=InMemoryShareStore(),
        blob_store=blob_store,
        verifier=ScryptCredentialVerifier(),
        audit_emitter=LoggingShareAuditEmitter(),
    )


def _build_supabase_deps(settings: ShareServiceSettings) -> AppDependencies:
    """Construct Supabase-backed dependencies for non-local environments."""
    from .db import SupabaseBlobStore, SupabaseClient, SupabaseShareStore
    from .security import ScryptCredentialVerifier

    client = SupabaseClient(
        supabase_url=settings.supabase_url,
        service_role_key=settings.supabase_service_role_key,
    )
    return AppDependencies(
        share_store=SupabaseShareStore(client, table=settings.shares_table),
        blob_store=SupabaseBlobStore(client, bucket=settings.storage_bucket),
        verifier=ScryptCredentialVerifier(),
        audit_emitter=LoggingShareAuditEmitter(),
    )


def resolve_dependencies(
    settings: ShareServiceSettings,
    *,
    share_store: ShareStore | None = None,
    blob_store: BlobStore | None = None,
    verifier: CredentialVerifier | None = None,
    audit_emitter: ShareAuditEmitter | None = None,
) -> AppDependencies:
    """Fill missing dependencies from settings.

    Local mode uses in-memory stores unless Supabase credentials are set;
    non-local mode always uses Supabase.
    """
    provided = (share_store, blob_store, verifier, audit_emitter)
    if all(dep is not None for dep in provided):
        return AppDependencies(*provided)  # type: ignore[arg-type]

    if settings.is_local and not settings.uses_supabase:
        defaults = _build_local_deps(settings)
    else:
        defaults = _build_supabase_deps(settings)

    return AppDependencies(
        share_store=share_store if share_store is not None else defaults.share_store,
        blob_store=blob_store if blob_store is not None else defaults.blob_store,
        verifier=verifier if verifier is not None else defaults.verifier,
        audit_emitter=(
            audit_emitter if audit_emitter is not None else defaults.audit_emitter
        ),
    )


def build_engine(
    settings: ShareServiceSettings,
    deps: AppDependencies | None = None,
) -> ShareLifecycleEngine:
    """Build a lifecycle engine configured from settings."""
    deps = deps or resolve_dependencies(settings)
    return ShareLifecycleEngine(
        deps.share_store,
        deps.blob_store,
        deps.verifier,
        audit_emitter=deps.audit_emitter,
        frontend_url=settings.frontend_url,
        public_api_url=settings.public_api_url,
        default_expiry=timedelta(minutes=settings.default_expiry_minutes),
        min_password_length=settings.min_password_length,
        max_file_size=settings.max_file_size_bytes,
        download_grace_seconds=settings.download_grace_seconds,
    )


# ── Factory ─────────────────────────────────────────────────────────


def create_app(
    settings: ShareServiceSettings | None = None,
    *,
    share_store: ShareStore | None = None,
    blob_store: BlobStore | None = None,
    verifier: CredentialVerifier | None = None,
    audit_emitter: ShareAuditEmitter | None = None,
) -> FastAPI:
    """Create a configured share service FastAPI application.

    Args:
        settings: Application settings. Defaults to local-dev settings.
        share_store..audit_emitter: Dependency overrides. When None, they
            are built from settings (in-memory locally, Supabase otherwise).

    Returns:
        Configured FastAPI application ready for uvicorn.run().

    Raises:
        ValueError: If settings validation fails.
    """
    if settings is None:
        settings = ShareServiceSettings()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "Share service settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    configure_logging()

    deps = resolve_dependencies(
        settings,
        share_store=share_store,
        blob_store=blob_store,
        verifier=verifier,
        audit_emitter=audit_emitter,
    )
    engine = build_engine(settings, deps)
    reaper = ShareReaper(engine, interval_seconds=settings.reaper_interval_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "share_service_startup",
            environment=settings.environment,
            reaper_enabled=settings.reaper_enabled,
        )
        if settings.reaper_enabled:
            reaper.start()
        try:
            yield
        finally:
            await reaper.stop()
            await engine.aclose()
            logger.info("share_service_shutdown")

    app = FastAPI(
        title="Ephemeral Share",
        description="Self-destructing text and file shares",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.deps = deps
    app.state.settings = settings
    app.state.engine = engine
    app.state.reaper = reaper

    # ── Middleware stack (applied in reverse order) ──────────────
    # Order of execution: RequestID -> Telemetry -> CORS -> route

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "X-Request-ID"],
    )
    app.add_middleware(RequestTelemetryMiddleware)
    app.add_middleware(RequestIdMiddleware)

    # ── Routes ──────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "timestamp": utcnow().isoformat(),
            "environment": settings.environment,
        }

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        body, content_type = metrics_text()
        return Response(content=body, media_type=content_type)

    app.include_router(create_share_router(engine))

    return app


# For uvicorn, use --factory flag:
#   uvicorn ephemeral_share.app.main:create_app --factory
# This avoids executing create_app() at import time.
