"""Pytest configuration for ephemeral_share tests."""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add src/ to path for src-layout imports
_PROJECT_ROOT = Path(__file__).parent.parent
_SRC = _PROJECT_ROOT / 'src'
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import pytest

from ephemeral_share.app.inmemory import InMemoryBlobStore, InMemoryShareStore
from ephemeral_share.app.security import ScryptCredentialVerifier
from ephemeral_share.app.sharing.audit import InMemoryShareAuditEmitter
from ephemeral_share.app.sharing.engine import ShareLifecycleEngine


class FakeClock:
    """Manually advanced clock for expiry tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def share_store():
    return InMemoryShareStore()


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()


@pytest.fixture
def verifier():
    # Low cost factor keeps password tests fast.
    return ScryptCredentialVerifier(log2_n=4, r=8, p=1)


@pytest.fixture
def audit_emitter():
    return InMemoryShareAuditEmitter()


@pytest.fixture
def engine(share_store, blob_store, verifier, audit_emitter, clock):
    return ShareLifecycleEngine(
        share_store,
        blob_store,
        verifier,
        audit_emitter=audit_emitter,
        frontend_url='https://share.test',
        public_api_url='https://api.share.test',
        download_grace_seconds=0.05,
        clock=clock,
    )
