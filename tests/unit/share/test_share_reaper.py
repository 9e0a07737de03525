"""Expired-share reaper tests."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import httpx
import pytest

from ephemeral_share.app.db.share_store import SupabaseShareStore
from ephemeral_share.app.db.supabase_client import SupabaseClient
from ephemeral_share.app.operations.reaper import ReapReport, ShareReaper
from ephemeral_share.app.protocols import BlobStoreError, ShareStoreError
from ephemeral_share.app.sharing.engine import ShareLifecycleEngine
from ephemeral_share.app.sharing.errors import ExpiredError, InfrastructureError
from ephemeral_share.app.sharing.policy import CreateShareInput, UploadedFile


async def _seed(engine, clock) -> tuple[str, str, str]:
    """Create one live and two soon-expiring shares (one text, one file)."""
    soon = clock.now + timedelta(minutes=1)
    later = clock.now + timedelta(hours=1)
    expiring_text = await engine.create(CreateShareInput(text='a', expires_at=soon))
    expiring_file = await engine.create(CreateShareInput(
        file=UploadedFile(b'bytes', 'a.txt', 'text/plain'), expires_at=soon,
    ))
    live = await engine.create(CreateShareInput(text='b', expires_at=later))
    return expiring_text.id, expiring_file.id, live.id


@pytest.mark.asyncio
async def test_run_once_purges_only_expired(engine, share_store, blob_store, clock):
    text_id, file_id, live_id = await _seed(engine, clock)
    file_ref = (await share_store.get(file_id)).blob_ref
    clock.advance(minutes=2)

    report = await ShareReaper(engine).run_once()

    assert isinstance(report, ReapReport)
    assert set(report.purged) == {text_id, file_id}
    assert report.scanned == 2
    assert report.failures == ()
    assert report.sweep_ts == clock.now
    assert text_id not in share_store
    assert file_id not in share_store
    assert live_id in share_store
    assert file_ref not in blob_store


@pytest.mark.asyncio
async def test_run_once_with_explicit_now(engine, share_store, clock):
    text_id, file_id, live_id = await _seed(engine, clock)

    report = await ShareReaper(engine).run_once(now=clock.now + timedelta(days=1))

    assert report.purged_count == 3
    assert len(share_store) == 0


@pytest.mark.asyncio
async def test_nothing_expired(engine, clock):
    await _seed(engine, clock)
    report = await ShareReaper(engine).run_once()
    assert report.scanned == 0
    assert report.purged == ()


@pytest.mark.asyncio
async def test_blob_failure_does_not_abort_sweep(engine, share_store, blob_store, clock):
    text_id, file_id, _ = await _seed(engine, clock)
    blob_store.delete = AsyncMock(side_effect=BlobStoreError('unavailable'))
    clock.advance(minutes=2)

    report = await ShareReaper(engine).run_once()

    assert set(report.purged) == {text_id, file_id}
    assert file_id not in share_store


@pytest.mark.asyncio
async def test_store_failure_for_one_record_continues(engine, share_store, clock):
    text_id, file_id, _ = await _seed(engine, clock)
    original = share_store.delete

    async def flaky_delete(share_id):
        if share_id == text_id:
            raise ShareStoreError('timeout')
        return await original(share_id)

    share_store.delete = flaky_delete
    clock.advance(minutes=2)

    report = await ShareReaper(engine).run_once()

    assert report.purged == (file_id,)
    assert [f.share_id for f in report.failures] == [text_id]
    assert report.failures[0].operation == 'delete'
    assert text_id in share_store


@pytest.mark.asyncio
async def test_record_removed_by_access_counts_as_already_gone(engine, share_store, clock):
    text_id, file_id, _ = await _seed(engine, clock)
    clock.advance(minutes=2)
    expired = await engine.list_expired()

    assert len(expired) == 2

    with pytest.raises(ExpiredError):
        await engine.access(text_id)

    # The sweep works from a listing taken before the access purged text_id.
    engine.list_expired = AsyncMock(return_value=expired)
    report = await ShareReaper(engine).run_once()
    assert report.already_gone == (text_id,)
    assert report.purged == (file_id,)
    assert report.summary()["already_gone"] == 1


@pytest.mark.asyncio
async def test_listing_failure_raises(engine, share_store):
    share_store.list_expired = AsyncMock(side_effect=ShareStoreError('down'))
    with pytest.raises(InfrastructureError) as exc_info:
        await ShareReaper(engine).run_once()
    assert exc_info.value.operation == 'list_expired'


@pytest.mark.asyncio
async def test_start_and_stop(engine, share_store, clock):
    text_id, _, live_id = await _seed(engine, clock)
    clock.advance(minutes=2)

    reaper = ShareReaper(engine, interval_seconds=0.01)
    reaper.start()
    reaper.start()  # second start is a no-op
    assert reaper.running
    for _ in range(50):
        if text_id not in share_store:
            break
        await asyncio.sleep(0.01)
    await reaper.stop()

    assert not reaper.running
    assert text_id not in share_store
    assert live_id in share_store


@pytest.mark.asyncio
async def test_loop_survives_listing_failure(engine, share_store):
    share_store.list_expired = AsyncMock(side_effect=ShareStoreError('down'))
    reaper = ShareReaper(engine, interval_seconds=0.01)
    reaper.start()
    await asyncio.sleep(0.05)
    assert reaper.running
    assert share_store.list_expired.await_count >= 2
    await reaper.stop()


@pytest.mark.asyncio
async def test_stop_without_start():
    reaper = ShareReaper(engine=None)  # type: ignore[arg-type]
    await reaper.stop()


def test_interval_must_be_positive(engine):
    with pytest.raises(ValueError):
        ShareReaper(engine, interval_seconds=0)


@pytest.mark.asyncio
async def test_loop_survives_malformed_rows(blob_store, verifier, clock):
    calls = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, json=[{'id': 'abcdefgh', 'content_type': 'text'}])

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        store = SupabaseShareStore(SupabaseClient(
            supabase_url='https://example.supabase.co',
            service_role_key='svc-key',
            http_client=http_client,
        ))
        engine = ShareLifecycleEngine(store, blob_store, verifier, clock=clock)

        with pytest.raises(InfrastructureError):
            await ShareReaper(engine).run_once()

        reaper = ShareReaper(engine, interval_seconds=0.01)
        reaper.start()
        await asyncio.sleep(0.1)
        assert reaper.running
        await reaper.stop()

    assert calls >= 3


@pytest.mark.asyncio
async def test_loop_survives_unexpected_error(engine):
    engine.list_expired = AsyncMock(side_effect=RuntimeError('bug'))
    reaper = ShareReaper(engine, interval_seconds=0.01)
    reaper.start()
    await asyncio.sleep(0.05)
    assert reaper.running
    assert engine.list_expired.await_count >= 2
    await reaper.stop()
