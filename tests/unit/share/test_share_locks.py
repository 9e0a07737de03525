"""Tests for per-share mutual exclusion."""

from __future__ import annotations

import asyncio

import pytest

from ephemeral_share.app.sharing.locks import KeyedLockTable


@pytest.mark.asyncio
async def test_same_key_is_serialized():
    table = KeyedLockTable()
    active = 0
    peak = 0

    async def worker():
        nonlocal active, peak
        async with table.hold('share-1'):
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

    await asyncio.gather(*(worker() for _ in range(5)))
    assert peak == 1


@pytest.mark.asyncio
async def test_different_keys_do_not_contend():
    table = KeyedLockTable()
    entered = asyncio.Event()
    release = asyncio.Event()

    async def holder():
        async with table.hold('a'):
            entered.set()
            await release.wait()

    task = asyncio.create_task(holder())
    await entered.wait()
    async with table.hold('b'):
        assert 'a' in table and 'b' in table
    release.set()
    await task


@pytest.mark.asyncio
async def test_entries_dropped_when_unused():
    table = KeyedLockTable()
    async with table.hold('x'):
        assert len(table) == 1
    assert len(table) == 0
    assert 'x' not in table


@pytest.mark.asyncio
async def test_entry_released_on_error():
    table = KeyedLockTable()
    with pytest.raises(RuntimeError):
        async with table.hold('x'):
            raise RuntimeError('boom')
    assert len(table) == 0
    async with table.hold('x'):
        pass
