from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import httpx
import pytest

from ephemeral_share.app.db.schema import SHARES_SCHEMA_SQL
from ephemeral_share.app.db.share_store import (
    INCREMENT_VIEWS_RPC,
    SupabaseShareStore,
    record_to_row,
    row_to_record,
)
from ephemeral_share.app.db.supabase_client import SupabaseClient
from ephemeral_share.app.protocols import ShareIdConflict, ShareStore, ShareStoreError
from ephemeral_share.app.sharing.model import (
    BlobRef,
    FileContent,
    FileMetadata,
    ShareRecord,
    TextContent,
)

EXPIRES = datetime(2026, 1, 1, 12, 10, tzinfo=timezone.utc)
CREATED = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _text_row(**overrides) -> dict[str, Any]:
    row = {
        "id": "share_1",
        "content_type": "text",
        "text_content": "hello",
        "file_key": None,
        "file_checksum": None,
        "original_name": None,
        "mime_type": None,
        "file_size": None,
        "expires_at": "2026-01-01T12:10:00+00:00",
        "password_digest": None,
        "one_time_view": False,
        "max_views": None,
        "current_views": 0,
        "created_at": "2026-01-01T12:00:00+00:00",
    }
    row.update(overrides)
    return row


def _store(handler) -> tuple[SupabaseShareStore, httpx.AsyncClient]:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = SupabaseClient(
        supabase_url="https://example.supabase.co",
        service_role_key="svc-key",
        http_client=http_client,
    )
    return SupabaseShareStore(client, table="public.shares"), http_client


def test_satisfies_protocol():
    store, _ = _store(lambda request: httpx.Response(200, json=[]))
    assert isinstance(store, ShareStore)


def test_row_mapping_file_record():
    record = ShareRecord(
        id="share_2",
        content=FileContent(
            blob_ref=BlobRef(key="2026/01/abc", checksum="c0ffee"),
            metadata=FileMetadata("a.pdf", "application/pdf", 42),
        ),
        expires_at=EXPIRES,
        password_digest="scrypt$4$8$1$s$k",
        max_views=3,
    )
    row = record_to_row(record)
    assert row["content_type"] == "file"
    assert row["file_key"] == "2026/01/abc"
    assert row["text_content"] is None
    assert row["max_views"] == 3
    assert "created_at" not in row

    back = row_to_record({**row, "created_at": "2026-01-01T12:00:00Z"})
    assert back.content == record.content
    assert back.password_digest == record.password_digest
    assert back.created_at == CREATED


def test_row_mapping_text_record():
    record = row_to_record(_text_row(one_time_view=True, current_views=1))
    assert record.content == TextContent("hello")
    assert record.expires_at == EXPIRES
    assert record.one_time_view is True
    assert record.current_views == 1


@pytest.mark.asyncio
async def test_insert_posts_row_and_returns_stored_record():
    seen: dict[str, Any] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        seen["headers"] = dict(request.headers)
        return httpx.Response(201, json=[_text_row()])

    store, http_client = _store(handler)
    async with http_client:
        stored = await store.insert(
            ShareRecord(id="share_1", content=TextContent("hello"), expires_at=EXPIRES),
        )

    assert seen["method"] == "POST"
    assert seen["url"] == "https://example.supabase.co/rest/v1/shares"
    assert seen["body"]["id"] == "share_1"
    assert seen["body"]["current_views"] == 0
    assert "return=representation" in seen["headers"]["prefer"]
    assert seen["headers"]["content-profile"] == "public"
    assert stored.created_at == CREATED


@pytest.mark.asyncio
@pytest.mark.parametrize("status,payload", [
    (409, {"message": "duplicate key", "code": "23505"}),
    (400, {"message": "duplicate key", "code": "23505"}),
])
async def test_insert_duplicate_id_is_conflict(status, payload):
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=payload)

    store, http_client = _store(handler)
    async with http_client:
        with pytest.raises(ShareIdConflict):
            await store.insert(
                ShareRecord(id="share_1", content=TextContent("x"), expires_at=EXPIRES),
            )


@pytest.mark.asyncio
async def test_get_filters_by_id():
    seen: dict[str, Any] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=[_text_row()])

    store, http_client = _store(handler)
    async with http_client:
        record = await store.get("share_1")

    assert seen["params"]["id"] == "eq.share_1"
    assert seen["params"]["limit"] == "1"
    assert record.id == "share_1"


@pytest.mark.asyncio
async def test_get_missing_returns_none():
    store, http_client = _store(lambda request: httpx.Response(200, json=[]))
    async with http_client:
        assert await store.get("nope") is None


@pytest.mark.asyncio
@pytest.mark.parametrize("payload,expected", [
    (3, 3),
    (None, None),
    ([{"increment_share_views": 2}], 2),
    ([], None),
])
async def test_increment_views_uses_rpc(payload, expected):
    seen: dict[str, Any] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=payload)

    store, http_client = _store(handler)
    async with http_client:
        views = await store.increment_views("share_1")

    assert seen["url"] == "https://example.supabase.co/rest/v1/rpc/increment_share_views"
    assert seen["body"] == {"share_id": "share_1"}
    assert views == expected


@pytest.mark.asyncio
async def test_delete_reports_whether_row_was_removed():
    responses = [[_text_row()], []]
    seen: list[dict[str, str]] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "DELETE"
        seen.append(dict(request.url.params))
        return httpx.Response(200, json=responses.pop(0))

    store, http_client = _store(handler)
    async with http_client:
        assert await store.delete("share_1") is True
        assert await store.delete("share_1") is False

    assert seen[0] == {"id": "eq.share_1"}


@pytest.mark.asyncio
async def test_list_expired_filters_on_expiry():
    seen: dict[str, Any] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=[_text_row(), _text_row(id="share_2")])

    store, http_client = _store(handler)
    async with http_client:
        records = await store.list_expired(EXPIRES)

    assert seen["params"]["expires_at"] == f"lte.{EXPIRES.isoformat()}"
    assert seen["params"]["order"] == "expires_at.asc"
    assert [r.id for r in records] == ["share_1", "share_2"]


@pytest.mark.asyncio
async def test_backend_errors_are_wrapped():
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"message": "boom"})

    store, http_client = _store(handler)
    async with http_client:
        with pytest.raises(ShareStoreError):
            await store.get("share_1")
        with pytest.raises(ShareStoreError):
            await store.increment_views("share_1")
        with pytest.raises(ShareStoreError):
            await store.delete("share_1")


@pytest.mark.asyncio
async def test_transport_errors_are_wrapped():
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    store, http_client = _store(handler)
    async with http_client:
        with pytest.raises(ShareStoreError) as exc_info:
            await store.get("share_1")
    assert "svc-key" not in str(exc_info.value)


def test_schema_covers_mapped_columns():
    row = record_to_row(
        ShareRecord(
            id="share_1",
            content=TextContent("x"),
            expires_at=EXPIRES,
            created_at=CREATED,
        ),
    )
    for column in row:
        assert f"\n    {column} " in SHARES_SCHEMA_SQL
    assert f"function public.{INCREMENT_VIEWS_RPC}(share_id text)" in SHARES_SCHEMA_SQL


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"json": [{"id": "share_1", "content_type": "text"}]},
    {"json": [_text_row(expires_at="not-a-timestamp")]},
    {"text": "<html>gateway</html>"},
])
async def test_malformed_rows_are_store_errors(body):
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, **body)

    store, http_client = _store(handler)
    async with http_client:
        with pytest.raises(ShareStoreError):
            await store.get("share_1")
        with pytest.raises(ShareStoreError):
            await store.list_expired(EXPIRES)
