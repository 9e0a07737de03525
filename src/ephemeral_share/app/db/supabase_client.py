"""Async Supabase client wrapper (PostgREST + Storage).

This is the single point of Supabase HTTP interaction for the share
service: the share store talks to PostgREST through it and the blob
store talks to Storage through it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence
from urllib.parse import quote

import httpx

from .errors import (
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNotFoundError,
)

# Module-level shared client so every store reuses one connection pool.
_shared_async_client: httpx.AsyncClient | None = None


def _get_shared_async_client() -> httpx.AsyncClient:
    global _shared_async_client
    if _shared_async_client is None:
        _shared_async_client = httpx.AsyncClient()
    return _shared_async_client


@dataclass(frozen=True, slots=True)
class PostgrestFilter:
    column: str
    op: str
    value: Any


Filters = Sequence[PostgrestFilter] | Mapping[str, tuple[str, Any] | Any] | None


def _split_schema_table(table: str, default_schema: str) -> tuple[str, str]:
    # Accept "public.shares" as well as "shares". Supabase selects the schema
    # via Accept-Profile/Content-Profile headers.
    if "." in table:
        schema, name = table.split(".", 1)
        return schema.strip(), name.strip()
    return default_schema, table.strip()


def _encode_filter_value(op: str, value: Any) -> str:
    if op == "is":
        if value is None:
            return "null"
        if value is True:
            return "true"
        if value is False:
            return "false"
        return str(value)

    if value is None:
        raise ValueError(f"{op} does not support None; use op='is' with value=None")

    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _filters_to_params(filters: Filters) -> dict[str, str]:
    if not filters:
        return {}

    params: dict[str, str] = {}

    if isinstance(filters, Mapping):
        for col, spec in filters.items():
            if isinstance(spec, tuple) and len(spec) == 2:
                op, val = spec
            else:
                op, val = "eq", spec
            op_str = str(op)
            params[str(col)] = f"{op_str}.{_encode_filter_value(op_str, val)}"
        return params

    for f in filters:
        params[f.column] = f"{f.op}.{_encode_filter_value(f.op, f.value)}"
    return params


def _error_class(status_code: int) -> type[SupabaseError]:
    if status_code in (401, 403):
        return SupabaseAuthError
    if status_code == 404:
        return SupabaseNotFoundError
    if status_code == 409:
        return SupabaseConflictError
    return SupabaseError


class SupabaseClient:
    """Minimal async PostgREST/Storage client (service role)."""

    def __init__(
        self,
        *,
        supabase_url: str,
        service_role_key: str,
        default_schema: str = "public",
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        if not supabase_url:
            raise ValueError("supabase_url is required")
        if not service_role_key:
            raise ValueError("service_role_key is required")

        self._supabase_url = supabase_url.rstrip("/")
        self._service_role_key = service_role_key
        self._default_schema = default_schema or "public"
        self._timeout_seconds = float(timeout_seconds)
        self._client = http_client or _get_shared_async_client()

    @property
    def base_rest_url(self) -> str:
        return f"{self._supabase_url}/rest/v1"

    @property
    def base_storage_url(self) -> str:
        return f"{self._supabase_url}/storage/v1"

    def _auth_headers(self) -> dict[str, str]:
        # Never log these headers.
        return {
            "apikey": self._service_role_key,
            "Authorization": f"Bearer {self._service_role_key}",
        }

    def _schema_headers(self, schema: str, method: str) -> dict[str, str]:
        headers: dict[str, str] = {}
        if schema:
            headers["Accept-Profile"] = schema
            if method.upper() in ("POST", "PATCH", "PUT", "DELETE"):
                headers["Content-Profile"] = schema
        return headers

    def _raise_for_error(self, resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return

        status = resp.status_code
        message = resp.text
        code = details = hint = None

        try:
            payload = resp.json()
            if isinstance(payload, dict):
                message = payload.get("message") or message
                code = payload.get("code") or payload.get("error")
                details = payload.get("details")
                hint = payload.get("hint")
                # Storage reports the logical status in the body
                # (e.g. HTTP 400 with statusCode "404" for a missing object).
                body_status = payload.get("statusCode")
                if body_status is not None and str(body_status).isdigit():
                    status = int(body_status)
        except ValueError:
            pass

        # Avoid including secrets in the exception string.
        raise _error_class(status)(
            status_code=status,
            message=message,
            code=code,
            details=details,
            hint=hint,
        )

    @staticmethod
    def _expect_list(payload: Any, operation: str) -> list[dict[str, Any]]:
        if not isinstance(payload, list):
            raise SupabaseError(
                status_code=500, message=f"expected list response from {operation}",
            )
        return payload

    # ── PostgREST ────────────────────────────────────────────────────

    async def select(
        self,
        table: str,
        filters: Filters = None,
        *,
        columns: str = "*",
        limit: int | None = None,
        order: str | None = None,
    ) -> list[dict[str, Any]]:
        schema, table_name = _split_schema_table(table, self._default_schema)
        params = _filters_to_params(filters)
        params["select"] = columns
        if limit is not None:
            params["limit"] = str(int(limit))
        if order:
            params["order"] = order

        resp = await self._client.request(
            "GET",
            f"{self.base_rest_url}/{table_name}",
            params=params,
            headers={**self._auth_headers(), **self._schema_headers(schema, "GET")},
            timeout=self._timeout_seconds,
        )
        self._raise_for_error(resp)
        return self._expect_list(resp.json(), "select")

    async def insert(
        self,
        table: str,
        data: Mapping[str, Any] | Sequence[Mapping[str, Any]],
    ) -> list[dict[str, Any]]:
        schema, table_name = _split_schema_table(table, self._default_schema)
        headers = {
            **self._auth_headers(),
            **self._schema_headers(schema, "POST"),
            "Prefer": "return=representation",
        }

        resp = await self._client.request(
            "POST",
            f"{self.base_rest_url}/{table_name}",
            json=data,
            headers=headers,
            timeout=self._timeout_seconds,
        )
        self._raise_for_error(resp)
        return self._expect_list(resp.json(), "insert")

    async def delete(self, table: str, filters: Filters) -> list[dict[str, Any]]:
        """Delete matching rows and return the rows that were removed."""
        if not filters:
            raise ValueError("delete requires at least one filter")
        schema, table_name = _split_schema_table(table, self._default_schema)
        headers = {
            **self._auth_headers(),
            **self._schema_headers(schema, "DELETE"),
            "Prefer": "return=representation",
        }

        resp = await self._client.request(
            "DELETE",
            f"{self.base_rest_url}/{table_name}",
            params=_filters_to_params(filters),
            headers=headers,
            timeout=self._timeout_seconds,
        )
        self._raise_for_error(resp)
        return self._expect_list(resp.json(), "delete")

    async def rpc(
        self,
        function_name: str,
        params: Mapping[str, Any] | None = None,
        *,
        schema: str | None = None,
    ) -> Any:
        schema_name = schema or self._default_schema
        resp = await self._client.request(
            "POST",
            f"{self.base_rest_url}/rpc/{function_name}",
            json=params or {},
            headers={**self._auth_headers(), **self._schema_headers(schema_name, "POST")},
            timeout=self._timeout_seconds,
        )
        self._raise_for_error(resp)
        return resp.json()

    # ── Storage ──────────────────────────────────────────────────────

    def _object_url(self, bucket: str, key: str) -> str:
        return f"{self.base_storage_url}/object/{quote(bucket, safe='')}/{quote(key)}"

    async def upload_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        *,
        content_type: str = "application/octet-stream",
    ) -> None:
        headers = {
            **self._auth_headers(),
            "Content-Type": content_type or "application/octet-stream",
            "x-upsert": "false",
        }
        resp = await self._client.request(
            "POST",
            self._object_url(bucket, key),
            content=data,
            headers=headers,
            timeout=self._timeout_seconds,
        )
        self._raise_for_error(resp)

    async def download_object(self, bucket: str, key: str) -> bytes:
        resp = await self._client.request(
            "GET",
            self._object_url(bucket, key),
            headers=self._auth_headers(),
            timeout=self._timeout_seconds,
        )
        self._raise_for_error(resp)
        return resp.content

    async def remove_object(self, bucket: str, key: str) -> None:
        resp = await self._client.request(
            "DELETE",
            self._object_url(bucket, key),
            headers=self._auth_headers(),
            timeout=self._timeout_seconds,
        )
        self._raise_for_error(resp)
