"""
Unit tests for the backend REST client.
"""

import json

import httpx
import pytest

from erp_core.errors import BackendError, ExternalServiceError
from erp_core.metrics import MetricsCollector
from erp_gateway.app.backend.client import BackendClient, encode_filters, parse_content_range


def make_client(handler, **kwargs) -> BackendClient:
    return BackendClient(
        "https://project.supabase.co/",
        "anon-key",
        transport=httpx.MockTransport(handler),
        **kwargs
    )


class TestHelpers:
    """Filter encoding and header parsing."""

    def test_encode_filters(self):
        params = encode_filters({
            "id": 7,
            "status": ("neq", "cancelled"),
            "category": ("in", ["feed", "vaccine"]),
            "deleted_at": ("is", None),
            "is_active": True,
        })
        assert params == [
            ("id", "eq.7"),
            ("status", "neq.cancelled"),
            ("category", "in.(feed,vaccine)"),
            ("deleted_at", "is.null"),
            ("is_active", "eq.true"),
        ]

    def test_parse_content_range(self):
        assert parse_content_range("0-24/573") == 573
        assert parse_content_range("*/42") == 42
        assert parse_content_range("0-24/*") is None
        assert parse_content_range(None) is None


class TestBackendClient:
    """Test cases for BackendClient."""

    @pytest.mark.asyncio
    async def test_select_builds_query(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(200, json=[{"id": 1, "name": "JNE"}])

        client = make_client(handler)
        result = await client.select(
            "shipping_vendors",
            filters={"is_active": True},
            order="name",
            limit=10,
        )

        request = seen["request"]
        assert request.method == "GET"
        assert request.url.path == "/rest/v1/shipping_vendors"
        assert request.url.params["select"] == "*"
        assert request.url.params["is_active"] == "eq.true"
        assert request.url.params["order"] == "name.asc"
        assert request.url.params["limit"] == "10"
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["authorization"] == "Bearer anon-key"
        assert result.ok
        assert result.data == [{"id": 1, "name": "JNE"}]

    @pytest.mark.asyncio
    async def test_select_head_count(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "HEAD"
            assert request.headers["prefer"] == "count=exact"
            return httpx.Response(200, headers={"Content-Range": "*/128"})

        client = make_client(handler)
        result = await client.select("customers", "id", count="exact", head=True)

        assert result.count == 128
        assert result.data is None

    @pytest.mark.asyncio
    async def test_error_status_returns_backend_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={
                "code": "PGRST205",
                "message": "Could not find the table 'public.shipping_vendors' in the schema cache",
                "details": None,
                "hint": None,
            })

        client = make_client(handler)
        result = await client.select("shipping_vendors")

        assert isinstance(result.error, BackendError)
        assert result.error.code == "PGRST205"
        assert result.status_code == 404

    @pytest.mark.asyncio
    async def test_transport_failure_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        with pytest.raises(ExternalServiceError):
            await client.select("orders")

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler)
        with pytest.raises(ExternalServiceError) as exc_info:
            await client.select("orders")
        assert "timed out" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_upsert_sends_conflict_target(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(201, json=[{"key": "general"}])

        client = make_client(handler)
        await client.upsert("system_settings", {"key": "general", "value": {}}, on_conflict="key")

        request = seen["request"]
        assert request.method == "POST"
        assert request.url.params["on_conflict"] == "key"
        assert "resolution=merge-duplicates" in request.headers["prefer"]
        assert json.loads(request.content) == {"key": "general", "value": {}}

    @pytest.mark.asyncio
    async def test_update_filters_rows(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(200, json=[{"id": "v1", "name": "SiCepat"}])

        client = make_client(handler)
        result = await client.update("shipping_vendors", {"name": "SiCepat"}, filters={"id": "v1"})

        assert seen["request"].method == "PATCH"
        assert seen["request"].url.params["id"] == "eq.v1"
        assert result.data[0]["name"] == "SiCepat"

    @pytest.mark.asyncio
    async def test_update_without_filters_rejected(self):
        client = make_client(lambda request: httpx.Response(200))
        with pytest.raises(ValueError):
            await client.update("orders", {"status": "shipped"}, filters={})

    @pytest.mark.asyncio
    async def test_delete_requires_filters(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(204)

        client = make_client(handler)
        with pytest.raises(ValueError):
            await client.delete("shipping_vendors", filters={})

        result = await client.delete("shipping_vendors", filters={"id": "v1"})

        assert result.ok
        assert seen["request"].method == "DELETE"
        assert seen["request"].url.params["id"] == "eq.v1"

    @pytest.mark.asyncio
    async def test_insert_minimal_has_no_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["prefer"] == "return=minimal"
            return httpx.Response(201)

        client = make_client(handler)
        result = await client.insert("import_logs", {"module": "products"}, returning=False)

        assert result.ok
        assert result.data is None

    @pytest.mark.asyncio
    async def test_records_request_duration(self):
        metrics = MetricsCollector("test")
        client = make_client(lambda request: httpx.Response(200, json=[]), metrics=metrics)

        await client.select("orders")

        count = metrics.registry.get_sample_value(
            "backend_request_duration_seconds_count", {"method": "GET", "table": "orders"}
        )
        assert count == 1


class TestRefreshSession:
    """Test cases for BackendClient.refresh_session."""

    @pytest.mark.asyncio
    async def test_refresh_updates_tokens(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/auth/v1/token"
            assert request.url.params["grant_type"] == "refresh_token"
            assert json.loads(request.content) == {"refresh_token": "old-refresh"}
            return httpx.Response(200, json={
                "access_token": "new-access",
                "refresh_token": "new-refresh",
                "user": {"id": "user-1"},
            })

        client = make_client(handler, refresh_token="old-refresh")
        session = await client.refresh_session()

        assert session["access_token"] == "new-access"
        assert client.access_token == "new-access"
        assert client.refresh_token == "new-refresh"

    @pytest.mark.asyncio
    async def test_refresh_failure_returns_none(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Refresh Token Not Found"})

        client = make_client(handler, refresh_token="stale")

        assert await client.refresh_session() is None
        assert client.refresh_token == "stale"

    @pytest.mark.asyncio
    async def test_refresh_without_token(self):
        client = make_client(lambda request: httpx.Response(500))
        assert await client.refresh_session() is None

    @pytest.mark.asyncio
    async def test_authorized_requests_use_access_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["authorization"]
            return httpx.Response(200, json=[])

        client = make_client(handler, access_token="user-jwt")
        await client.select("orders")

        assert seen["auth"] == "Bearer user-jwt"
