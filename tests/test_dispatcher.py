"""
Tests for the single-attempt dispatcher.
"""

import json

import httpx
import pytest

from connectors.dispatcher import Dispatcher, build_url
from connectors.errors import NetworkError, UpstreamError
from connectors.events import EventSink
from connectors.models import ConnectorConfig


# ── helpers ────────────────────────────────────────────────────────────────────


class RecordingSink(EventSink):
    def __init__(self):
        self.events = []

    def emit(self, event):
        self.events.append(event)


class BrokenSink(EventSink):
    def emit(self, event):
        raise RuntimeError("sink down")


def _conn(**overrides) -> ConnectorConfig:
    data = dict(
        id="svc",
        base_url="https://svc.test/api/",
        auth_type="none",
        default_headers={"X-Team": "core", "Accept": "application/json"},
    )
    data.update(overrides)
    return ConnectorConfig(**data)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestBuildUrl:
    def test_joins_single_slash(self):
        assert build_url("https://a.test/api/", "/users") == "https://a.test/api/users"
        assert build_url("https://a.test/api", "users") == "https://a.test/api/users"

    def test_empty_path(self):
        assert build_url("https://a.test", "") == "https://a.test"


class TestDispatch:
    @pytest.mark.asyncio
    async def test_success_returns_raw_response(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"id": 7}, headers={"X-Req": "abc"})

        sink = RecordingSink()
        async with _client(handler) as client:
            result = await Dispatcher(client, sink).dispatch(_conn(), "post", "/items", {"name": "x"})

        assert seen == {"method": "POST", "url": "https://svc.test/api/items", "body": {"name": "x"}}
        assert result.status == 201
        assert result.body == {"id": 7}
        assert result.headers["x-req"] == "abc"
        assert len(sink.events) == 1
        assert sink.events[0].status == 201
        assert sink.events[0].error_kind is None

    @pytest.mark.asyncio
    async def test_header_precedence(self):
        seen = {}

        def handler(request):
            seen.update(request.headers)
            return httpx.Response(200)

        async with _client(handler) as client:
            await Dispatcher(client, RecordingSink(), user_agent="UA/1").dispatch(
                _conn(),
                "GET",
                "/",
                auth_headers={"Authorization": "Bearer a", "X-Team": "auth"},
                extra_headers={"X-Team": "extra"},
            )

        assert seen["user-agent"] == "UA/1"
        assert seen["accept"] == "application/json"
        assert seen["authorization"] == "Bearer a"
        assert seen["x-team"] == "extra"

    @pytest.mark.asyncio
    async def test_non_2xx_raises_upstream_error(self):
        def handler(request):
            return httpx.Response(404, json={"message": "missing"})

        sink = RecordingSink()
        async with _client(handler) as client:
            with pytest.raises(UpstreamError) as info:
                await Dispatcher(client, sink).dispatch(_conn(), "GET", "/x")

        assert info.value.status == 404
        assert info.value.body == {"message": "missing"}
        assert info.value.retryable is False
        assert sink.events[0].status == 404

    @pytest.mark.asyncio
    async def test_retryable_status_flagged(self):
        def handler(request):
            return httpx.Response(503)

        async with _client(handler) as client:
            with pytest.raises(UpstreamError) as info:
                await Dispatcher(client, RecordingSink()).dispatch(_conn(), "GET", "/x")
        assert info.value.retryable is True

    @pytest.mark.asyncio
    async def test_timeout_becomes_network_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        sink = RecordingSink()
        async with _client(handler) as client:
            with pytest.raises(NetworkError) as info:
                await Dispatcher(client, sink).dispatch(_conn(timeout_ms=100), "GET", "/slow", attempt=2)

        assert info.value.kind == "timeout"
        assert info.value.retryable is True
        assert sink.events[0].error_kind == "timeout"
        assert sink.events[0].attempt == 2

    @pytest.mark.asyncio
    async def test_connect_error_kinds(self):
        def refused(request):
            raise httpx.ConnectError("Connection refused", request=request)

        def dns(request):
            raise httpx.ConnectError("[Errno -2] Name or service not known", request=request)

        for handler, kind in ((refused, "connection"), (dns, "dns")):
            async with _client(handler) as client:
                with pytest.raises(NetworkError) as info:
                    await Dispatcher(client, RecordingSink()).dispatch(_conn(), "GET", "/")
            assert info.value.kind == kind

    @pytest.mark.asyncio
    async def test_sink_failure_never_fails_dispatch(self):
        def handler(request):
            return httpx.Response(200, text="ok")

        async with _client(handler) as client:
            result = await Dispatcher(client, BrokenSink()).dispatch(_conn(), "GET", "/")
        assert result.body == "ok"

    @pytest.mark.asyncio
    async def test_empty_body_is_none(self):
        def handler(request):
            return httpx.Response(204)

        async with _client(handler) as client:
            result = await Dispatcher(client, RecordingSink()).dispatch(_conn(), "DELETE", "/x")
        assert result.status == 204
        assert result.body is None
