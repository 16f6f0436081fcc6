"""
Tests for the /api/v1/connectors HTTP surface.
"""

import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

from connectors.service import build_in_memory_service
from main import create_app

_OAUTH = {
    "client_id": "cid",
    "client_secret": "secret",
    "redirect_uri": "https://app.test/cb",
    "scope": ["a", "b"],
    "auth_url": "https://accounts.test/auth",
    "token_url": "https://accounts.test/token",
}


def _app(handler=None):
    handler = handler or (lambda request: httpx.Response(200, json={"ok": True}))
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    service = build_in_memory_service(client)
    return create_app(service=service), service


class TestRegistryRoutes:
    def test_list_hides_credentials(self):
        app, _ = _app()
        with TestClient(app) as client:
            resp = client.get("/api/v1/connectors/")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert [c["id"] for c in body["data"]][:2] == ["slack", "jira"]
        assert all("credentials" not in c for c in body["data"])
        assert "X-Process-Time" in resp.headers

    def test_get_unknown_is_404(self):
        app, _ = _app()
        with TestClient(app) as client:
            resp = client.get("/api/v1/connectors/nope")
        assert resp.status_code == 404
        assert resp.json()["error_type"] == "ConnectorNotFoundError"

    def test_register_and_fetch(self):
        app, _ = _app()
        with TestClient(app) as client:
            created = client.post(
                "/api/v1/connectors/",
                json={"id": "acme", "base_url": "https://acme.test", "auth_type": "api_key"},
            )
            fetched = client.get("/api/v1/connectors/acme")
        assert created.status_code == 200
        assert fetched.json()["data"]["base_url"] == "https://acme.test"

    def test_register_invalid_is_422(self):
        app, _ = _app()
        with TestClient(app) as client:
            resp = client.post("/api/v1/connectors/", json={"id": "acme"})
        assert resp.status_code == 422
        assert resp.json()["error_type"] == "InvalidConfigError"


class TestRequestRoutes:
    def test_proxy_request(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"channel": "C1"})

        app, service = _app(handler)
        with TestClient(app) as client:
            resp = client.post(
                "/api/v1/connectors/slack/request",
                json={"method": "POST", "endpoint": "/chat.postMessage", "data": {"text": "x"}, "credentials": {"token": "t"}},
            )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["data"] == {"channel": "C1"}
        assert data["metadata"]["retry_count"] == 0
        assert seen[0].headers["authorization"] == "Bearer t"
        assert service.get_connector("slack").credentials == {}

    def test_invalid_method_rejected(self):
        app, _ = _app()
        with TestClient(app) as client:
            resp = client.post("/api/v1/connectors/slack/request", json={"method": "TRACE", "endpoint": "/"})
        assert resp.status_code == 422

    def test_oauth_without_token_is_401(self):
        app, _ = _app()
        with TestClient(app) as client:
            resp = client.post("/api/v1/connectors/google/request", json={"method": "GET", "endpoint": "/x"})
        assert resp.status_code == 401

    def test_upstream_error_is_502(self):
        app, _ = _app(lambda request: httpx.Response(404))
        with TestClient(app) as client:
            resp = client.post("/api/v1/connectors/github/request", json={"method": "GET", "endpoint": "/x"})
        assert resp.status_code == 502
        assert resp.json()["upstream_status"] == 404

    @pytest.mark.parametrize("status,connected", [(200, True), (401, False)])
    def test_connection_probe(self, status, connected):
        app, _ = _app(lambda request: httpx.Response(status))
        with TestClient(app) as client:
            resp = client.post("/api/v1/connectors/slack/test", json={"credentials": {"token": "t"}})
        assert resp.status_code == 200
        assert resp.json()["data"]["connected"] is connected

    def test_slack_message(self):
        app, _ = _app()
        with TestClient(app) as client:
            resp = client.post(
                "/api/v1/connectors/slack/message",
                json={"channel": "#c", "text": "hi", "credentials": {"token": "t"}},
            )
        assert resp.status_code == 200
        assert resp.json()["data"]["metadata"]["connector_id"] == "slack"

    def test_email_send(self):
        app, _ = _app()
        with TestClient(app) as client:
            resp = client.post(
                "/api/v1/connectors/email/send",
                json={"to": "a@example.com", "subject": "s", "content": "c", "from": "me@example.com"},
            )
        assert resp.status_code == 200
        assert resp.json()["data"]["metadata"]["connector_id"] == "sendgrid"


class TestBatchRoute:
    def test_mixed_outcomes_reported_per_index(self):
        app, _ = _app()
        with TestClient(app) as client:
            resp = client.post(
                "/api/v1/connectors/batch",
                json={
                    "requests": [
                        {"connector_id": "slack", "method": "GET", "endpoint": "/auth.test", "credentials": {"token": "t"}},
                        {"connector_id": "nope", "method": "GET", "endpoint": "/"},
                    ]
                },
            )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert (data["total"], data["successful"], data["failed"]) == (2, 1, 1)
        first, second = data["results"]
        assert first["index"] == 0 and first["success"] is True
        assert first["data"]["data"] == {"ok": True}
        assert second["index"] == 1 and second["success"] is False
        assert second["data"] is None
        assert second["error"] == "Connector 'nope' not found"

    def test_requests_run_concurrently(self):
        arrived = []
        both = asyncio.Event()

        async def handler(request):
            arrived.append(request.url.path)
            if len(arrived) == 2:
                both.set()
            await asyncio.wait_for(both.wait(), timeout=2)
            return httpx.Response(200, json={"ok": True})

        app, _ = _app(handler)
        item = {"connector_id": "github", "method": "GET", "endpoint": "/a", "credentials": {"token": "t"}}
        with TestClient(app) as client:
            resp = client.post(
                "/api/v1/connectors/batch",
                json={"requests": [item, {**item, "endpoint": "/b"}]},
            )
        assert resp.json()["data"]["successful"] == 2
        assert sorted(arrived) == ["/a", "/b"]

    @pytest.mark.parametrize("count", [0, 11])
    def test_batch_size_limits(self, count):
        app, _ = _app()
        item = {"connector_id": "slack", "method": "GET", "endpoint": "/"}
        with TestClient(app) as client:
            resp = client.post("/api/v1/connectors/batch", json={"requests": [item] * count})
        assert resp.status_code == 422


class TestOAuthRoutes:
    def test_authorize_url(self):
        app, _ = _app()
        with TestClient(app) as client:
            resp = client.post(
                "/api/v1/connectors/google/oauth/authorize-url",
                json={"oauth": _OAUTH, "state": "s1"},
            )
        url = resp.json()["data"]["auth_url"]
        assert url.startswith("https://accounts.test/auth?client_id=cid")
        assert "scope=a+b" in url
        assert url.endswith("state=s1")

    def test_exchange_then_refresh(self):
        def handler(request):
            return httpx.Response(200, json={"access_token": "at", "refresh_token": "rt", "expires_in": 60})

        app, _ = _app(handler)
        with TestClient(app) as client:
            exchanged = client.post(
                "/api/v1/connectors/google/oauth/exchange", json={"oauth": _OAUTH, "code": "c"}
            )
            refreshed = client.post("/api/v1/connectors/google/oauth/refresh", json={"oauth": _OAUTH})
        assert exchanged.status_code == 200
        assert "access_token" not in exchanged.json()["data"]
        assert refreshed.status_code == 200

    def test_refresh_without_token_is_401(self):
        app, _ = _app()
        with TestClient(app) as client:
            resp = client.post("/api/v1/connectors/google/oauth/refresh", json={"oauth": _OAUTH})
        assert resp.status_code == 401
        assert resp.json()["error_type"] == "MissingRefreshTokenError"
