"""
HTTP-level tests for the sign-in endpoints, health check and proxy.
"""

import json

import httpx
import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock

from api.dependencies import get_negotiator
from config.brand_registry import BrandRegistry
from config.settings import Settings
from core.signin_negotiator import SigninNegotiator
from main import create_app

UPSTREAM = "http://upstream.test:23456"


def _settings(**overrides) -> Settings:
    values = dict(getgather_url=UPSTREAM, app_host="", brand="goodreads")
    values.update(overrides)
    return Settings(**values)


def _make_client(invoker_result=None, invoker_error=None, **settings_overrides):
    """Build (client, invoker mock) with the negotiator wired to a fake invoker."""
    settings = _settings(**settings_overrides)
    app = create_app(settings)

    invoker = MagicMock()
    invoker.call = AsyncMock(return_value=invoker_result, side_effect=invoker_error)
    negotiator = SigninNegotiator(
        invoker,
        BrandRegistry().get_brand_config("goodreads"),
        upstream_url=settings.getgather_url,
        poll_timeout=settings.poll_timeout_seconds,
    )
    app.dependency_overrides[get_negotiator] = lambda: negotiator
    return TestClient(app), invoker


class TestHealth:
    def test_health(self):
        client, _ = _make_client()
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert "timestamp" in body

    def test_responses_carry_process_time(self):
        client, _ = _make_client()
        resp = client.get("/health")
        assert float(resp.headers["X-Process-Time"]) >= 0


class TestGetBookList:
    def test_rewrites_handoff_url_to_request_host(self):
        client, invoker = _make_client(
            {"url": f"{UPSTREAM}/dpage/abc?x=1", "signin_id": "sid-1"}
        )

        resp = client.post("/api/get-book-list", json={})

        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "data": {"url": "http://testserver/dpage/abc?x=1", "signin_id": "sid-1"},
        }
        args = invoker.call.await_args
        assert args.args[2] == "goodreads_get_book_list"

    def test_rewrites_to_configured_app_host(self):
        client, _ = _make_client(
            {"url": f"{UPSTREAM}/dpage/abc", "signin_id": "sid-1"},
            app_host="https://books.example.com",
        )

        resp = client.post("/api/get-book-list", json={"keywords": []})

        assert resp.json()["data"]["url"] == "https://books.example.com/dpage/abc"

    def test_forwards_keywords(self):
        client, invoker = _make_client({"url": f"{UPSTREAM}/dpage/abc", "signin_id": "s"})

        client.post("/api/get-book-list", json={"keywords": ["fantasy"]})

        assert invoker.call.await_args.args[3] == {"keywords": ["fantasy"]}

    def test_missing_url_is_a_domain_error(self):
        client, _ = _make_client({"signin_id": "sid-1"})

        resp = client.post("/api/get-book-list", json={})

        assert resp.status_code == 200
        assert resp.json() == {"success": False, "error": "No signin URL found"}

    def test_foreign_origin_url_is_rejected(self):
        client, _ = _make_client({"url": "http://elsewhere.test/dpage/abc", "signin_id": "s"})

        resp = client.post("/api/get-book-list", json={})

        assert resp.json()["success"] is False

    def test_invoker_failure_is_a_500_envelope(self):
        client, _ = _make_client(invoker_error=RuntimeError("upstream down"))

        resp = client.post("/api/get-book-list", json={})

        assert resp.status_code == 500
        assert resp.json() == {"success": False, "error": "upstream down"}


class TestPollSignin:
    def test_missing_signin_id_is_400_before_any_remote_call(self):
        client, invoker = _make_client({"status": "PENDING"})

        resp = client.post("/api/poll-signin", json={})

        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "signin_id is required"}
        invoker.call.assert_not_awaited()

    def test_empty_body_is_400(self):
        client, invoker = _make_client({"status": "PENDING"})

        resp = client.post("/api/poll-signin")

        assert resp.status_code == 400
        invoker.call.assert_not_awaited()

    def test_relays_status_message_and_data(self):
        books = [{"title": "Dune", "author": "Frank Herbert"}]
        client, invoker = _make_client(
            {"status": "SUCCESS", "message": "done", "result": books}
        )

        resp = client.post("/api/poll-signin", json={"signin_id": "sid-1"})

        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "data": {"status": "SUCCESS", "message": "done", "books": books},
        }
        call = invoker.call.await_args
        assert call.args[2:] == ("check_signin", {"signin_id": "sid-1"})
        assert call.kwargs["timeout"] == 6000

    def test_pending_is_relayed_verbatim(self):
        client, _ = _make_client({"status": "PENDING", "message": "waiting"})

        data = client.post("/api/poll-signin", json={"signin_id": "sid-1"}).json()["data"]

        assert data == {"status": "PENDING", "message": "waiting", "books": None}

    def test_invoker_failure_is_a_500_envelope(self):
        client, _ = _make_client(invoker_error=RuntimeError("boom"))

        resp = client.post("/api/poll-signin", json={"signin_id": "sid-1"})

        assert resp.status_code == 500
        assert resp.json()["success"] is False


class TestSessionBinding:
    def test_same_browser_keeps_its_session_id(self):
        client, invoker = _make_client({"status": "PENDING"})

        client.post("/api/poll-signin", json={"signin_id": "a"})
        client.post("/api/poll-signin", json={"signin_id": "a"})

        first, second = (c.args[0] for c in invoker.call.await_args_list)
        assert first == second

    def test_different_browsers_get_different_sessions(self):
        client, invoker = _make_client({"status": "PENDING"})
        other = TestClient(client.app)

        client.post("/api/poll-signin", json={"signin_id": "a"})
        other.post("/api/poll-signin", json={"signin_id": "a"})

        first, second = (c.args[0] for c in invoker.call.await_args_list)
        assert first != second

    def test_forwarded_for_is_used_as_client_ip(self):
        client, invoker = _make_client({"status": "PENDING"})

        client.post(
            "/api/poll-signin",
            json={"signin_id": "a"},
            headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1"},
        )

        assert invoker.call.await_args.args[1] == "203.0.113.9"


class TestProxy:
    def _client_with_upstream(self, handler):
        client, _ = _make_client()
        client.app.state.proxy_client = httpx.AsyncClient(
            base_url=UPSTREAM, transport=httpx.MockTransport(handler)
        )
        return client

    def test_passthrough_keeps_path_and_query(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            return httpx.Response(200, text="<html>signin</html>")

        client = self._client_with_upstream(handler)
        resp = client.get("/dpage/abc?step=2")

        assert resp.status_code == 200
        assert resp.text == "<html>signin</html>"
        assert seen["url"] == f"{UPSTREAM}/dpage/abc?step=2"

    def test_api_post_gets_location_attached(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})

        client = self._client_with_upstream(handler)
        resp = client.post("/api/other-endpoint", json={"a": 1})

        assert resp.json() == {"ok": True}
        assert seen["body"] == {"a": 1, "location": None}

    def test_api_post_array_body_is_forwarded_unchanged(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})

        client = self._client_with_upstream(handler)
        resp = client.post("/api/batch", json=[{"id": 1}, {"id": 2}])

        assert resp.status_code == 200
        assert seen["body"] == [{"id": 1}, {"id": 2}]

    def test_core_routes_are_not_proxied(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("core route must not reach the proxy")

        client = self._client_with_upstream(handler)
        resp = client.post("/api/poll-signin", json={})

        assert resp.status_code == 400

    def test_upstream_down_is_502(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused")

        client = self._client_with_upstream(handler)
        resp = client.get("/auth/start")

        assert resp.status_code == 502
        assert resp.text == "Proxy error occurred"
