"""Tests for the claudegate HTTP API."""

from __future__ import annotations

import inspect
import json
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from conftest import FakeLauncher, parse_sse

from claudegate.concurrency.limiter import (
    ConcurrencyLimiter,
    LimiterShutdownError,
    QueueTimeoutError,
)
from claudegate.config.settings import Settings
from claudegate.endpoint.server import create_app
from claudegate.sessions.store import SessionStore


@pytest.fixture
def limiter() -> ConcurrencyLimiter:
    return ConcurrencyLimiter(max_concurrent=2, default_timeout=5)


@pytest.fixture
def client(settings: Settings, limiter: ConcurrencyLimiter, fake_launcher: FakeLauncher) -> Iterator[TestClient]:
    """A test client with a fake launcher injected."""
    app = create_app(settings, limiter=limiter, launcher=fake_launcher)
    with TestClient(app) as c:
        yield c


def _refusing_limiter(error: Exception) -> MagicMock:
    limiter = MagicMock(spec=ConcurrencyLimiter)
    limiter.run = AsyncMock(side_effect=error)
    return limiter


class TestHealthEndpoint:
    def test_health_returns_ok(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["service"] == "claudegate"
        assert data["uptime"] >= 0
        assert "timestamp" in data

    def test_unknown_route(self, client: TestClient) -> None:
        resp = client.get("/nope")
        assert resp.status_code == 404
        assert resp.json()["error"] == "Not found"
        assert "/nope" in resp.json()["message"]


class TestStatusEndpoints:
    def test_concurrency(self, client: TestClient) -> None:
        resp = client.get("/status/concurrency")
        assert resp.status_code == 200
        assert resp.json() == {"active": 0, "max": 2, "available": 2, "queued": 0}

    def test_queue(self, client: TestClient) -> None:
        resp = client.get("/status/queue")
        assert resp.status_code == 200
        assert resp.json() == {"count": 0, "tasks": []}


class TestChatValidation:
    @pytest.mark.parametrize(
        "payload",
        [
            {"prompt": ""},
            {},
            {"prompt": "hi", "allowedmode": "everything"},
        ],
    )
    def test_invalid_body_rejected_without_spawn(
        self, client: TestClient, fake_launcher: FakeLauncher, payload: dict
    ) -> None:
        resp = client.post("/chat/stream", json=payload)
        assert resp.status_code == 400
        data = resp.json()
        assert data["error"] == "Request validation failed"
        assert data["details"]
        assert fake_launcher.calls == []

    def test_malformed_json(self, client: TestClient, fake_launcher: FakeLauncher) -> None:
        resp = client.post(
            "/chat/stream", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert resp.status_code == 400
        assert fake_launcher.calls == []


class TestChatStream:
    def test_streams_events(self, client: TestClient, fake_launcher: FakeLauncher) -> None:
        resp = client.post("/chat/stream", json={"prompt": "hi", "sessionId": "s-42"})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/event-stream")
        assert resp.headers["cache-control"] == "no-cache"

        events = parse_sse(resp.text)
        assert events[0] == {"type": "start", "sessionId": "s-42"}
        assert events[-1] == {"type": "end", "sessionId": "s-42"}
        data = [e["content"] for e in events if e["type"] == "data"]
        assert data[1:3] == ["Hel", "lo"]
        assert "result" not in data[-1]

        (args, _), = fake_launcher.calls
        assert args[2] == "hi"
        assert args[3] == "s-42"
        fake_launcher.processes[0].stop.assert_awaited()

    def test_slot_released_after_stream(self, client: TestClient) -> None:
        client.post("/chat/stream", json={"prompt": "hi"})
        assert client.get("/status/concurrency").json()["active"] == 0

    def test_launch_failure_is_500(
        self, settings: Settings, limiter: ConcurrencyLimiter, failing_launcher: FakeLauncher
    ) -> None:
        with TestClient(create_app(settings, limiter=limiter, launcher=failing_launcher)) as client:
            resp = client.post("/chat/stream", json={"prompt": "hi"})
            assert resp.status_code == 500
            assert "not found" in resp.json()["message"]
            assert client.get("/status/concurrency").json()["active"] == 0

    def test_queue_timeout_is_503(self, settings: Settings, fake_launcher: FakeLauncher) -> None:
        limiter = _refusing_limiter(QueueTimeoutError(0.05))
        with TestClient(create_app(settings, limiter=limiter, launcher=fake_launcher)) as client:
            resp = client.post("/chat/stream", json={"prompt": "hi"})
        assert resp.status_code == 503
        assert "0.05s" in resp.json()["message"]
        assert fake_launcher.calls == []
        limiter.clear.assert_called_once()

    def test_shutdown_is_503(self, settings: Settings, fake_launcher: FakeLauncher) -> None:
        limiter = _refusing_limiter(LimiterShutdownError())
        with TestClient(create_app(settings, limiter=limiter, launcher=fake_launcher)) as client:
            resp = client.post("/chat/stream", json={"prompt": "hi"})
        assert resp.status_code == 503
        assert resp.json()["message"] == "Server is shutting down"


class TestSessionEndpoints:
    @pytest.fixture
    def indexed(self, settings: Settings, project_dir: Path) -> SessionStore:
        store = SessionStore(settings.claude.claude_home)
        store.session_dir(project_dir).mkdir(parents=True)
        store.index_path(project_dir).write_text(json.dumps({
            "version": 1,
            "entries": [
                {"sessionId": "s1", "summary": "first", "modified": "2025-01-01T00:00:00Z"},
                {"sessionId": "s2", "summary": "second", "modified": "2025-02-01T00:00:00Z"},
            ],
        }))
        store.session_file(project_dir, "s1").write_text("{}\n")
        store.session_file(project_dir, "s2").write_text("{}\n")
        return store

    def test_list(self, client: TestClient, indexed: SessionStore, project_dir: Path) -> None:
        resp = client.get("/session/list")
        assert resp.status_code == 200
        data = resp.json()
        assert data["projectPath"] == str(project_dir)
        assert data["totalSessions"] == 2
        assert [s["sessionId"] for s in data["sessions"]] == ["s2", "s1"]

    def test_check(self, client: TestClient, indexed: SessionStore) -> None:
        assert client.get("/session/check/s1").json()["exists"] is True
        missing = client.get("/session/check/zzz").json()
        assert missing == {"exists": False, "session": None}

    def test_delete(self, client: TestClient, indexed: SessionStore, project_dir: Path) -> None:
        resp = client.delete("/session/delete/s1")
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Session s1 deleted", "sessionId": "s1"}
        assert not indexed.session_file(project_dir, "s1").exists()
        assert client.get("/session/list").json()["totalSessions"] == 1

    def test_corrupt_index_is_500(self, client: TestClient, settings: Settings, project_dir: Path) -> None:
        store = SessionStore(settings.claude.claude_home)
        store.session_dir(project_dir).mkdir(parents=True)
        store.index_path(project_dir).write_text("[")
        resp = client.get("/session/list")
        assert resp.status_code == 500
        assert resp.json()["error"] == "Session store error"

    def test_session_routes_run_in_threadpool(self, client: TestClient) -> None:
        paths = {"/session/list", "/session/check/{sessionid}", "/session/delete/{sessionid}"}
        routes = [r for r in client.app.routes if getattr(r, "path", None) in paths]
        assert len(routes) == 3
        assert not any(inspect.iscoroutinefunction(r.endpoint) for r in routes)


class TestCors:
    def test_allow_any_origin(self, client: TestClient) -> None:
        resp = client.get("/health", headers={"Origin": "http://example.test"})
        assert resp.headers["access-control-allow-origin"] == "*"
