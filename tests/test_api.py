"""
Tests for the dashboard API endpoints.

Covers:
- /api/health
- /api/sessions listing and limits
- /api/sessions/<id> with its command log
- /api/sessions/<id>/summary
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from execguard import __version__
from execguard.api import DashboardAPIServer
from execguard.session import SessionStore

from factories import CommandFactory


@pytest.fixture
def populated_store(store, workspace, now):
    """Two sessions, the newer one with three commands."""
    store.start_session(workspace, session_id="older", now=now - timedelta(hours=2))
    store.start_session(workspace, session_id="newer", now=now)
    for i, risk in enumerate(["low", "high", "critical"]):
        store.append_command(
            "newer",
            CommandFactory(
                timestamp=now + timedelta(seconds=i),
                command="cmd",
                args=[str(i)],
                risk_level=risk,
                metadata={"blocked": risk == "critical"},
            ),
        )
    return store


@pytest.fixture
def client(populated_store):
    server = DashboardAPIServer(store=populated_store, port=0)
    return server.app.test_client()


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.get_json()
        assert data["success"] is True
        assert data["data"]["status"] == "ok"
        assert data["data"]["version"] == __version__


class TestSessions:
    def test_list_newest_first(self, client):
        data = client.get("/api/sessions").get_json()
        assert data["success"] is True
        assert [s["id"] for s in data["data"]] == ["newer", "older"]

    def test_limit(self, client):
        data = client.get("/api/sessions?limit=1").get_json()
        assert len(data["data"]) == 1

    def test_session_with_commands(self, client):
        data = client.get("/api/sessions/newer").get_json()["data"]
        assert data["active"] is True
        assert [c["args"] for c in data["commands"]] == [["0"], ["1"], ["2"]]
        assert data["commands"][2]["risk_level"] == "critical"

    def test_unknown_session(self, client):
        response = client.get("/api/sessions/missing")
        assert response.status_code == 404
        assert response.get_json()["success"] is False

    def test_summary(self, client):
        data = client.get("/api/sessions/newer/summary").get_json()["data"]
        assert data["total_commands"] == 3
        assert data["blocked_commands"] == 1
        assert data["violations"] == 2
        assert data["risk_score"] == 150

    def test_summary_unknown_session(self, client):
        assert client.get("/api/sessions/missing/summary").status_code == 404


class TestErrors:
    def test_store_error_returns_500(self):
        store = MagicMock()
        store.list_sessions.side_effect = RuntimeError("database is locked")
        client = DashboardAPIServer(store=store, port=0).app.test_client()
        response = client.get("/api/sessions")
        assert response.status_code == 500
        assert response.get_json() == {"success": False, "error": "database is locked"}


class TestServer:
    def test_url(self):
        server = DashboardAPIServer(store=MagicMock(), host="127.0.0.1", port=19999)
        assert server.url == "http://127.0.0.1:19999"
        assert not server.is_running

    def test_start_and_stop(self):
        server = DashboardAPIServer(store=MagicMock(), host="127.0.0.1", port=0)
        server.start()
        thread = server._thread
        assert server.is_running
        server.stop()
        assert not server.is_running
        assert not thread.is_alive()
        server.stop()

    def test_stop_when_not_started(self):
        server = DashboardAPIServer(store=MagicMock(), port=0)
        server.stop()
        assert not server.is_running


class TestDatabaseFile:
    def test_reads_file_per_request(self, tmp_path, workspace, now):
        db = tmp_path / "sessions.duckdb"
        client = DashboardAPIServer(db_path=db, port=0).app.test_client()
        assert client.get("/api/sessions").get_json()["data"] == []

        with SessionStore(db) as writer:
            writer.start_session(workspace, session_id="live", now=now)
            writer.append_command("live", CommandFactory(timestamp=now, command="ls"))

        data = client.get("/api/sessions/live").get_json()["data"]
        assert [c["command"] for c in data["commands"]] == ["ls"]

    def test_request_does_not_hold_the_file(self, tmp_path, workspace):
        db = tmp_path / "sessions.duckdb"
        client = DashboardAPIServer(db_path=db, port=0).app.test_client()
        assert client.get("/api/health").status_code == 200
        assert client.get("/api/sessions").status_code == 200
        with SessionStore(db, keep_open=False) as writer:
            assert writer.start_session(workspace).id
