"""
tests/test_dashboard.py
Flask test-client checks for dashboard/app.py — routes, auth, errors.
Run: pytest tests/test_dashboard.py -v
"""

import sys
import os
import base64
from datetime import datetime, timedelta
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from core.model import Listener, Report
from dashboard.app import create_app, hash_password, verify_password
from database.history import History, Store
from database.models import OwnershipEvent


class FakeInspector:
    def __init__(self):
        self.calls = []

    def check(self, port, proto="tcp", docker=False, connections=False):
        self.calls.append((port, proto, docker, connections))
        listeners = [Listener("0.0.0.0", port, state="LISTEN", pid=42, proc_name="nginx")] if port == 80 else []
        return Report(port=port, proto=proto, generated=datetime.now().astimezone(), listeners=listeners)


class FakeAncestry:
    def blame(self, report, max_depth=10):
        l = report.primary_listener()
        if l is None:
            return {"port": report.port, "proto": report.proto, "target": None,
                    "chain": [], "started_by": {"kind": "unknown", "details": ""}}
        return {"port": report.port, "proto": report.proto, "target": {"pid": l.pid},
                "chain": [{"pid": l.pid, "depth": max_depth}],
                "started_by": {"kind": "systemd", "details": "nginx.service"}}


@pytest.fixture
def history(tmp_path):
    h = History(tmp_path / "history.json")
    s = Store()
    now = datetime.now().astimezone()
    s.append(OwnershipEvent(at=now - timedelta(days=30), port=5432, proto="tcp",
                            signature="old", pid=9))
    for i, pid in enumerate([1, 2, 3]):
        s.append(OwnershipEvent(at=now - timedelta(hours=3 - i), port=5432, proto="tcp",
                                signature=f"s{i}", pid=pid, proc_name="postgres"))
    h.save(s)
    return h


@pytest.fixture
def inspector():
    return FakeInspector()


@pytest.fixture
def client(inspector, history):
    app = create_app({}, inspector, history, FakeAncestry())
    return app.test_client()


def basic(user, password):
    token = base64.b64encode(f"{user}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


# ── Routes ────────────────────────────────────────────────────────────────────

class TestRoutes:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.get_json() == {"status": "ok", "auth": False}

    def test_port(self, client, inspector):
        r = client.get("/api/port/80?docker=1")
        assert r.status_code == 200
        data = r.get_json()
        assert data["listeners"][0]["pid"] == 42
        assert data["signature"]
        assert inspector.calls == [(80, "tcp", True, False)]

    def test_port_udp(self, client, inspector):
        assert client.get("/api/port/53?proto=udp").status_code == 200
        assert inspector.calls[0][1] == "udp"

    def test_history_window(self, client):
        data = client.get("/api/history/5432?since=1d&patterns=1").get_json()
        assert data["key"] == "5432/tcp"
        assert [e["pid"] for e in data["events"]] == [1, 2, 3]
        assert data["patterns"] == []

    def test_history_without_patterns(self, client):
        data = client.get("/api/history/5432").get_json()
        assert "patterns" not in data
        assert data["since"] == "7d"

    def test_recent(self, client):
        data = client.get("/api/recent/5432?n=2").get_json()
        assert data["key"] == "5432/tcp"
        assert [e["pid"] for e in data["events"]] == [2, 3]

    def test_blame(self, client):
        data = client.get("/api/blame/80?depth=4").get_json()
        assert data["started_by"]["kind"] == "systemd"
        assert data["chain"][0]["depth"] == 4

    def test_blame_free_port(self, client):
        assert client.get("/api/blame/8080").status_code == 404


# ── Input errors ──────────────────────────────────────────────────────────────

class TestBadInput:
    @pytest.mark.parametrize("url", [
        "/api/port/0",
        "/api/port/70000",
        "/api/port/80?proto=sctp",
        "/api/history/5432?since=forever",
        "/api/recent/5432?n=abc",
        "/api/recent/5432?n=0",
        "/api/blame/80?depth=999",
    ])
    def test_400(self, client, url):
        r = client.get(url)
        assert r.status_code == 400
        assert "error" in r.get_json()

    def test_unknown_route(self, client):
        r = client.get("/api/nope")
        assert r.status_code == 404
        assert r.get_json() == {"error": "not found"}

    def test_method_not_allowed(self, client):
        assert client.post("/health").status_code == 405

    def test_internal_error_hidden(self, history):
        class Exploding(FakeInspector):
            def check(self, *a, **kw):
                raise RuntimeError("secret stack detail")
        app = create_app({}, Exploding(), history, FakeAncestry())
        r = app.test_client().get("/api/port/80")
        assert r.status_code == 500
        assert "secret" not in r.get_data(as_text=True)


# ── Auth / config ─────────────────────────────────────────────────────────────

class TestAuth:
    def test_plaintext_password(self, inspector, history):
        app = create_app({"enable_auth": True, "auth_username": "ops", "auth_password": "pw"},
                         inspector, history, FakeAncestry())
        c = app.test_client()
        assert c.get("/health").status_code == 401
        assert c.get("/health", headers=basic("ops", "wrong")).status_code == 401
        assert c.get("/health", headers=basic("ops", "pw")).status_code == 200

    def test_bcrypt_password(self, inspector, history):
        hashed = hash_password("s3cret")
        app = create_app({"enable_auth": True, "auth_username": "ops", "auth_password": hashed},
                         inspector, history, FakeAncestry())
        c = app.test_client()
        assert c.get("/health", headers=basic("ops", "s3cret")).status_code == 200
        assert c.get("/health", headers=basic("ops", "nope")).status_code == 401

    def test_verify_password(self):
        assert verify_password("a", "a")
        assert not verify_password("a", "b")
        assert verify_password("x", hash_password("x"))

    def test_debug_forced_off(self, inspector, history):
        app = create_app({"secret_key": ""}, inspector, history, FakeAncestry())
        assert app.config["DEBUG"] is False
        assert len(app.config["SECRET_KEY"]) == 64


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
