from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from mt_gateway.main import app

CREDS = {"login": "100", "password": "pw", "server": "server1"}


def test_connect_list_get_disconnect_lifecycle(client: TestClient, connector):
    r = client.post("/api/connect", json=CREDS)
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["message"] == "Account connected successfully"
    data = body["data"]
    assert data["login"] == "100"
    assert data["server"] == "server1"
    assert data["accountInfo"]["balance"] == 1000.0
    assert (data["positions"], data["orders"], data["deals"]) == (1, 2, 3)
    assert connector.credentials[0].type == "cloud"

    r = client.get("/api/accounts")
    assert r.status_code == 200
    accounts = r.json()["data"]
    assert [a["login"] for a in accounts] == ["100"]
    assert accounts[0]["accountInfo"]["currency"] == "USD"
    assert "lastUpdate" in accounts[0]

    r = client.get("/api/account/100")
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["positions"] == connector.handles[0].positions
    assert data["orders"] == connector.handles[0].orders
    assert data["deals"] == connector.handles[0].deals
    assert "lastUpdate" in data

    r = client.delete("/api/disconnect/100")
    assert r.status_code == 200
    assert r.json() == {
        "success": True,
        "message": "Account disconnected successfully",
        "error": None,
    }
    assert connector.handles[0].disconnected is True

    assert client.get("/api/accounts").json()["data"] == []
    r = client.get("/api/account/100")
    assert r.status_code == 404
    assert r.json()["success"] is False
    assert r.json()["message"] == "Account not connected"


@pytest.mark.parametrize("missing", ["login", "password", "server"])
def test_connect_missing_field_is_rejected(client: TestClient, connector, registry, missing):
    payload = {k: v for k, v in CREDS.items() if k != missing}
    r = client.post("/api/connect", json=payload)
    assert r.status_code == 400
    assert r.json()["success"] is False
    assert r.json()["message"] == "Login, password, and server are required"
    assert connector.credentials == []
    assert len(registry) == 0


def test_connect_with_only_login_keeps_list_empty(client: TestClient, registry):
    r = client.post("/api/connect", json={"login": "100"})
    assert r.status_code == 400
    assert client.get("/api/accounts").json()["data"] == []


def test_connect_empty_string_counts_as_missing(client: TestClient, registry):
    r = client.post("/api/connect", json={**CREDS, "password": ""})
    assert r.status_code == 400
    assert len(registry) == 0


def test_connect_malformed_body_is_bad_request(client: TestClient):
    r = client.post(
        "/api/connect",
        content=b"not json",
        headers={"content-type": "application/json"},
    )
    assert r.status_code == 400
    assert r.json()["success"] is False


def test_connect_accepts_numeric_login(client: TestClient, registry):
    r = client.post("/api/connect", json={**CREDS, "login": 100})
    assert r.status_code == 200
    assert r.json()["data"]["login"] == "100"
    assert "100" in registry


def test_connect_passes_platform(client: TestClient, connector):
    r = client.post("/api/connect", json={**CREDS, "platform": "mt4"})
    assert r.status_code == 200
    assert connector.credentials[0].platform == "mt4"


def test_connect_upstream_error(client: TestClient, connector, registry):
    connector.connect_error = RuntimeError("E_SRV_NOT_FOUND: server not found")
    r = client.post("/api/connect", json=CREDS)
    assert r.status_code == 500
    assert r.json() == {
        "success": False,
        "message": "Failed to connect to account",
        "error": "E_SRV_NOT_FOUND: server not found",
    }
    assert len(registry) == 0


def test_get_unknown_account(client: TestClient):
    r = client.get("/api/account/999")
    assert r.status_code == 404


def test_get_account_upstream_error(client: TestClient, connector):
    client.post("/api/connect", json=CREDS)
    connector.handles[0].fail["get_account_information"] = RuntimeError("timeout from terminal")
    r = client.get("/api/account/100")
    assert r.status_code == 500
    assert r.json()["message"] == "Failed to fetch account data"
    assert r.json()["error"] == "timeout from terminal"


def test_repeated_get_keeps_same_logins(client: TestClient, connector):
    client.post("/api/connect", json=CREDS)
    client.post("/api/connect", json={**CREDS, "login": "200"})
    before = {a["login"] for a in client.get("/api/accounts").json()["data"]}

    connector.handles[0].balance = 42.0
    client.get("/api/account/100")
    client.get("/api/account/100")

    accounts = {a["login"]: a for a in client.get("/api/accounts").json()["data"]}
    assert set(accounts) == before == {"100", "200"}
    assert accounts["100"]["accountInfo"]["balance"] == 42.0


def test_disconnect_unknown_account(client: TestClient):
    r = client.delete("/api/disconnect/999")
    assert r.status_code == 404
    assert r.json()["message"] == "Account not connected"


def test_disconnect_failure_keeps_account_listed_as_stale(client: TestClient, connector):
    client.post("/api/connect", json=CREDS)
    connector.handles[0].fail["disconnect"] = RuntimeError("undeploy rejected")

    r = client.delete("/api/disconnect/100")
    assert r.status_code == 500
    assert r.json()["message"] == "Failed to disconnect account"
    assert r.json()["error"] == "undeploy rejected"

    accounts = client.get("/api/accounts").json()["data"]
    assert [a["login"] for a in accounts] == ["100"]
    assert accounts[0]["stale"] is True


def test_health_counts_connected_accounts(client: TestClient):
    r = client.get("/api/health")
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["message"] == "Server is running"
    assert body["connectedAccounts"] == 0
    assert "timestamp" in body

    client.post("/api/connect", json=CREDS)
    client.post("/api/connect", json={**CREDS, "login": "200"})
    health = client.get("/api/health").json()
    listed = client.get("/api/accounts").json()["data"]
    assert health["connectedAccounts"] == len(listed) == 2


def test_version(client: TestClient):
    r = client.get("/api/version")
    assert r.status_code == 200
    assert r.json() == {"version": app.version}


def test_shutdown_disconnects_every_account(registry, connector):
    with TestClient(app) as c:
        app.state.registry = registry
        app.state.connector = connector
        c.post("/api/connect", json=CREDS)
        c.post("/api/connect", json={**CREDS, "login": "200"})
        connector.handles[1].fail["disconnect"] = RuntimeError("already gone")

    assert connector.handles[0].disconnected is True
    assert len(registry) == 0


def test_unhandled_error_returns_envelope(registry, monkeypatch: pytest.MonkeyPatch):
    def broken(self):
        raise RuntimeError("registry corrupted")

    monkeypatch.setattr(type(registry), "list", broken)
    with TestClient(app, raise_server_exceptions=False) as c:
        app.state.registry = registry
        r = c.get("/api/accounts")

    assert r.status_code == 500
    assert r.json() == {
        "success": False,
        "message": "Internal server error",
        "error": "registry corrupted",
    }
