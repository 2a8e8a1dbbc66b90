from fastapi.testclient import TestClient
from runpool.main import app

client = TestClient(app)

def test_health_ok():
    r = client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert "request_id" in data

def test_health_echoes_request_id():
    r = client.get("/health", headers={"x-request-id": "abc-123"})
    assert r.json()["request_id"] == "abc-123"
    assert r.headers["X-Request-ID"] == "abc-123"

def test_version_ok():
    r = client.get("/version")
    assert r.status_code == 200
    data = r.json()
    assert "version" in data and "git_sha" in data

def test_health_reports_configuration_without_secrets():
    data = client.get("/health").json()
    assert set(data["configured"]) == {"database", "email", "cron_secret"}
    assert all(isinstance(v, bool) for v in data["configured"].values())
    assert data["streak_window"] >= 1
