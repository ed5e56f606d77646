from fastapi.testclient import TestClient


def test_health_endpoint(test_client: TestClient):
    response = test_client.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert "timestamp" in body


def test_status_reports_backends(test_client: TestClient):
    response = test_client.get("/api/status")
    assert response.status_code == 200
    body = response.json()
    assert body["ready"] is True
    assert body["toolCount"] > 30
    assert body["pendingCallStore"] in ("redis", "memory")


def test_root_endpoint(test_client: TestClient):
    response = test_client.get("/")
    assert response.status_code == 200
    assert response.json()["api_prefix"] == "/api"


def test_request_id_is_echoed(test_client: TestClient):
    response = test_client.get("/api/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"
