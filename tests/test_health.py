from __future__ import annotations

from fastapi.testclient import TestClient

from botgate.main import create_app


def test_health_ok() -> None:
    app = create_app()
    client = TestClient(app)
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert resp.headers.get("X-Request-ID")


def test_request_id_is_echoed() -> None:
    client = TestClient(create_app())
    resp = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert resp.headers["X-Request-ID"] == "req-123"
    assert "X-Response-Time-Ms" in resp.headers
