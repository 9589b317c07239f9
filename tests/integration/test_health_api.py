"""Integration tests for the health route."""


def test_basic_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert "checks" not in body


def test_detailed_health(client):
    response = client.get("/api/health?detailed=true")
    assert response.status_code == 200
    checks = response.json()["checks"]
    assert checks["database"]["status"] == "ok"
    assert checks["external_api"]["status"] == "skipped"
