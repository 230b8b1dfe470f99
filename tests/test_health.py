def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["trace_id"]


def test_health_echoes_incoming_trace_id(client):
    response = client.get("/health", headers={"X-Trace-ID": "trace-health-1"})
    assert response.status_code == 200
    assert response.json()["trace_id"] == "trace-health-1"
    assert response.headers["X-Trace-ID"] == "trace-health-1"


def test_ready(client):
    response = client.get("/ready")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ready"
    assert payload["trace_id"]
