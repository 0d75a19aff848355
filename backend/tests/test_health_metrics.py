"""
Tests for health, metrics and the API root
"""


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "Claude Insider"
    assert "timestamp" in data


def test_detailed_health(client):
    response = client.get("/health/detailed")
    assert response.status_code == 200
    data = response.json()
    assert set(data["components"]) == {"database", "llm", "rag_index"}
    assert data["components"]["database"]["status"] == "healthy"
    assert data["components"]["rag_index"]["chunks"] == 0
    assert data["components"]["rag_index"]["status"] == "warning"
    assert data["status"] == "degraded"


def test_request_id_header(client):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"
    assert client.get("/health").headers["X-Request-ID"]

    # Ids that could forge log fields are replaced
    replaced = client.get("/health", headers={"X-Request-ID": 'bad id "level": "ERROR"'})
    assert len(replaced.headers["X-Request-ID"]) == 32
    assert replaced.headers["X-Response-Time"].endswith("ms")


def test_prometheus_metrics(client):
    client.get("/health")
    response = client.get("/metrics")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "http_requests_total" in response.text


def test_logging_metrics(client):
    data = client.get("/metrics/logging").json()
    assert set(data) == {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def test_api_root(client):
    data = client.get("/api").json()
    assert data["status"] == "running"
    assert data["version"] == "1.0.0"


def test_domain_errors_carry_type(client):
    response = client.get("/api/resources/no-such-resource")
    assert response.status_code == 404
    assert response.json() == {"detail": "Resource not found", "type": "NotFoundError"}
