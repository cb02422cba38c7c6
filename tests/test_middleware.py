"""
test_middleware.py — Tests for request/response middleware

Verifies request ID generation, security headers, /api/v1 rewriting and
the structured error body produced by the handlers in main.py.

Called by: pytest
Depends on: app/main.py (middleware), tests/conftest.py (client fixtures)
"""

from app.config import APP_VERSION


def test_request_id_header_present(client):
    """Every response should include an 8-char X-Request-ID."""
    resp = client.get("/health")
    assert len(resp.headers["X-Request-ID"]) == 8


def test_request_id_unique_per_request(client):
    ids = {client.get("/health").headers["X-Request-ID"] for _ in range(5)}
    assert len(ids) == 5


def test_health_returns_ok_and_version(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "version": APP_VERSION}


def test_security_headers(client):
    resp = client.get("/health")
    assert resp.headers.get("X-Content-Type-Options") == "nosniff"
    assert resp.headers.get("X-Frame-Options") == "DENY"
    assert resp.headers.get("X-XSS-Protection") == "1; mode=block"
    assert resp.headers.get("Referrer-Policy") == "strict-origin-when-cross-origin"


def test_security_headers_on_api_endpoint(client):
    resp = client.get("/api/tasks")
    assert resp.status_code == 200
    assert resp.headers.get("X-Frame-Options") == "DENY"
    assert "X-Request-ID" in resp.headers


def test_404_gets_request_id_and_error_body(client):
    resp = client.get("/nonexistent-route-xyz")
    assert resp.status_code == 404
    assert "X-Request-ID" in resp.headers
    data = resp.json()
    assert data["status_code"] == 404
    assert data["request_id"] == resp.headers["X-Request-ID"]


def test_service_error_uses_error_response(client):
    resp = client.get("/api/workflows/99999")
    assert resp.status_code == 404
    data = resp.json()
    assert data["error"] == "Workflow not found"
    assert data["status_code"] == 404


def test_validation_error_format(client):
    resp = client.post("/api/tasks/assign", json={})
    assert resp.status_code == 422
    data = resp.json()
    assert data["error"] == "Validation error"
    assert isinstance(data["detail"], list)


def test_catch_all_handler_registered():
    from app.main import app

    assert Exception in app.exception_handlers


class TestApiVersioning:
    def test_version_header(self, client):
        assert client.get("/health").headers.get("X-API-Version") == "v1"

    def test_old_api_path_still_works(self, anon_client):
        resp = anon_client.get("/api/admin/health")
        assert resp.status_code == 401
        assert resp.headers.get("X-API-Version") == "v1"

    def test_v1_prefix_rewrites_to_api(self, client):
        resp = client.get("/api/v1/admin/health")
        assert resp.status_code == 200
        assert resp.json()["database"] == "ok"

    def test_v1_prefix_on_nonexistent_returns_404(self, client):
        assert client.get("/api/v1/does-not-exist-12345").status_code == 404
