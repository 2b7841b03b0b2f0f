"""Tests for normalized error responses."""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from folio.core.errors import AppError, ConflictError, app_error_handler
from folio.core.middleware.request_id import RequestIdMiddleware
from folio.main import app


def test_missing_token_is_401_with_standard_shape():
    client = TestClient(app)
    resp = client.get("/v1/projects")
    assert resp.status_code == 401
    body = resp.json()
    rid = resp.headers.get("x-request-id")
    assert body["error"]["code"] == "unauthenticated"
    assert body["error"]["request_id"] == rid
    assert body["detail"] == body["error"]["message"]


def test_bad_token_is_401():
    client = TestClient(app)
    resp = client.get("/v1/projects", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json()["error"]["message"] == "Invalid token"


def test_unknown_route_is_not_found():
    client = TestClient(app)
    resp = client.get("/v1/nowhere")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"


def test_request_id_is_echoed():
    client = TestClient(app)
    resp = client.get("/healthz", headers={"x-request-id": "rid-123"})
    assert resp.headers["x-request-id"] == "rid-123"

    resp = client.get("/v1/projects", headers={"x-request-id": "rid-456"})
    assert resp.json()["error"]["request_id"] == "rid-456"


def test_app_error_status_codes_are_kept():
    test_app = FastAPI()
    test_app.add_middleware(RequestIdMiddleware)
    test_app.add_exception_handler(AppError, app_error_handler)

    @test_app.get("/boom")
    async def boom():
        raise ConflictError("Span changed")

    resp = TestClient(test_app).get("/boom")
    assert resp.status_code == 409
    assert resp.json()["error"] == {
        "code": "conflict",
        "message": "Span changed",
        "request_id": resp.headers["x-request-id"],
    }
