"""
Tests for the error envelope.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.error_handlers import register_error_handlers
from app.core.exceptions import (
    AuthenticationError, InvalidStateError, NotFoundError, PermissionDeniedError,
    TokenExpiredError, ValidationError
)
from app.core.request_logging import mask_token


@pytest.fixture
def error_app():
    app = FastAPI()
    register_error_handlers(app)

    errors = {
        "validation": ValidationError("Subject is required", field="subject"),
        "not-found": NotFoundError.for_resource("Query", 7),
        "expired": TokenExpiredError(),
        "state": InvalidStateError("Query is resolved"),
        "auth": AuthenticationError(),
        "forbidden": PermissionDeniedError(),
    }

    @app.get("/raise/{name}")
    def raise_error(name: str):
        raise errors[name]

    @app.get("/boom")
    def boom():
        raise RuntimeError("database password is hunter2")

    return TestClient(app, raise_server_exceptions=False)


@pytest.mark.parametrize("name,status,code", [
    ("validation", 400, "VALIDATION_ERROR_SUBJECT"),
    ("not-found", 404, "NOT_FOUND"),
    ("expired", 404, "NOT_FOUND"),
    ("state", 409, "INVALID_STATE"),
    ("auth", 401, "AUTH_ERROR"),
    ("forbidden", 403, "PERMISSION_DENIED"),
])
def test_portal_errors(error_app, name, status, code):
    response = error_app.get(f"/raise/{name}")

    assert response.status_code == status
    body = response.json()
    assert body["success"] is False
    error = body["error"]
    assert error["code"] == code
    assert error["statusCode"] == status
    assert error["path"] == f"/raise/{name}"
    assert error["timestamp"]
    assert error["message"]


def test_unhandled_error_hides_details(error_app):
    response = error_app.get("/boom")

    assert response.status_code == 500
    error = response.json()["error"]
    assert error["code"] == "INTERNAL_SERVER_ERROR"
    assert "hunter2" not in error["message"]


def test_unknown_route(client):
    response = client.get("/api/v1/nothing-here")

    assert response.status_code == 404
    assert response.json()["error"]["message"] == "Route /api/v1/nothing-here not found"


def test_bad_path_parameter_is_400(client, obc_headers):
    response = client.get("/api/v1/queries/not-a-number", headers=obc_headers)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_health_check(client):
    assert client.get("/").json() == {"status": "ok"}


@pytest.mark.parametrize("path,expected", [
    ("/api/v1/queries/public/abc123", "/api/v1/queries/public/***"),
    ("/api/v1/queries/public/abc123/reply", "/api/v1/queries/public/***/reply"),
    ("/api/v1/queries/42", "/api/v1/queries/42"),
])
def test_mask_token(path, expected):
    assert mask_token(path) == expected
