from __future__ import annotations

from fastapi.testclient import TestClient

from coursehub.core.config import SETTINGS
from coursehub.main import app

client = TestClient(app)


def test_app_title() -> None:
    assert app.title == "coursehub"


def test_routers_are_mounted() -> None:
    paths = {route.path for route in app.routes}
    for expected in (
        "/health",
        "/ready",
        "/metrics",
        "/v1/courses",
        "/v1/progress/me",
        "/v1/certificates/verify/{code}",
        "/v1/certificates/{certificate_id}",
    ):
        assert expected in paths


def test_literal_certificate_paths_win_over_id() -> None:
    paths = [route.path for route in app.routes]
    by_id = paths.index("/v1/certificates/{certificate_id}")
    for literal in ("/v1/certificates/me", "/v1/certificates/analytics/overview"):
        assert paths.index(literal) < by_id


def test_cors_allows_frontend_origin() -> None:
    resp = client.options(
        "/v1/courses",
        headers={
            "Origin": SETTINGS.frontend_url,
            "Access-Control-Request-Method": "GET",
        },
    )
    assert resp.headers["access-control-allow-origin"] == SETTINGS.frontend_url


def test_protected_route_rejects_missing_token() -> None:
    resp = client.get("/v1/progress/me")
    assert resp.status_code == 401
    assert resp.headers["www-authenticate"] == "Bearer"


def test_protected_route_rejects_garbage_token() -> None:
    resp = client.get(
        "/v1/progress/me", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid token"
