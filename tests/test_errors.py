"""Tests for app/errors.py and the assembled application."""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.errors import (
    RejectedTransition,
    UpstreamFailure,
    register_exception_handlers,
    upstream_message,
)
from app.main import create_app


def _raising_app(exc: Exception) -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/boom")
    async def _boom():
        raise exc

    return app


class TestUpstreamMessage:
    def test_nested_message_wins(self):
        payload = {"data": {"message": "Room not ready"}, "message": "Bad request"}
        assert upstream_message(payload, "fallback") == "Room not ready"

    def test_top_level_message(self):
        assert upstream_message({"message": "Invalid status"}, "fallback") == (
            "Invalid status"
        )

    def test_fallback_for_empty_or_foreign_payloads(self):
        for payload in (None, {}, {"data": "oops"}, ["message"], {"message": ""}):
            assert upstream_message(payload, "fallback") == "fallback"


class TestHttpStatus:
    def test_client_errors_are_mirrored(self):
        assert UpstreamFailure(409, "x").http_status == 409
        assert UpstreamFailure(404, "x").http_status == 404

    def test_everything_else_is_bad_gateway(self):
        for code in (500, 503, 302):
            assert UpstreamFailure(code, "x").http_status == 502


class TestHandlers:
    def test_rejected_transition_defaults_to_400(self):
        client = TestClient(_raising_app(RejectedTransition("Nope.")))
        resp = client.get("/boom")
        assert resp.status_code == 400
        assert resp.json() == {"detail": "Nope."}

    def test_rejected_transition_custom_status(self):
        exc = RejectedTransition("Confirm first.", status_code=428)
        resp = TestClient(_raising_app(exc)).get("/boom")
        assert resp.status_code == 428

    def test_upstream_failure_body(self):
        exc = UpstreamFailure(503, "Failed to load bookings")
        resp = TestClient(_raising_app(exc)).get("/boom")
        assert resp.status_code == 502
        assert resp.json() == {"detail": "Failed to load bookings"}


class TestCreateApp:
    def test_routes_registered(self):
        paths = create_app().openapi()["paths"]
        assert set(paths["/bookings/"]) == {"get"}
        assert set(paths["/bookings/{booking_id}"]) == {"get"}
        assert set(paths["/bookings/{booking_id}/status"]) == {"patch"}
        for action in ("status/proposal", "check-in", "check-out", "no-show", "cancel"):
            assert set(paths[f"/bookings/{{booking_id}}/{action}"]) == {"post"}
        assert set(paths["/permissions"]) == {"get"}
        assert set(paths["/permissions/resolve"]) == {"get"}
        assert set(paths["/permissions/refresh"]) == {"post"}
        assert set(paths["/unauthorized-access"]) == {"get"}
