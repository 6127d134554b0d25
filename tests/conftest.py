"""
Shared pytest fixtures available to every test file automatically.
No imports needed in test files: pytest discovers this by convention.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.deps import (
    can_read_bookings,
    can_update_bookings,
    get_current_user,
    get_hms_client,
    get_permission_service,
    get_today,
)
from app.errors import register_exception_handlers
from app.permissions import PermissionService
from app.routers.booking import router as booking_router
from app.routers.permissions import router as permissions_router

from .factories import TODAY, full_access, make_user

# ---------------------------------------------------------------------------
# Default no-op client mock: prevents real HTTP calls in tests
# ---------------------------------------------------------------------------


def noop_hms_client(sidebar_links: list[dict] | None = None) -> MagicMock:
    mock = MagicMock()
    mock.get_sidebar_links = AsyncMock(
        return_value=sidebar_links if sidebar_links is not None else [full_access()]
    )
    mock.list_bookings = AsyncMock(return_value={"bookings": [], "pagination": {}})
    mock.get_booking = AsyncMock(return_value=None)
    mock.update_booking_status = AsyncMock(return_value={})
    mock.cancel_booking = AsyncMock(return_value={})
    return mock


def _bare_app() -> FastAPI:
    app = FastAPI()
    app.include_router(booking_router)
    app.include_router(permissions_router)
    register_exception_handlers(app)
    return app


# ---------------------------------------------------------------------------
# App builder: used by all client fixtures
# ---------------------------------------------------------------------------


def build_app(current_user, hms_client=None, today=TODAY) -> FastAPI:
    """
    Fresh FastAPI app with auth/permission dependencies overridden to return
    `current_user` unconditionally and "today" pinned to `today`.

    Pass `hms_client` to inject a custom mock; defaults to a no-op mock.
    """
    app = _bare_app()

    async def _user():
        return current_user

    for dep in (can_read_bookings, can_update_bookings, get_current_user):
        app.dependency_overrides[dep] = _user

    hc = hms_client if hms_client is not None else noop_hms_client()
    app.dependency_overrides[get_hms_client] = lambda: hc
    app.dependency_overrides[get_today] = lambda: today
    app.dependency_overrides[get_permission_service] = lambda: PermissionService()
    return app


def build_gated_app(
    current_user,
    service: PermissionService,
    hms_client=None,
    today=TODAY,
) -> FastAPI:
    """
    App where the real permission dependencies run against `service` and
    the HMS client mock. Only the identity headers are bypassed.
    """
    app = _bare_app()

    async def _user():
        return current_user

    hc = hms_client if hms_client is not None else noop_hms_client()
    app.dependency_overrides[get_current_user] = _user
    app.dependency_overrides[get_hms_client] = lambda: hc
    app.dependency_overrides[get_permission_service] = lambda: service
    app.dependency_overrides[get_today] = lambda: today
    return app


# ---------------------------------------------------------------------------
# Reusable client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def client():
    return TestClient(build_app(make_user()), raise_server_exceptions=True)


@pytest.fixture()
def client_factory():
    def _make(current_user=None, hms_client=None, today=TODAY) -> TestClient:
        return TestClient(
            build_app(current_user or make_user(), hms_client=hms_client, today=today),
            raise_server_exceptions=True,
        )

    return _make


@pytest.fixture()
def permission_service():
    return PermissionService()


@pytest.fixture()
def gated_client_factory(permission_service):
    def _make(sidebar_links: list[dict], current_user=None, hms_client=None):
        hc = hms_client if hms_client is not None else noop_hms_client(sidebar_links)
        app = build_gated_app(current_user or make_user(), permission_service, hc)
        return TestClient(app, raise_server_exceptions=True), hc

    return _make


@pytest.fixture()
def anon_app():
    """
    Bare app with NO dependency overrides.
    Use this when you want real header parsing to run so you can assert 401/422.
    """
    return _bare_app()
