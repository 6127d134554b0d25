from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from functools import lru_cache
from urllib.parse import unquote, urlencode
from zoneinfo import ZoneInfo

import httpx
from fastapi import Depends, Header, HTTPException, status
from loguru import logger

from app import settings
from app.endpoints import Endpoint
from app.errors import UpstreamFailure, upstream_message
from app.models import PermissionAction
from app.permissions import (
    PermissionService,
    Pending,
    Redirect,
    permission_service,
)
from app.schemas import BookingListFilters


@dataclass
class CurrentUser:
    id: str
    username: str
    token: str | None = None


def get_current_user(
    x_user_id: str = Header(...),
    x_username: str = Header(...),
    authorization: str | None = Header(default=None),
) -> CurrentUser:
    """
    Reads the identity headers injected by the gateway after it validated the
    console session. The bearer token is kept so it can be forwarded to the
    HMS API, which evaluates the actor's roles itself.
    """
    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user identity from gateway",
        )

    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip() or None

    return CurrentUser(id=user_id, username=unquote(x_username), token=token)


def get_today() -> date:
    """Calendar date at the hotel; lifecycle guards compare against it."""
    return datetime.now(ZoneInfo(settings.HOTEL_TIMEZONE)).date()


# ---------------------------------------------------------------------------
# HmsClient: thin async wrapper around the hotel-management API
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _get_hms_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.hms_api_url,
        timeout=httpx.Timeout(settings.HTTP_TIMEOUT),
        follow_redirects=True,
    )


def _unwrap_booking(payload: dict) -> dict:
    booking = payload.get("booking", payload)
    return booking if isinstance(booking, dict) else payload


class HmsClient:
    """
    Thin async wrapper around the HMS REST API.
    Forwards the caller's bearer token; every failure becomes UpstreamFailure
    carrying the upstream message when there is one.
    """

    @property
    def _client(self) -> httpx.AsyncClient:
        return _get_hms_http_client()

    def _headers(self, user: CurrentUser) -> dict[str, str]:
        headers = {"X-User-Id": user.id}
        if user.token:
            headers["Authorization"] = f"Bearer {user.token}"
        return headers

    async def _request(
        self,
        method: str,
        url: str,
        user: CurrentUser,
        fallback: str,
        **kwargs,
    ) -> httpx.Response:
        try:
            resp = await self._client.request(
                method, url, headers=self._headers(user), **kwargs
            )
        except httpx.RequestError as exc:
            logger.error("HMS API unreachable on {} {}: {}", method, url, exc)
            raise UpstreamFailure(status.HTTP_502_BAD_GATEWAY, fallback) from exc

        if resp.status_code < 400:
            return resp

        try:
            payload = resp.json() if resp.content else None
        except ValueError:
            payload = None
        message = upstream_message(payload, fallback)

        if resp.status_code == 401:
            # session expired upstream: its cached permissions are stale too
            logger.warning("401 - Unauthorized for actor {}", user.id)
            permission_service.invalidate(user.id)
        elif resp.status_code == 403:
            logger.warning("403 - Forbidden for actor {} on {}", user.id, url)
        elif resp.status_code >= 500:
            logger.error("HMS API {} on {} {}", resp.status_code, method, url)
        raise UpstreamFailure(resp.status_code, message)

    async def get_sidebar_links(self, user: CurrentUser) -> list[dict]:
        """Permission records for the actor's role(s)."""
        resp = await self._request(
            "GET", "/roleSidebarLink", user, "Failed to load permissions"
        )
        links = resp.json().get("sidebarLinks")
        return links if isinstance(links, list) else []

    async def list_bookings(
        self, filters: BookingListFilters, user: CurrentUser
    ) -> dict:
        params: dict[str, str | int] = {
            "page": filters.page,
            "limit": filters.page_size,
            "scope": filters.scope.value,
            "status": filters.status.value,
        }
        if filters.property_id is not None:
            params["propertyId"] = filters.property_id
        if filters.from_date is not None:
            params["fromDate"] = filters.from_date.isoformat()
        if filters.to_date is not None:
            params["toDate"] = filters.to_date.isoformat()

        resp = await self._request(
            "GET", "/bookings", user, "Failed to load bookings", params=params
        )
        return resp.json()

    async def get_booking(self, booking_id: str, user: CurrentUser) -> dict | None:
        """Returns the booking dict or None if 404."""
        try:
            resp = await self._request(
                "GET", f"/bookings/{booking_id}", user, "Failed to load booking"
            )
        except UpstreamFailure as exc:
            if exc.status_code == 404:
                return None
            raise
        return _unwrap_booking(resp.json())

    async def update_booking_status(
        self, booking_id: str, new_status: str, user: CurrentUser
    ) -> dict:
        resp = await self._request(
            "PATCH",
            f"/bookings/{booking_id}",
            user,
            "Failed to update booking",
            json={"status": new_status},
        )
        return _unwrap_booking(resp.json())

    async def cancel_booking(
        self,
        booking_id: str,
        cancellation_fee: Decimal,
        comments: str | None,
        user: CurrentUser,
    ) -> dict:
        resp = await self._request(
            "POST",
            f"/bookings/{booking_id}/cancel",
            user,
            "Failed to cancel booking",
            json={"cancellation_fee": str(cancellation_fee), "comments": comments},
        )
        return _unwrap_booking(resp.json())


_hms_client = HmsClient()


def get_hms_client() -> HmsClient:
    return _hms_client


def get_permission_service() -> PermissionService:
    return permission_service


# ---------------------------------------------------------------------------
# Permission gating
# ---------------------------------------------------------------------------


def unauthorized_location(redirect: Redirect) -> str:
    return f"{redirect.to}?{urlencode({'endpoint': redirect.endpoint.value})}"


def require_permission(
    endpoint: Endpoint, action: PermissionAction = PermissionAction.READ
):
    """
    Factory that returns a dependency gating a route on the caller's cached
    permission for `endpoint`.

    Usage:
        @router.get("/bookings")
        async def route(user = Depends(require_permission(Endpoint.BOOKINGS))):
            ...

    No read access → 303 to the unauthorized-access page.
    Read access but not `action` → 403.
    """

    async def _dep(
        current_user: CurrentUser = Depends(get_current_user),
        service: PermissionService = Depends(get_permission_service),
        hms_client: HmsClient = Depends(get_hms_client),
    ) -> CurrentUser:
        await service.ensure_loaded(
            current_user.id,
            lambda: hms_client.get_sidebar_links(current_user),
            token=current_user.token,
        )
        decision = service.guard_access(current_user.id, endpoint)

        if isinstance(decision, Pending):
            # invalidated while we were waiting
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Permissions are still loading",
                headers={"Retry-After": "1"},
            )
        if isinstance(decision, Redirect):
            logger.info("Actor {} denied read on {}", current_user.id, endpoint)
            raise HTTPException(
                status_code=status.HTTP_303_SEE_OTHER,
                detail=f"No access to {endpoint.value}",
                headers={"Location": unauthorized_location(decision)},
            )

        if not service.resolve(current_user.id, endpoint).allows(action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing '{action.value}' permission on {endpoint.value}",
            )
        return current_user

    return _dep


# ---------------------------------------------------------------------------
# Pre-built permission dependencies
# ---------------------------------------------------------------------------

can_read_bookings = require_permission(Endpoint.BOOKINGS)
can_update_bookings = require_permission(Endpoint.BOOKINGS, PermissionAction.UPDATE)
