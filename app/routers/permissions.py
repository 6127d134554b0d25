from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.deps import (
    CurrentUser,
    HmsClient,
    get_current_user,
    get_hms_client,
    get_permission_service,
)
from app.endpoints import ENDPOINT_DESCRIPTIONS, Endpoint, parse_endpoint
from app.permissions import PermissionService
from app.schemas import PermissionRecord, PermissionTable, UnauthorizedAccess

router = APIRouter(tags=["permissions"])


def _endpoint_or_422(raw: str) -> Endpoint:
    try:
        return parse_endpoint(raw)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)
        ) from None


def _table(service: PermissionService, actor_id: str) -> PermissionTable:
    return PermissionTable(
        status=service.status(actor_id),
        permissions=service.records(actor_id),
        error=service.error(actor_id),
    )


@router.get("/permissions", response_model=PermissionTable)
async def get_permissions(
    current_user: CurrentUser = Depends(get_current_user),
    service: PermissionService = Depends(get_permission_service),
    hms_client: HmsClient = Depends(get_hms_client),
) -> PermissionTable:
    """The caller's whole table, loading it first if this session has none."""
    await service.ensure_loaded(
        current_user.id,
        lambda: hms_client.get_sidebar_links(current_user),
        token=current_user.token,
    )
    return _table(service, current_user.id)


@router.get("/permissions/resolve", response_model=PermissionRecord | None)
async def resolve_permission(
    endpoint: str = Query(...),
    current_user: CurrentUser = Depends(get_current_user),
    service: PermissionService = Depends(get_permission_service),
) -> PermissionRecord | None:
    """
    Selector variant: looks at whatever is cached right now, never fetches
    and never redirects. `null` while loading or when the endpoint is absent.
    """
    return service.select_permission(current_user.id, _endpoint_or_422(endpoint))


@router.post("/permissions/refresh", response_model=PermissionTable)
async def refresh_permissions(
    current_user: CurrentUser = Depends(get_current_user),
    service: PermissionService = Depends(get_permission_service),
    hms_client: HmsClient = Depends(get_hms_client),
) -> PermissionTable:
    """Drop the cached table and fetch it again, e.g. after a role change."""
    service.invalidate(current_user.id)
    await service.ensure_loaded(
        current_user.id,
        lambda: hms_client.get_sidebar_links(current_user),
        token=current_user.token,
    )
    return _table(service, current_user.id)


@router.get("/unauthorized-access", response_model=UnauthorizedAccess)
async def unauthorized_access(
    endpoint: str = Query(default="Unknown"),
) -> UnauthorizedAccess:
    try:
        screen = ENDPOINT_DESCRIPTIONS[parse_endpoint(endpoint)]
    except ValueError:
        screen = None
    message = "You do not have permission to access this page."
    if screen:
        message = f"{message} ({screen})"
    return UnauthorizedAccess(endpoint=endpoint, message=message)
