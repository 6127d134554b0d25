from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app import lifecycle
from app.crud import booking_crud
from app.deps import (
    CurrentUser,
    HmsClient,
    can_read_bookings,
    can_update_bookings,
    get_hms_client,
    get_today,
)
from app.models import FilterDimension
from app.schemas import (
    Booking,
    BookingCancellation,
    BookingDetail,
    BookingListFilters,
    BookingPage,
    BookingStatusUpdate,
    StatusChangeProposal,
)

router = APIRouter(prefix="/bookings", tags=["bookings"])


async def _load_booking(
    booking_id: str, hms_client: HmsClient, current_user: CurrentUser
) -> Booking:
    booking = await booking_crud.get_booking(booking_id, hms_client, current_user)
    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )
    return booking


def _detail(booking: Booking, today: date) -> BookingDetail:
    return BookingDetail(
        booking=booking, actions=lifecycle.available_actions(booking, today)
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("/", response_model=BookingPage)
async def list_bookings(
    filters: BookingListFilters = Depends(),
    changed: FilterDimension = Query(default=FilterDimension.STATUS),
    current_user: CurrentUser = Depends(can_read_bookings),
    hms_client: HmsClient = Depends(get_hms_client),
) -> BookingPage:
    """
    `changed` names the filter the user just touched; the other one is
    corrected to match before the HMS API is queried. The effective filters
    are echoed back so the console can update its controls.
    """
    if filters.from_date and filters.to_date and filters.to_date < filters.from_date:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail="to_date must not be before from_date",
        )
    reconciled = lifecycle.reconcile_filters(filters, changed)
    return await booking_crud.list_bookings(reconciled, hms_client, current_user)


@router.get("/{booking_id}", response_model=BookingDetail)
async def get_booking(
    booking_id: str,
    current_user: CurrentUser = Depends(can_read_bookings),
    hms_client: HmsClient = Depends(get_hms_client),
    today: date = Depends(get_today),
) -> BookingDetail:
    booking = await _load_booking(booking_id, hms_client, current_user)
    return _detail(booking, today)


# ---------------------------------------------------------------------------
# Generic status update: propose, then confirm
# ---------------------------------------------------------------------------


@router.post("/{booking_id}/status/proposal", response_model=StatusChangeProposal)
async def propose_status_change(
    booking_id: str,
    payload: BookingStatusUpdate,
    current_user: CurrentUser = Depends(can_update_bookings),
    hms_client: HmsClient = Depends(get_hms_client),
) -> StatusChangeProposal:
    booking = await _load_booking(booking_id, hms_client, current_user)
    return lifecycle.propose_status_change(booking, payload.status)


@router.patch("/{booking_id}/status", response_model=BookingDetail)
async def update_booking_status(
    booking_id: str,
    payload: BookingStatusUpdate,
    current_user: CurrentUser = Depends(can_update_bookings),
    hms_client: HmsClient = Depends(get_hms_client),
    today: date = Depends(get_today),
) -> BookingDetail:
    booking = await _load_booking(booking_id, hms_client, current_user)
    updated = lifecycle.apply_status_change(booking, payload.status, payload.confirm)
    saved = await booking_crud.update_booking_status(updated, hms_client, current_user)
    return _detail(saved, today)


# ---------------------------------------------------------------------------
# Dedicated guest-facing actions
# ---------------------------------------------------------------------------


@router.post("/{booking_id}/check-in", response_model=BookingDetail)
async def check_in(
    booking_id: str,
    current_user: CurrentUser = Depends(can_update_bookings),
    hms_client: HmsClient = Depends(get_hms_client),
    today: date = Depends(get_today),
) -> BookingDetail:
    booking = await _load_booking(booking_id, hms_client, current_user)
    updated = lifecycle.check_in(booking, today)
    saved = await booking_crud.update_booking_status(updated, hms_client, current_user)
    return _detail(saved, today)


@router.post("/{booking_id}/check-out", response_model=BookingDetail)
async def check_out(
    booking_id: str,
    current_user: CurrentUser = Depends(can_update_bookings),
    hms_client: HmsClient = Depends(get_hms_client),
    today: date = Depends(get_today),
) -> BookingDetail:
    booking = await _load_booking(booking_id, hms_client, current_user)
    updated = lifecycle.check_out(booking)
    saved = await booking_crud.update_booking_status(updated, hms_client, current_user)
    return _detail(saved, today)


@router.post("/{booking_id}/no-show", response_model=BookingDetail)
async def mark_no_show(
    booking_id: str,
    current_user: CurrentUser = Depends(can_update_bookings),
    hms_client: HmsClient = Depends(get_hms_client),
    today: date = Depends(get_today),
) -> BookingDetail:
    booking = await _load_booking(booking_id, hms_client, current_user)
    updated = lifecycle.mark_no_show(booking, today)
    saved = await booking_crud.update_booking_status(updated, hms_client, current_user)
    return _detail(saved, today)


@router.post("/{booking_id}/cancel", response_model=BookingDetail)
async def cancel_booking(
    booking_id: str,
    payload: BookingCancellation,
    current_user: CurrentUser = Depends(can_update_bookings),
    hms_client: HmsClient = Depends(get_hms_client),
    today: date = Depends(get_today),
) -> BookingDetail:
    booking = await _load_booking(booking_id, hms_client, current_user)
    cancelled = lifecycle.apply_cancellation(
        booking, payload.cancellation_fee, payload.comments, today
    )
    saved = await booking_crud.cancel_booking(cancelled, hms_client, current_user)
    return _detail(saved, today)
