from __future__ import annotations

from decimal import Decimal

from fastapi import status
from loguru import logger

from app.cache import (
    acquire_cancel_lock,
    get_booking_cache,
    get_list_cache,
    invalidate_booking_views,
    release_cancel_lock,
    set_booking_cache,
    set_list_cache,
)
from app.deps import CurrentUser, HmsClient
from app.errors import RejectedTransition
from app.schemas import Booking, BookingListFilters, BookingPage, Pagination


def _authoritative(local: Booking, raw: dict) -> Booking:
    """Prefer the booking the HMS API returned; fall back to the local copy."""
    if "id" in raw and "booking_status" in raw:
        return Booking.model_validate(raw)
    return local


class BookingCRUD:
    """
    Booking reads and writes against the HMS API, with per-actor Redis views.
    Lifecycle rules are checked by the caller before any write reaches here.
    """

    async def list_bookings(
        self,
        filters: BookingListFilters,
        client: HmsClient,
        user: CurrentUser,
    ) -> BookingPage:
        key = filters.cache_key()
        cached = await get_list_cache(filters.property_id, user.id, key)
        if cached is not None:
            logger.debug("Cache hit for bookings list: {}", key)
            return BookingPage.model_validate(cached)

        logger.debug("Cache miss for bookings list: {}", key)
        raw = await client.list_bookings(filters, user)
        page = BookingPage(
            filters=filters,
            bookings=[Booking.model_validate(b) for b in raw.get("bookings") or []],
            pagination=Pagination.model_validate(
                raw.get("pagination") or {"page": filters.page}
            ),
        )
        await set_list_cache(
            filters.property_id, user.id, key, page.model_dump(mode="json")
        )
        return page

    async def get_booking(
        self,
        booking_id: str,
        client: HmsClient,
        user: CurrentUser,
    ) -> Booking | None:
        cached = await get_booking_cache(booking_id, user.id)
        if cached is not None:
            logger.debug("Cache hit for booking {}", booking_id)
            return Booking.model_validate(cached)

        raw = await client.get_booking(booking_id, user)
        if raw is None:
            return None
        booking = Booking.model_validate(raw)
        await set_booking_cache(booking_id, user.id, booking.model_dump(mode="json"))
        return booking

    async def update_booking_status(
        self,
        updated: Booking,
        client: HmsClient,
        user: CurrentUser,
    ) -> Booking:
        raw = await client.update_booking_status(
            str(updated.id), updated.booking_status.value, user
        )
        await invalidate_booking_views(updated.id, updated.property_id)
        logger.info(
            "Booking {} moved to {} by actor {}",
            updated.id,
            updated.booking_status,
            user.id,
        )
        return _authoritative(updated, raw)

    async def cancel_booking(
        self,
        cancelled: Booking,
        client: HmsClient,
        user: CurrentUser,
    ) -> Booking:
        if not await acquire_cancel_lock(cancelled.id):
            raise RejectedTransition(
                "A cancellation for this booking is already in progress.",
                status_code=status.HTTP_409_CONFLICT,
            )
        try:
            raw = await client.cancel_booking(
                str(cancelled.id),
                cancelled.cancellation_fee or Decimal("0"),
                cancelled.cancellation_comment,
                user,
            )
        except BaseException:
            await release_cancel_lock(cancelled.id)
            raise

        # the marker stays until its TTL so a resubmit built on a stale view
        # is refused rather than sent upstream
        await invalidate_booking_views(cancelled.id, cancelled.property_id)
        logger.info(
            "Booking {} cancelled by actor {} (fee {})",
            cancelled.id,
            user.id,
            cancelled.cancellation_fee,
        )
        return _authoritative(cancelled, raw)


booking_crud = BookingCRUD()
