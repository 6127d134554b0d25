"""
Booking lifecycle decisions.

Everything here is a pure function of its inputs: no I/O, no module state.
Callers pass `today` explicitly so the same booking can be evaluated for any
calendar date.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import status
from loguru import logger

from app.errors import RejectedTransition
from app.models import BookingScope, BookingStatus, FilterDimension
from app.schemas import (
    Booking,
    BookingActions,
    BookingListFilters,
    StatusChangeProposal,
)

# ---------------------------------------------------------------------------
# Scope partition
# ---------------------------------------------------------------------------

REQUIRED_SCOPE_BY_STATUS: dict[BookingStatus, BookingScope] = {
    BookingStatus.CONFIRMED: BookingScope.UPCOMING,
    BookingStatus.CHECKED_IN: BookingScope.UPCOMING,
    BookingStatus.CHECKED_OUT: BookingScope.PAST,
    BookingStatus.CANCELLED: BookingScope.ALL,
    BookingStatus.NO_SHOW: BookingScope.ALL,
}

# None means every status is acceptable
_ALLOWED_STATUSES_BY_SCOPE: dict[BookingScope, frozenset[BookingStatus] | None] = {
    BookingScope.UPCOMING: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN}
    ),
    BookingScope.PAST: frozenset({BookingStatus.CHECKED_OUT}),
    BookingScope.ALL: None,
}

_DEFAULT_STATUS_BY_SCOPE: dict[BookingScope, BookingStatus] = {
    BookingScope.UPCOMING: BookingStatus.CONFIRMED,
    BookingScope.PAST: BookingStatus.CHECKED_OUT,
    BookingScope.ALL: BookingStatus.CONFIRMED,
}

# Statuses reachable through the generic update path. CANCELLED is excluded:
# it has its own action with fee and comment.
UPDATABLE_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.CHECKED_IN, BookingStatus.CHECKED_OUT, BookingStatus.NO_SHOW}
)

# Display order for next-status choices
_STATUS_ORDER = list(BookingStatus)


def compute_scope(status: BookingStatus) -> BookingScope:
    return REQUIRED_SCOPE_BY_STATUS[status]


def status_allowed_in_scope(status: BookingStatus, scope: BookingScope) -> bool:
    allowed = _ALLOWED_STATUSES_BY_SCOPE[scope]
    return allowed is None or status in allowed


def reconcile_filters(
    filters: BookingListFilters,
    changed: FilterDimension,
) -> BookingListFilters:
    """
    Bring scope and status back into agreement after one of them changed.

      status changed → scope follows the status's required scope
      scope changed  → status falls back to the scope's default if invalid

    Any correction resets pagination to the first page. Applying the same
    reconciliation twice is a no-op.
    """
    if changed == FilterDimension.STATUS:
        required = compute_scope(filters.status)
        if required != filters.scope:
            return filters.model_copy(update={"scope": required, "page": 1})
        return filters

    if not status_allowed_in_scope(filters.status, filters.scope):
        return filters.model_copy(
            update={"status": _DEFAULT_STATUS_BY_SCOPE[filters.scope], "page": 1}
        )
    return filters


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


def guard_check_in(booking: Booking, today: date) -> bool:
    arrival = booking.estimated_arrival
    return arrival is not None and today >= arrival


def guard_check_out(booking: Booking) -> bool:
    return booking.booking_status == BookingStatus.CHECKED_IN


def guard_no_show(booking: Booking, today: date) -> bool:
    departure = booking.estimated_departure
    return departure is not None and today > departure


def guard_cancel(booking: Booking, today: date) -> bool:
    departure = booking.estimated_departure
    return departure is not None and today < departure


def legal_next_statuses(current: BookingStatus) -> frozenset[BookingStatus]:
    """
    Statuses selectable in the generic update control. The current status is
    always included so "no change" is selectable; a cancelled booking gets an
    empty set, which disables the control.
    """
    if current == BookingStatus.CANCELLED:
        return frozenset()
    return UPDATABLE_STATUSES | {current}


def available_actions(booking: Booking, today: date) -> BookingActions:
    next_statuses = legal_next_statuses(booking.booking_status)
    return BookingActions(
        can_check_in=guard_check_in(booking, today),
        can_check_out=guard_check_out(booking),
        can_no_show=guard_no_show(booking, today),
        can_cancel=guard_cancel(booking, today),
        can_update_status=bool(next_statuses),
        next_statuses=[s for s in _STATUS_ORDER if s in next_statuses],
    )


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def propose_status_change(
    booking: Booking, new_status: BookingStatus
) -> StatusChangeProposal:
    """First phase of a status change: validate and describe, apply nothing."""
    current = booking.booking_status
    if current == BookingStatus.CANCELLED:
        raise RejectedTransition(
            "Booking is cancelled; its status can no longer be changed."
        )
    if new_status == current:
        raise RejectedTransition(f"Booking is already {current}.")
    if new_status not in legal_next_statuses(current):
        if new_status == BookingStatus.CANCELLED:
            raise RejectedTransition(
                "Use the cancellation action to cancel a booking."
            )
        raise RejectedTransition(
            f"Cannot change status from '{current}' to '{new_status}'. "
            f"Allowed: {sorted(s.value for s in legal_next_statuses(current))}"
        )
    return StatusChangeProposal(
        booking_id=booking.id,
        from_status=current,
        to_status=new_status,
        message=(
            f"You are about to change booking status from {current} "
            f"to {new_status}."
        ),
    )


def apply_status_change(
    booking: Booking,
    new_status: BookingStatus,
    confirmed: bool = False,
) -> Booking:
    """
    Second phase of a status change. Returns the updated copy; the input
    booking is left untouched.
    """
    proposal = propose_status_change(booking, new_status)
    if not confirmed:
        raise RejectedTransition(
            f"{proposal.message} Confirm the change to apply it.",
            status_code=status.HTTP_428_PRECONDITION_REQUIRED,
        )
    if (
        proposal.from_status == BookingStatus.CONFIRMED
        and proposal.to_status == BookingStatus.CHECKED_OUT
    ):
        logger.info(
            "Booking {} checked out without a recorded check-in", booking.id
        )
    return booking.model_copy(update={"booking_status": new_status})


def apply_cancellation(
    booking: Booking,
    fee: Decimal,
    comment: str | None,
    today: date,
) -> Booking:
    if booking.booking_status == BookingStatus.CANCELLED:
        raise RejectedTransition("Booking is already cancelled.")
    if not guard_cancel(booking, today):
        raise RejectedTransition(
            "Booking can only be cancelled before its departure date."
        )
    if fee < 0:
        raise RejectedTransition("Cancellation fee cannot be negative.")
    return booking.model_copy(
        update={
            "booking_status": BookingStatus.CANCELLED,
            "cancellation_fee": fee,
            "cancellation_comment": comment,
        }
    )


# ---------------------------------------------------------------------------
# Dedicated guest-facing actions
# ---------------------------------------------------------------------------


def check_in(booking: Booking, today: date) -> Booking:
    if not guard_check_in(booking, today):
        raise RejectedTransition("Check-in opens on the arrival date.")
    return apply_status_change(booking, BookingStatus.CHECKED_IN, confirmed=True)


def check_out(booking: Booking) -> Booking:
    if not guard_check_out(booking):
        raise RejectedTransition("Only checked-in bookings can be checked out.")
    return apply_status_change(booking, BookingStatus.CHECKED_OUT, confirmed=True)


def mark_no_show(booking: Booking, today: date) -> Booking:
    if not guard_no_show(booking, today):
        raise RejectedTransition(
            "A booking can be marked no-show only after its departure date."
        )
    return apply_status_change(booking, BookingStatus.NO_SHOW, confirmed=True)
