from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app import settings
from app.endpoints import Endpoint
from app.models import BookingScope, BookingStatus, PermissionAction, PermissionStatus


class BookingRoom(BaseModel):
    room_id: int | str
    room_no: int | str | None = None
    room_type: str | None = None

    model_config = ConfigDict(extra="allow")


class Booking(BaseModel):
    """
    A booking as returned by the HMS API.
    Only the fields the lifecycle decisions need are typed; financial and
    guest-count fields ride along untouched.
    """

    id: int | str
    property_id: int | str | None = None
    booking_status: BookingStatus
    estimated_arrival: date | None = None
    estimated_departure: date | None = None
    rooms: list[BookingRoom] = Field(default_factory=list)
    cancellation_fee: Decimal | None = None
    cancellation_comment: str | None = None

    model_config = ConfigDict(extra="allow")

    @field_validator("estimated_arrival", "estimated_departure", mode="before")
    @classmethod
    def to_calendar_date(cls, v: object) -> object:
        """
        Time of day is irrelevant to lifecycle decisions; keep the date only.
        Aware datetimes are read on the hotel's calendar first.
        """
        if v is None or v == "":
            return None
        if isinstance(v, str) and len(v) > 10:
            v = datetime.fromisoformat(v)
        if isinstance(v, datetime):
            if v.tzinfo is not None:
                v = v.astimezone(ZoneInfo(settings.HOTEL_TIMEZONE))
            return v.date()
        return v


class Pagination(BaseModel):
    page: int = 1
    total_pages: int = Field(default=1, alias="totalPages")
    total: int | None = None

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class BookingListFilters(BaseModel):
    """Bind to a FastAPI route via Depends(BookingListFilters)."""

    property_id: int | None = None
    scope: BookingScope = BookingScope.UPCOMING
    status: BookingStatus = BookingStatus.CONFIRMED
    from_date: date | None = None
    to_date: date | None = None

    # Pagination
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1, le=100)

    model_config = ConfigDict(frozen=True)

    def cache_key(self) -> str:
        return ":".join(
            str(part or "")
            for part in (
                self.scope,
                self.status,
                self.from_date,
                self.to_date,
                self.page,
                self.page_size,
            )
        )


class BookingPage(BaseModel):
    filters: BookingListFilters
    bookings: list[Booking]
    pagination: Pagination


class BookingActions(BaseModel):
    can_check_in: bool
    can_check_out: bool
    can_no_show: bool
    can_cancel: bool
    can_update_status: bool
    next_statuses: list[BookingStatus]


class BookingDetail(BaseModel):
    booking: Booking
    actions: BookingActions


class BookingStatusUpdate(BaseModel):
    status: BookingStatus
    confirm: bool = False


class StatusChangeProposal(BaseModel):
    booking_id: int | str
    from_status: BookingStatus
    to_status: BookingStatus
    message: str


class BookingCancellation(BaseModel):
    cancellation_fee: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    comments: str | None = Field(default=None, max_length=1000)


class PermissionRecord(BaseModel):
    endpoint: Endpoint
    can_read: bool = False
    can_create: bool = False
    can_update: bool = False
    can_delete: bool = False

    model_config = ConfigDict(frozen=True)

    @classmethod
    def denied(cls, endpoint: Endpoint) -> PermissionRecord:
        return cls(endpoint=endpoint)

    def allows(self, action: PermissionAction) -> bool:
        return bool(getattr(self, f"can_{action.value}"))


class PermissionTable(BaseModel):
    status: PermissionStatus
    permissions: list[PermissionRecord]
    error: str | None = None


class UnauthorizedAccess(BaseModel):
    endpoint: str
    message: str
