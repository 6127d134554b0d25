from enum import StrEnum


class BookingStatus(StrEnum):
    CONFIRMED = "CONFIRMED"  # assigned by the reservation flow, sole entry state
    CHECKED_IN = "CHECKED_IN"  # guest arrived
    CHECKED_OUT = "CHECKED_OUT"  # guest left
    CANCELLED = "CANCELLED"  # terminal, reached only through cancellation
    NO_SHOW = "NO_SHOW"  # guest never arrived


class BookingScope(StrEnum):
    UPCOMING = "upcoming"
    PAST = "past"
    ALL = "all"


class FilterDimension(StrEnum):
    STATUS = "status"
    SCOPE = "scope"


class PermissionStatus(StrEnum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class PermissionAction(StrEnum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
