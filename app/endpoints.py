from enum import StrEnum


class Endpoint(StrEnum):
    # Front desk
    BOOKINGS = "/bookings"
    RESERVATION = "/reservation"
    ROOMS_STATUS = "/rooms-status"
    ROOMS_BY_FLOOR = "/rooms-by-floor"
    GUESTS = "/guests"
    ENQUIRIES = "/enquiries"

    # Back office
    PROPERTIES = "/properties"
    ROOM_TYPE_PRICES = "/room-type-prices"
    PACKAGES = "/packages"
    PAYMENTS = "/payments"
    STAFF = "/staff"
    ROLES = "/roles"
    VENDORS = "/vendors"

    # Food & beverage, laundry
    ORDERS = "/orders"
    MENU_MASTER = "/menu-master"
    KITCHEN_INVENTORY = "/kitchen-inventory"
    RESTAURANT_TABLES = "/restaurant-tables"
    LAUNDRY_ORDERS = "/laundry-orders"
    LAUNDRY_PRICING = "/laundry-pricing"


ENDPOINT_DESCRIPTIONS: dict[str, str] = {
    Endpoint.BOOKINGS: "Browse bookings, change their status and cancel them.",
    Endpoint.RESERVATION: "Create new reservations.",
    Endpoint.ROOMS_STATUS: "Room status board for a property and date.",
    Endpoint.ROOMS_BY_FLOOR: "Rooms grouped by floor.",
    Endpoint.GUESTS: "Guest records.",
    Endpoint.ENQUIRIES: "Booking enquiries.",
    Endpoint.PROPERTIES: "Properties owned by the account.",
    Endpoint.ROOM_TYPE_PRICES: "Base prices per room type.",
    Endpoint.PACKAGES: "Stay packages.",
    Endpoint.PAYMENTS: "Booking payments.",
    Endpoint.STAFF: "Staff accounts.",
    Endpoint.ROLES: "Roles and their sidebar permissions.",
    Endpoint.VENDORS: "Vendors.",
    Endpoint.ORDERS: "Restaurant orders.",
    Endpoint.MENU_MASTER: "Restaurant menu.",
    Endpoint.KITCHEN_INVENTORY: "Kitchen inventory.",
    Endpoint.RESTAURANT_TABLES: "Restaurant tables.",
    Endpoint.LAUNDRY_ORDERS: "Laundry orders.",
    Endpoint.LAUNDRY_PRICING: "Laundry pricing.",
}


def parse_endpoint(raw: str) -> Endpoint:
    """
    Validate a raw endpoint string against the known console screens.
    Trailing slashes are ignored; a missing leading slash is added.
    Raises ValueError for anything else.
    """
    value = raw.strip()
    if not value.startswith("/"):
        value = f"/{value}"
    if len(value) > 1:
        value = value.rstrip("/")
    try:
        return Endpoint(value)
    except ValueError:
        raise ValueError(f"Unknown endpoint: {raw!r}") from None
