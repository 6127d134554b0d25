import os

hms_api_url = os.environ.get("HMS_API_URL", "http://localhost:8000")
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
HOTEL_TIMEZONE = os.environ.get("HOTEL_TIMEZONE", "UTC")
BOOKINGS_CACHE_TTL = int(os.environ.get("BOOKINGS_CACHE_TTL", "30"))
CANCEL_LOCK_TTL = int(os.environ.get("CANCEL_LOCK_TTL", "15"))
UNAUTHORIZED_REDIRECT = os.environ.get("UNAUTHORIZED_REDIRECT", "/unauthorized-access")
HTTP_TIMEOUT = float(os.environ.get("HTTP_TIMEOUT", "5.0"))
PERMISSION_SESSION_LIMIT = int(os.environ.get("PERMISSION_SESSION_LIMIT", "1000"))
