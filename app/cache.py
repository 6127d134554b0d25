import json

from loguru import logger
from redis.asyncio import Redis

from app.settings import BOOKINGS_CACHE_TTL, CANCEL_LOCK_TTL, REDIS_URL

_redis: Redis | None = None


def get_redis() -> Redis:
    global _redis
    if _redis is None:
        _redis = Redis.from_url(REDIS_URL, decode_responses=True)
    return _redis


# Views are cached per actor: the HMS API filters what each actor may see.


def _detail_key(booking_id: int | str, actor_id: str) -> str:
    return f"booking:{booking_id}:{actor_id}"


def _list_key(property_id: int | str | None, actor_id: str, filters_key: str) -> str:
    return f"bookings:{property_id or 'any'}:{actor_id}:{filters_key}"


def _cancel_lock_key(booking_id: int | str) -> str:
    return f"booking-cancel:{booking_id}"


async def get_booking_cache(booking_id: int | str, actor_id: str) -> dict | None:
    try:
        data = await get_redis().get(_detail_key(booking_id, actor_id))
        return json.loads(data) if data else None
    except Exception:
        logger.warning("Redis get failed, skipping booking cache", exc_info=True)
        return None


async def set_booking_cache(
    booking_id: int | str, actor_id: str, booking: dict
) -> None:
    try:
        await get_redis().setex(
            _detail_key(booking_id, actor_id), BOOKINGS_CACHE_TTL, json.dumps(booking)
        )
    except Exception:
        logger.warning("Redis set failed, skipping booking cache", exc_info=True)


async def get_list_cache(
    property_id: int | None, actor_id: str, filters_key: str
) -> dict | None:
    try:
        data = await get_redis().get(_list_key(property_id, actor_id, filters_key))
        return json.loads(data) if data else None
    except Exception:
        logger.warning("Redis get failed, skipping bookings list cache", exc_info=True)
        return None


async def set_list_cache(
    property_id: int | None, actor_id: str, filters_key: str, page: dict
) -> None:
    try:
        await get_redis().setex(
            _list_key(property_id, actor_id, filters_key),
            BOOKINGS_CACHE_TTL,
            json.dumps(page),
        )
    except Exception:
        logger.warning("Redis set failed, skipping bookings list cache", exc_info=True)


async def invalidate_booking_views(
    booking_id: int | str, property_id: int | str | None
) -> None:
    """
    Drop every actor's detail view of the booking and every cached list of
    its property. Lists fetched without a property filter may also hold the
    booking, so those go too.
    """
    patterns = [f"booking:{booking_id}:*", "bookings:any:*"]
    if property_id is not None:
        patterns.append(f"bookings:{property_id}:*")
    try:
        redis = get_redis()
        keys = []
        for pattern in patterns:
            async for key in redis.scan_iter(match=pattern):
                keys.append(key)
        if keys:
            await redis.delete(*keys)
    except Exception:
        logger.warning("Redis invalidate failed for booking views", exc_info=True)


async def acquire_cancel_lock(booking_id: int | str) -> bool:
    """
    Mark a cancellation as in flight. Returns False if another one already
    holds the marker. Without Redis the marker is skipped and True returned.
    """
    try:
        acquired = await get_redis().set(
            _cancel_lock_key(booking_id), "1", nx=True, ex=CANCEL_LOCK_TTL
        )
        return bool(acquired)
    except Exception:
        logger.warning(
            "Redis lock failed, cancellation not deduplicated", exc_info=True
        )
        return True


async def release_cancel_lock(booking_id: int | str) -> None:
    try:
        await get_redis().delete(_cancel_lock_key(booking_id))
    except Exception:
        logger.warning("Redis unlock failed for cancellation marker", exc_info=True)
