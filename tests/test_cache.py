"""
Tests for app/cache.py.
Redis is replaced by a MagicMock; a broken Redis must never fail a request.
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

from redis.exceptions import ConnectionError as RedisConnectionError

from app import cache
from app.settings import BOOKINGS_CACHE_TTL, CANCEL_LOCK_TTL

from .factories import ACTOR_ID, BOOKING_ID, PROPERTY_ID, booking_dict

REDIS_PATH = "app.cache.get_redis"


def _redis(keys: list[str] | None = None) -> MagicMock:
    redis = MagicMock()
    redis.get = AsyncMock(return_value=None)
    redis.setex = AsyncMock()
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock()

    async def _scan_iter(match=None):
        for key in keys or []:
            if match is None or key.startswith(match.rstrip("*")):
                yield key

    redis.scan_iter = MagicMock(side_effect=_scan_iter)
    return redis


def _broken_redis() -> MagicMock:
    redis = MagicMock()
    error = RedisConnectionError("Connection refused")
    for name in ("get", "setex", "set", "delete"):
        setattr(redis, name, AsyncMock(side_effect=error))
    redis.scan_iter = MagicMock(side_effect=error)
    return redis


class TestBookingCache:
    def test_hit_returns_decoded_payload(self):
        redis = _redis()
        redis.get.return_value = json.dumps(booking_dict())
        with patch(REDIS_PATH, return_value=redis):
            data = asyncio.run(cache.get_booking_cache(BOOKING_ID, ACTOR_ID))
        assert data["id"] == BOOKING_ID
        redis.get.assert_awaited_once_with(f"booking:{BOOKING_ID}:{ACTOR_ID}")

    def test_miss_returns_none(self):
        with patch(REDIS_PATH, return_value=_redis()):
            assert asyncio.run(cache.get_booking_cache(BOOKING_ID, ACTOR_ID)) is None

    def test_set_uses_ttl(self):
        redis = _redis()
        with patch(REDIS_PATH, return_value=redis):
            asyncio.run(cache.set_booking_cache(BOOKING_ID, ACTOR_ID, {"id": 1}))
        key, ttl, payload = redis.setex.call_args[0]
        assert key == f"booking:{BOOKING_ID}:{ACTOR_ID}"
        assert ttl == BOOKINGS_CACHE_TTL
        assert json.loads(payload) == {"id": 1}

    def test_redis_down_is_a_miss(self):
        with patch(REDIS_PATH, return_value=_broken_redis()):
            assert asyncio.run(cache.get_booking_cache(BOOKING_ID, ACTOR_ID)) is None
            asyncio.run(cache.set_booking_cache(BOOKING_ID, ACTOR_ID, {"id": 1}))


class TestListCache:
    def test_key_includes_property_and_actor(self):
        redis = _redis()
        with patch(REDIS_PATH, return_value=redis):
            asyncio.run(
                cache.get_list_cache(PROPERTY_ID, ACTOR_ID, "upcoming:CONFIRMED")
            )
        redis.get.assert_awaited_once_with(
            f"bookings:{PROPERTY_ID}:{ACTOR_ID}:upcoming:CONFIRMED"
        )

    def test_no_property_uses_any(self):
        redis = _redis()
        with patch(REDIS_PATH, return_value=redis):
            asyncio.run(cache.set_list_cache(None, ACTOR_ID, "k", {"bookings": []}))
        assert redis.setex.call_args[0][0] == f"bookings:any:{ACTOR_ID}:k"

    def test_redis_down_is_a_miss(self):
        with patch(REDIS_PATH, return_value=_broken_redis()):
            assert asyncio.run(cache.get_list_cache(None, ACTOR_ID, "k")) is None
            asyncio.run(cache.set_list_cache(None, ACTOR_ID, "k", {}))


class TestInvalidateBookingViews:
    def test_drops_detail_and_related_lists(self):
        keys = [
            f"booking:{BOOKING_ID}:{ACTOR_ID}",
            f"booking:{BOOKING_ID}:202",
            "booking:9999:101",
            f"bookings:{PROPERTY_ID}:{ACTOR_ID}:upcoming",
            "bookings:any:202:all",
            "bookings:8:101:past",
        ]
        redis = _redis(keys)
        with patch(REDIS_PATH, return_value=redis):
            asyncio.run(cache.invalidate_booking_views(BOOKING_ID, PROPERTY_ID))
        deleted = set(redis.delete.call_args[0])
        assert deleted == {
            f"booking:{BOOKING_ID}:{ACTOR_ID}",
            f"booking:{BOOKING_ID}:202",
            f"bookings:{PROPERTY_ID}:{ACTOR_ID}:upcoming",
            "bookings:any:202:all",
        }

    def test_nothing_to_delete(self):
        redis = _redis([])
        with patch(REDIS_PATH, return_value=redis):
            asyncio.run(cache.invalidate_booking_views(BOOKING_ID, None))
        redis.delete.assert_not_awaited()

    def test_redis_down_is_swallowed(self):
        with patch(REDIS_PATH, return_value=_broken_redis()):
            asyncio.run(cache.invalidate_booking_views(BOOKING_ID, PROPERTY_ID))


class TestCancelLock:
    def test_acquire_sets_marker_with_expiry(self):
        redis = _redis()
        with patch(REDIS_PATH, return_value=redis):
            assert asyncio.run(cache.acquire_cancel_lock(BOOKING_ID)) is True
        redis.set.assert_awaited_once_with(
            f"booking-cancel:{BOOKING_ID}", "1", nx=True, ex=CANCEL_LOCK_TTL
        )

    def test_held_marker_refuses(self):
        redis = _redis()
        redis.set.return_value = None
        with patch(REDIS_PATH, return_value=redis):
            assert asyncio.run(cache.acquire_cancel_lock(BOOKING_ID)) is False

    def test_redis_down_lets_cancellation_through(self):
        with patch(REDIS_PATH, return_value=_broken_redis()):
            assert asyncio.run(cache.acquire_cancel_lock(BOOKING_ID)) is True
            asyncio.run(cache.release_cancel_lock(BOOKING_ID))

    def test_release_deletes_marker(self):
        redis = _redis()
        with patch(REDIS_PATH, return_value=redis):
            asyncio.run(cache.release_cancel_lock(BOOKING_ID))
        redis.delete.assert_awaited_once_with(f"booking-cancel:{BOOKING_ID}")
