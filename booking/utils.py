import json
import logging

import redis
from django.conf import settings

logger = logging.getLogger(__name__)

AVAILABILITY_CACHE_KEY = 'availability_snapshot'

NO_TIME_SET = 'No time set'


def format_long_date(value):
    """``Monday, January 5, 2026``"""
    return f"{value:%A, %B} {value.day}, {value.year}"


def format_clock(value):
    """``9:00 AM``"""
    return f"{value:%I:%M %p}".lstrip('0')


def format_time_range(start, end, legacy='', twelve_hour=False):
    fmt = format_clock if twelve_hour else (lambda t: t.strftime('%H:%M'))
    if start and end:
        return f"{fmt(start)} - {fmt(end)}"
    if start:
        return fmt(start)
    if legacy:
        if twelve_hour:
            try:
                hour, minute = (int(part) for part in legacy.split(':')[:2])
            except ValueError:
                return legacy
            return f"{(hour % 12) or 12}:{minute:02d} {'AM' if hour < 12 else 'PM'}"
        return legacy
    return NO_TIME_SET


def _get_redis_client():
    url = settings.REDIS_URL
    if not url:
        return None
    # redis.from_url supports rediss:// as well
    return redis.from_url(url, decode_responses=True)


def get_cached_availability():
    client = _get_redis_client()
    if not client:
        return None
    try:
        raw = client.get(AVAILABILITY_CACHE_KEY)
    except redis.RedisError as exc:
        logger.warning("Availability cache read failed: %s", exc)
        return None
    if raw is None:
        return None
    return json.loads(raw)


def set_cached_availability(payload, ttl=None):
    client = _get_redis_client()
    if not client:
        return False
    try:
        # short TTL to keep it fresh under burst
        client.set(AVAILABILITY_CACHE_KEY, json.dumps(payload), ex=ttl or settings.AVAILABILITY_CACHE_TTL)
    except redis.RedisError as exc:
        logger.warning("Availability cache write failed: %s", exc)
        return False
    return True


def invalidate_availability_cache():
    client = _get_redis_client()
    if not client:
        return False
    try:
        client.delete(AVAILABILITY_CACHE_KEY)
    except redis.RedisError as exc:
        logger.warning("Availability cache invalidation failed: %s", exc)
        return False
    return True
