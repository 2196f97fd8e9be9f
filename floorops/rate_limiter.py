"""
Hybrid in-memory + Redis request throttling for OTP endpoints
Counters live in process memory and are periodically synced to Redis so that
several workers converge on the same window.
"""

import logging
import os
import time
from threading import Lock
from typing import Optional

import redis
from fastapi import Depends, Request

from .auth import get_current_user
from .config import RATE_LIMIT_ENABLED
from .models import User
from .shared.errors import RateLimited

logger = logging.getLogger(__name__)

# Redis connection
redis_client: Optional[redis.Redis] = None

# Format: {key: {'count': int, 'reset_time': int, 'last_redis_sync': int}}
memory_cache: dict[str, dict] = {}
cache_lock = Lock()

MEMORY_CACHE_SYNC_INTERVAL = 10  # Sync to Redis every 10 seconds
MEMORY_CACHE_CLEANUP_INTERVAL = 60  # Clean up expired entries every 60 seconds
last_cleanup_time = 0
REDIS_RETRY_INTERVAL = 60  # Seconds to wait before reconnecting after a failure
redis_retry_at = 0.0


def get_redis_client() -> redis.Redis:
    """Get or create the Redis client from REDIS_URL or the individual REDIS_* settings"""
    global redis_client

    if redis_client is None:
        redis_url = os.getenv("REDIS_URL")
        if redis_url:
            client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        else:
            redis_ssl = os.getenv("REDIS_SSL", "false").lower() == "true"
            client = redis.Redis(
                host=os.getenv("REDIS_HOST", "localhost"),
                port=int(os.getenv("REDIS_PORT", "6379")),
                password=os.getenv("REDIS_PASSWORD", None),
                db=int(os.getenv("REDIS_DB", "0")),
                ssl=redis_ssl,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        try:
            client.ping()
        except redis.RedisError as e:
            logger.error(f"Failed to connect to Redis: {str(e)}")
            raise
        redis_client = client
        logger.info("Redis connected successfully")

    return redis_client


def cleanup_expired_cache():
    """Remove expired entries from memory cache"""
    global last_cleanup_time
    current_time = int(time.time())

    if current_time - last_cleanup_time < MEMORY_CACHE_CLEANUP_INTERVAL:
        return

    with cache_lock:
        expired_keys = [
            k for k, v in memory_cache.items() if current_time >= v.get("reset_time", 0)
        ]
        for k in expired_keys:
            del memory_cache[k]

    last_cleanup_time = current_time


def check_rate_limit(
    key: str, limit: int, window_seconds: int, client: Optional[redis.Redis]
) -> tuple[bool, int, int]:
    """Fixed-window check against the in-memory counter, seeded from and synced to Redis

    Returns:
        Tuple of (is_allowed, current_count, ttl_seconds)
    """
    current_time = int(time.time())
    cleanup_expired_cache()

    with cache_lock:
        if key not in memory_cache:
            entry = {
                "count": 0,
                "reset_time": current_time + window_seconds,
                "last_redis_sync": current_time,
            }
            if client is not None:
                try:
                    redis_count = client.get(key)
                    redis_ttl = client.ttl(key)
                    if redis_count and redis_ttl > 0:
                        entry["count"] = int(redis_count)
                        entry["reset_time"] = current_time + redis_ttl
                except redis.RedisError as e:
                    logger.warning(f"Failed to load from Redis, using memory only: {e}")
            memory_cache[key] = entry

        cache_entry = memory_cache[key]

        if current_time >= cache_entry["reset_time"]:
            cache_entry["count"] = 0
            cache_entry["reset_time"] = current_time + window_seconds
            cache_entry["last_redis_sync"] = 0

        is_allowed = cache_entry["count"] < limit
        if is_allowed:
            cache_entry["count"] += 1

        time_since_sync = current_time - cache_entry.get("last_redis_sync", 0)
        if client is not None and time_since_sync >= MEMORY_CACHE_SYNC_INTERVAL:
            try:
                client.set(key, cache_entry["count"], ex=window_seconds)
                cache_entry["last_redis_sync"] = current_time
            except redis.RedisError as e:
                logger.warning(f"Failed to sync to Redis: {e}")

        ttl = cache_entry["reset_time"] - current_time
        return is_allowed, cache_entry["count"], max(0, ttl)


def _redis_or_none() -> Optional[redis.Redis]:
    """Redis client, or None to run memory-only while Redis is unreachable"""
    global redis_retry_at
    if time.time() < redis_retry_at:
        return None
    try:
        return get_redis_client()
    except redis.RedisError:
        logger.warning(f"Redis unavailable, throttling from memory for {REDIS_RETRY_INTERVAL}s")
        redis_retry_at = time.time() + REDIS_RETRY_INTERVAL
        return None


def create_rate_limiter(limit: int, window_seconds: int, key_prefix: str):
    """
    Create a per-user, per-record throttle dependency

    Example usage:
        verify_limit = create_rate_limiter(limit=10, window_seconds=600, key_prefix="appointment_verify")

        @router.post("/{appointment_id}/verify-otp")
        async def verify(..., _: None = Depends(verify_limit)):
            ...
    """

    async def rate_limiter(request: Request, current_user: User = Depends(get_current_user)):
        if not RATE_LIMIT_ENABLED:
            return

        client = _redis_or_none()

        record_id = next(iter(request.path_params.values()), "global")
        key = f"{key_prefix}:{current_user.id}:{record_id}"
        is_allowed, current_count, ttl = check_rate_limit(key, limit, window_seconds, client)

        if not is_allowed:
            logger.warning(f"Rate limit EXCEEDED for {key} - {current_count}/{limit} requests used")
            raise RateLimited(
                max(1, ttl),
                f"Too many attempts. Maximum {limit} requests per {window_seconds} seconds.",
            )

    return rate_limiter
