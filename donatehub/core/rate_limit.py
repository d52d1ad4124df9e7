"""Redis-backed lightweight rate-limiting helpers."""

from __future__ import annotations

import logging
import time

import redis
from fastapi import HTTPException, Request, status

from donatehub.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def _get_client() -> redis.Redis:
    return redis.Redis.from_url(settings.REDIS_URL, decode_responses=True, socket_connect_timeout=1)


def enforce_rate_limit(key: str, limit: int, window_seconds: int) -> None:
    """Raise 429 when key exceeds limit inside time window."""
    if limit <= 0:
        return

    now = int(time.time())
    window_key = f"rl:{key}:{now // window_seconds}"

    try:
        client = _get_client()
        count = client.incr(window_key)
        if count == 1:
            client.expire(window_key, window_seconds)
    except redis.RedisError as exc:
        # fail-open in local/dev if redis is unavailable
        logger.debug("Rate limiter unavailable: %s", exc)
        return
    if count > limit:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Rate limit exceeded")


def limit_donation_initiation(request: Request) -> None:
    client_ip = request.client.host if request.client else "unknown"
    enforce_rate_limit(f"donate:{client_ip}", settings.RATE_LIMIT_INITIATE_PER_MINUTE, 60)
