"""Fixed-window request limiter backed by Redis ``INCR`` + ``EXPIRE``.

One counter per client IP, bucket and window. If Redis is unavailable the
request is allowed.
"""

import logging
import time

from fastapi import Request

from judge import state
from judge.config import get_settings
from judge.errors import RateLimitedError

logger = logging.getLogger(__name__)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "-"


def rate_limit(bucket: str):
    """Build a FastAPI dependency enforcing the ``bucket`` ceiling."""

    async def _limit(request: Request) -> None:
        settings = get_settings().rate_limit
        client = state.redis_client
        if not settings.enabled or client is None:
            return
        limit = getattr(settings, bucket)
        window = settings.window_sec
        key = f"ratelimit:{bucket}:{client_ip(request)}:{int(time.time()) // window}"
        try:
            count = await client.incr(key)
            if count == 1:
                await client.expire(key, window)
        except Exception as e:
            logger.warning("rate limiter unavailable, allowing request: %s", e)
            return
        if count > limit:
            raise RateLimitedError(bucket=bucket, limit=limit, window_sec=window)

    return _limit
