import logging
from typing import Optional

import redis
from fastapi import HTTPException, status

from pontocarro.core.config import Settings


logger = logging.getLogger(__name__)


class RateLimiter:
    """Fixed-window counters in redis. Without a client every check passes."""

    def __init__(self, client: Optional[redis.Redis] = None) -> None:
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimiter":
        if not settings.REDIS_URL:
            return cls(None)
        return cls(redis.Redis.from_url(settings.REDIS_URL, decode_responses=True))

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def hit(self, key: str, limit: int, expire_seconds: int) -> None:
        if self.client is None:
            return
        try:
            current = self.client.incr(key)
            if current == 1:
                self.client.expire(key, expire_seconds)
        except redis.RedisError as exc:
            # A redis outage never blocks the request
            logger.warning("Rate limit check skipped for %s: %s", key, exc)
            return
        if current > limit:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Muitas solicitações, tente novamente mais tarde",
            )

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
