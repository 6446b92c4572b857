import logging
from typing import Optional

from redis.exceptions import RedisError

from app.api.core.config import settings
from app.api.core.dependencies.redis_service import RateLimitStatus, check_rate_limit
from app.api.core.exceptions import RateLimitExceeded

logger = logging.getLogger("app")


class SignupRateLimiter:
    """
    Per-IP fixed window for waitlist signups, shared through Redis.

    Fails open: when Redis is unreachable the signup is allowed and the
    outage is logged.
    """

    def __init__(self, max_attempts: Optional[int] = None, window_seconds: Optional[int] = None):
        self.max_attempts = max_attempts or settings.WAITLIST_RATE_LIMIT_MAX
        self.window_seconds = window_seconds or settings.WAITLIST_RATE_LIMIT_WINDOW_SECONDS

    async def hit(self, client_ip: str) -> RateLimitStatus:
        """
        Record one signup attempt from ``client_ip``.

        Raises:
            RateLimitExceeded: When the attempt is over the limit for this window.
        """
        try:
            status = await check_rate_limit(
                f"waitlist_signup:{client_ip}",
                max_attempts=self.max_attempts,
                window_seconds=self.window_seconds,
            )
        except (RedisError, ValueError) as e:
            logger.error(f"Signup rate limit check failed, allowing request: {e}")
            return RateLimitStatus(
                allowed=True,
                current=0,
                remaining=self.max_attempts,
                retry_after=self.window_seconds,
            )

        if not status.allowed:
            raise RateLimitExceeded(
                retry_after=status.retry_after,
                detail="Too many signup attempts. Please try again later.",
            )
        return status
