"""
Core dependencies module.
"""
from app.api.core.dependencies.redis_service import (
    check_rate_limit,
    close_redis_client,
    get_redis_client,
)
from app.api.core.dependencies.send_mail import send_email

__all__ = [
    "check_rate_limit",
    "close_redis_client",
    "get_redis_client",
    "send_email",
]
