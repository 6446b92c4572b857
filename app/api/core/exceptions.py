import logging
from typing import Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError

from app.api.utils.response_payloads import error_response

logger = logging.getLogger("app")


class WaitlistError(Exception):
    """
    Base class for errors raised by the waitlist engine.

    Attributes:
        status_code: HTTP status the error maps to.
        error_type: Machine-readable code returned as ``errorType``.
        message: User-facing, non-technical message.
        details: Optional technical detail for debugging.
    """

    status_code: int = 500
    error_type: str = "SERVER_ERROR"
    default_message: str = "An unexpected error occurred. Please try again later."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[str] = None,
        error_type: Optional[str] = None,
    ):
        self.message = message or self.default_message
        self.details = details
        if error_type:
            self.error_type = error_type
        super().__init__(self.message)


class InvalidEmailError(WaitlistError):
    """Malformed or missing email address."""

    status_code = 400
    error_type = "VALIDATION_ERROR"
    default_message = "Please provide a valid email address"


class NotFoundError(WaitlistError):
    """Unknown email, token or referral code."""

    status_code = 404
    error_type = "USER_NOT_FOUND"
    default_message = "Email not found in waitlist"


class TokenError(WaitlistError):
    """Confirmation token is expired or malformed."""

    EXPIRED = "EXPIRED"
    MALFORMED = "MALFORMED"

    status_code = 400
    error_type = "TOKEN_VALIDATION_ERROR"
    default_message = "Invalid or expired confirmation token"

    def __init__(self, reason: str, details: Optional[str] = None):
        self.reason = reason
        super().__init__(details=details or reason)


class PersistenceError(WaitlistError):
    """A write against the key-value store failed."""

    status_code = 500
    error_type = "PERSISTENCE_ERROR"
    default_message = "Failed to save your information. Please try again."


class ServiceUnavailableError(WaitlistError):
    """A required collaborator (token secret, mail transport) is not configured."""

    status_code = 503
    error_type = "SERVICE_UNAVAILABLE"
    default_message = "Email confirmation service not available"


class UpstreamError(WaitlistError):
    """
    Failure of a notifier or webhook call.

    Never escalated into an HTTP failure; its message is copied into the
    response payload instead.
    """

    status_code = 502
    error_type = "UPSTREAM_ERROR"
    default_message = "Notification delivery failed"


class RateLimitExceeded(Exception):
    """
    Custom exception for rate limit violations.

    Attributes:
        retry_after: Number of seconds until the rate limit resets
        detail: Additional details about the rate limit violation
    """

    def __init__(self, retry_after: int = 3600, detail: str = "Rate limit exceeded"):
        self.retry_after = retry_after
        self.detail = detail
        super().__init__(detail)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Turn request validation errors into a 400 with field-level messages.

    Args:
        request (Request): The incoming HTTP request.
        exc (RequestValidationError): The validation error raised by FastAPI/Pydantic.

    Returns:
        JSONResponse: Error envelope with ``errors`` keyed by field name.
    """
    errors = {}
    for err in exc.errors():
        loc = str(err["loc"][-1])
        msg = err["msg"]
        if msg.startswith("Value error,"):
            msg = msg.replace("Value error,", "").strip()
        errors.setdefault(loc, []).append(msg)

    return error_response(
        status_code=400,
        message="Please provide a valid email address"
        if "email" in errors
        else "Invalid request format",
        error="VALIDATION_ERROR",
        errors=errors,
    )


async def waitlist_exception_handler(request: Request, exc: WaitlistError):
    """
    Convert a ``WaitlistError`` into the standard error envelope.

    Server-side failures are logged at error level, client errors at warning.
    """
    if exc.status_code >= 500:
        logger.error(
            "%s on %s: %s (%s)", exc.error_type, request.url.path, exc.message, exc.details
        )
    else:
        logger.warning("%s on %s: %s", exc.error_type, request.url.path, exc.details or exc.message)

    return error_response(
        status_code=exc.status_code,
        message=exc.message,
        error=exc.error_type,
        details=exc.details,
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Handle HTTP exceptions (4xx/5xx) and return a standardized JSON response.

    Args:
        request (Request): The incoming HTTP request.
        exc (HTTPException): The HTTP exception raised by FastAPI.

    Returns:
        JSONResponse: Standardized error response with HTTP status code and message.
    """
    logger.error(f"HTTP exception: {exc.detail} ({exc.status_code})")

    return error_response(
        status_code=exc.status_code,
        error="HTTP_ERROR",
        message=str(exc.detail),
    )


async def general_exception_handler(request: Request, exc: Exception):
    """
    Handle uncaught exceptions and return a standardized JSON response.

    Args:
        request (Request): The incoming HTTP request.
        exc (Exception): The unhandled exception.

    Returns:
        JSONResponse: Standardized 500 error response.
    """
    logger.exception(f"Unhandled exception: {exc}")

    return error_response(
        status_code=500,
        error="INTERNAL_SERVER_ERROR",
        message="An unexpected error occurred. Please try again.",
    )


async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded):
    """
    Handle rate limit exceptions and return a standardized JSON response.

    Args:
        request (Request): The incoming HTTP request.
        exc (RateLimitExceeded): The rate limit exception.

    Returns:
        JSONResponse: 429 response carrying ``retryAfterSeconds`` and the
        ``Retry-After`` / ``X-RateLimit-Remaining`` headers.
    """
    logger.warning(
        f"Rate limit exceeded for {request.client.host if request.client else 'unknown'} "
        f"on {request.url.path}"
    )

    response = error_response(
        status_code=429,
        message=exc.detail,
        error="RATE_LIMIT_EXCEEDED",
        retryAfterSeconds=exc.retry_after,
    )

    response.headers["Retry-After"] = str(exc.retry_after)
    response.headers["X-RateLimit-Remaining"] = "0"

    return response
