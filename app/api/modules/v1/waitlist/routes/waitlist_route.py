import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status

from app.api.core.exceptions import NotFoundError
from app.api.modules.v1.waitlist.routes.docs.waitlist_route_docs import (
    signup_responses,
    stats_responses,
    user_status_responses,
)
from app.api.modules.v1.waitlist.schemas.waitlist_schema import WaitlistSignupRequest
from app.api.modules.v1.waitlist.service.providers import get_waitlist_service
from app.api.modules.v1.waitlist.service.waitlist_service import WaitlistService
from app.api.utils.client_ip import get_client_ip
from app.api.utils.response_payloads import error_response, success_response

router = APIRouter(tags=["Waitlist"])
logger = logging.getLogger("app")


@router.post(
    "/email-waitlist",
    status_code=status.HTTP_201_CREATED,
    responses=signup_responses,
)
async def join_waitlist(
    payload: WaitlistSignupRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    service: WaitlistService = Depends(get_waitlist_service),
):
    """
    Add an email to the waitlist.

    Rate Limited: 5 signups per hour per client IP.

    Returns:
    - 201: New signup, with queue position and referral code
    - 200: Email already on the waitlist (`alreadyExists: true`), same position
    - 400: Invalid email
    - 429: Too many signups from this IP (`retryAfterSeconds`)
    - 500: Signup could not be saved
    """
    result = await service.signup(
        payload,
        client_ip=get_client_ip(request),
        background_tasks=background_tasks,
        user_agent=request.headers.get("user-agent"),
    )

    if result.already_exists:
        status_code = status.HTTP_200_OK
        message = "Welcome back! You're already on the waitlist."
    elif result.needs_confirmation:
        status_code = status.HTTP_201_CREATED
        message = "Welcome to the HealthScan waitlist! Please check your email to confirm your spot."
    else:
        status_code = status.HTTP_201_CREATED
        message = "Welcome to the HealthScan waitlist!"

    response = success_response(
        status_code=status_code,
        message=message,
        data=result.data,
        **result.response_fields(),
    )
    if result.rate_limit_remaining is not None:
        response.headers["X-RateLimit-Remaining"] = str(result.rate_limit_remaining)
    return response


@router.get("/waitlist/stats", responses=stats_responses)
async def waitlist_stats(service: WaitlistService = Depends(get_waitlist_service)):
    """Aggregate waitlist numbers: total, confirmed, last 24h signups, conversion rate."""
    stats = await service.stats()
    return success_response(
        status_code=status.HTTP_200_OK,
        message="Waitlist statistics retrieved",
        stats=stats.model_dump(),
    )


@router.get("/user-status", responses=user_status_responses)
async def user_status(
    email: Optional[str] = Query(default=None),
    service: WaitlistService = Depends(get_waitlist_service),
):
    """Queue position and confirmation state for one email."""
    if not email or not email.strip():
        return error_response(
            status_code=status.HTTP_400_BAD_REQUEST,
            message="Email parameter is required",
            error="MISSING_EMAIL",
        )

    try:
        status_data = await service.user_status(email)
    except NotFoundError as e:
        logger.info(f"User status requested for unknown email {email}")
        return error_response(
            status_code=e.status_code,
            message=e.message,
            error=e.error_type,
            exists=False,
        )

    return success_response(
        status_code=status.HTTP_200_OK,
        message="User found",
        exists=True,
        **status_data,
    )
