import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from app.api.modules.v1.waitlist.routes.docs.waitlist_route_docs import confirm_email_responses
from app.api.modules.v1.waitlist.service.email_confirmation_service import (
    EmailConfirmationService,
)
from app.api.modules.v1.waitlist.service.providers import get_confirmation_service
from app.api.utils.response_payloads import error_response, success_response

router = APIRouter(tags=["Waitlist"])
logger = logging.getLogger("app")


@router.get("/confirm-email", responses=confirm_email_responses)
async def confirm_email(
    token: Optional[str] = Query(default=None),
    service: EmailConfirmationService = Depends(get_confirmation_service),
):
    """
    Confirm a waitlist email address from the link sent at signup.

    Returns:
    - 200: Confirmed, or already confirmed (`alreadyConfirmed: true`)
    - 400: Missing token, or token expired/malformed (`TOKEN_VALIDATION_ERROR`)
    - 404: Email not on the waitlist
    - 503: Confirmation service not configured
    - 500: Lookup or save failure
    """
    if not token or not token.strip():
        return error_response(
            status_code=status.HTTP_400_BAD_REQUEST,
            message="Confirmation token is required",
            error="MISSING_TOKEN",
        )

    result = await service.confirm(token.strip())

    if result.already_confirmed:
        return success_response(
            status_code=status.HTTP_200_OK,
            message="Email already confirmed",
            data=result.data,
            alreadyConfirmed=True,
            position=result.position,
            referralCode=result.referral_code,
            confirmedAt=result.confirmed_at,
        )

    return success_response(
        status_code=status.HTTP_200_OK,
        message="Email confirmed successfully!",
        data=result.data,
        confirmed=True,
        position=result.position,
        referralCode=result.referral_code,
        confirmedAt=result.confirmed_at,
        welcomeEmailSent=result.welcome_email_sent,
    )
