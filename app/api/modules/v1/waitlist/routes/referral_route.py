from fastapi import APIRouter, Depends, Query, status

from app.api.modules.v1.waitlist.routes.docs.waitlist_route_docs import referral_stats_responses
from app.api.modules.v1.waitlist.service.providers import get_referral_insights
from app.api.modules.v1.waitlist.service.referral import ReferralInsights
from app.api.utils.response_payloads import success_response

router = APIRouter(tags=["Referrals"])


@router.get("/referral-leaderboard")
async def referral_leaderboard(
    limit: int = Query(default=50, ge=1, le=100),
    insights: ReferralInsights = Depends(get_referral_insights),
):
    """Top referrers by number of referrals. Emails are never exposed."""
    leaderboard = await insights.leaderboard(limit)
    return success_response(
        status_code=status.HTTP_200_OK,
        message="Referral leaderboard retrieved" if leaderboard else "No referral activity yet",
        leaderboard=[entry.model_dump() for entry in leaderboard],
    )


@router.get("/referral-stats/{referral_code}", responses=referral_stats_responses)
async def referral_stats(
    referral_code: str,
    insights: ReferralInsights = Depends(get_referral_insights),
):
    """Referral summary and reward tier for the owner of a code."""
    stats = await insights.referral_stats(referral_code.strip())
    return success_response(
        status_code=status.HTTP_200_OK,
        message="Referral stats retrieved",
        stats=stats.model_dump(),
    )
