from fastapi import APIRouter

from app.api.modules.v1.waitlist.routes.confirmation_route import router as confirmation
from app.api.modules.v1.waitlist.routes.referral_route import router as referral
from app.api.modules.v1.waitlist.routes.waitlist_route import router as waitlist

waitlist_router = APIRouter()

waitlist_router.include_router(waitlist)
waitlist_router.include_router(confirmation)
waitlist_router.include_router(referral)


__all__ = [
    "waitlist",
    "confirmation",
    "referral",
    "waitlist_router",
]
