from fastapi import Depends

from app.api.db.kv_store import KeyValueStore, get_kv_store
from app.api.modules.v1.waitlist.service.email_confirmation_service import (
    EmailConfirmationService,
)
from app.api.modules.v1.waitlist.service.referral import ReferralInsights
from app.api.modules.v1.waitlist.service.waitlist_service import WaitlistService


async def get_waitlist_service(store: KeyValueStore = Depends(get_kv_store)) -> WaitlistService:
    return WaitlistService(store)


async def get_confirmation_service(
    store: KeyValueStore = Depends(get_kv_store),
) -> EmailConfirmationService:
    return EmailConfirmationService(store)


async def get_referral_insights(store: KeyValueStore = Depends(get_kv_store)) -> ReferralInsights:
    return ReferralInsights(store)
