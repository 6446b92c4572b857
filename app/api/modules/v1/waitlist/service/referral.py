import logging
import random
from datetime import datetime
from typing import Callable, List, Optional

from app.api.core.exceptions import NotFoundError
from app.api.db.kv_store import KeyValueStore
from app.api.modules.v1.waitlist.models.waitlist_entry import (
    USER_KEY_PREFIX,
    WaitlistEntry,
    referral_index_key,
    user_key,
    utc_now,
)
from app.api.modules.v1.waitlist.schemas.waitlist_schema import (
    LeaderboardEntry,
    ReferralStats,
    ReferredUser,
)
from app.api.modules.v1.waitlist.service.duplicate_resolver import parse_entry

logger = logging.getLogger("app")

MIN_REFERRAL_BOOST = 3
MAX_REFERRAL_BOOST = 10

REWARD_TIERS = (
    (25, "Founding Member"),
    (10, "Champion"),
    (5, "Grower"),
    (3, "Sprout"),
    (1, "Seed"),
)


def reward_tier(referral_count: int) -> str:
    for threshold, tier in REWARD_TIERS:
        if referral_count >= threshold:
            return tier
    return "No referrals yet"


async def find_by_referral_code(store: KeyValueStore, code: str) -> Optional[WaitlistEntry]:
    """
    Resolve a referral code to its owner.

    Uses the ``referral_code_index_{code}`` record and falls back to a full
    scan for entries created before the index existed.
    """
    index = await store.get(referral_index_key(code))
    if isinstance(index, dict) and index.get("email"):
        entry = parse_entry(await store.get(user_key(index["email"])))
        if entry is not None and entry.referral_code == code:
            return entry

    for record in await store.get_by_prefix(USER_KEY_PREFIX):
        entry = parse_entry(record)
        if entry is not None and entry.referral_code == code:
            return entry
    return None


class ReferralBonusPropagator:
    """Move a referrer up the queue when someone signs up with their code."""

    def __init__(
        self,
        store: KeyValueStore,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.rng = rng or random
        self.clock = clock

    async def apply(self, referred_by: Optional[str], new_user: WaitlistEntry) -> Optional[int]:
        """
        Boost the owner of ``referred_by`` by a random 3-10 places.

        Returns the boost applied, or None when nothing was boosted. Never
        raises: failures are logged and the signup carries on.
        """
        code = (referred_by or "").strip()
        if not code or code == new_user.referral_code:
            return None

        try:
            referrer = await find_by_referral_code(self.store, code)
            if referrer is None:
                logger.info(f"Referral code {code} used by {new_user.email} has no owner")
                return None
            if referrer.email == new_user.email:
                return None

            key = user_key(referrer.email)
            async with self.store.lock(key):
                # re-read under the lock so concurrent boosts stack
                current = parse_entry(await self.store.get(key)) or referrer
                boost = self.rng.randint(MIN_REFERRAL_BOOST, MAX_REFERRAL_BOOST)
                old_position = current.position
                current.position = max(1, current.position - boost)
                current.referrals += 1
                current.last_referral_date = self.clock()
                await self.store.set(key, current.to_record())

            logger.info(
                f"Referral boost for {current.email}: {old_position} -> {current.position} "
                f"(referred {new_user.email})"
            )
            return boost
        except Exception as e:
            logger.error(f"Referral boost for code {code} failed: {e}", exc_info=True)
            return None


class ReferralInsights:
    """Read-only views over referral activity."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def _entries(self) -> List[WaitlistEntry]:
        entries = []
        for record in await self.store.get_by_prefix(USER_KEY_PREFIX):
            entry = parse_entry(record)
            if entry is not None:
                entries.append(entry)
        return entries

    async def leaderboard(self, limit: int = 50) -> List[LeaderboardEntry]:
        """Referrers with at least one referral, most referrals first. Emails are not exposed."""
        referrers = [entry for entry in await self._entries() if entry.referrals > 0]
        referrers.sort(key=lambda entry: (-entry.referrals, entry.position))
        return [
            LeaderboardEntry(
                rank=rank,
                name=entry.name,
                referralCode=entry.referral_code,
                referrals=entry.referrals,
                position=entry.position,
                tier=reward_tier(entry.referrals),
            )
            for rank, entry in enumerate(referrers[:limit], start=1)
        ]

    async def referral_stats(self, code: str) -> ReferralStats:
        """
        Summary for the owner of ``code``.

        Raises:
            NotFoundError: No entry owns ``code``.
        """
        entries = await self._entries()
        owner = next((entry for entry in entries if entry.referral_code == code), None)
        if owner is None:
            raise NotFoundError("Referral code not found", error_type="REFERRAL_NOT_FOUND")

        referred = [entry for entry in entries if entry.referred_by == code]
        referred.sort(key=lambda entry: entry.signup_date)

        return ReferralStats(
            referralCode=owner.referral_code,
            name=owner.name,
            position=owner.position,
            totalReferrals=owner.referrals,
            confirmedReferrals=sum(1 for entry in referred if entry.confirmed),
            lastReferralDate=owner.last_referral_date,
            tier=reward_tier(owner.referrals),
            referredUsers=[
                ReferredUser(name=entry.name, signupDate=entry.signup_date, confirmed=entry.confirmed)
                for entry in referred
            ],
        )
