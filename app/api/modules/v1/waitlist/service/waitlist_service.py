import logging
import random
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from fastapi import BackgroundTasks
from pydantic import ValidationError

from app.api.core.exceptions import (
    InvalidEmailError,
    NotFoundError,
    PersistenceError,
)
from app.api.db.kv_store import KeyValueStore
from app.api.modules.v1.waitlist.models.waitlist_entry import (
    COUNTER_KEY,
    USER_KEY_PREFIX,
    WaitlistCounter,
    WaitlistEntry,
    confirmation_key,
    referral_index_key,
    user_key,
    utc_now,
)
from app.api.modules.v1.waitlist.schemas.waitlist_schema import (
    SignupResult,
    WaitlistSignupRequest,
    WaitlistStats,
    is_valid_email,
    normalize_email,
)
from app.api.modules.v1.waitlist.service.confirmation_token import ConfirmationTokenService
from app.api.modules.v1.waitlist.service.duplicate_resolver import DuplicateResolver, parse_entry
from app.api.modules.v1.waitlist.service.notifier import DeliveryResult, WaitlistNotifier
from app.api.modules.v1.waitlist.service.position import assign_position
from app.api.modules.v1.waitlist.service.rate_limiter import SignupRateLimiter
from app.api.modules.v1.waitlist.service.referral import ReferralBonusPropagator
from app.api.modules.v1.waitlist.utils.referral_code import generate_referral_code

logger = logging.getLogger("app")

RECENT_SIGNUP_WINDOW = timedelta(hours=24)


class WaitlistService:
    """
    Signup orchestration for the waitlist.

    Handles:
    - Email normalization and validation
    - Per-IP signup rate limiting
    - Duplicate detection (idempotent repeat signups)
    - Position assignment, referral codes and referral boosts
    - Confirmation email and best-effort admin alert / webhooks
    - Waitlist statistics and per-user status
    """

    def __init__(
        self,
        store: KeyValueStore,
        notifier: Optional[WaitlistNotifier] = None,
        token_service: Optional[ConfirmationTokenService] = None,
        rate_limiter: Optional[SignupRateLimiter] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.notifier = notifier or WaitlistNotifier()
        self.token_service = token_service or ConfirmationTokenService()
        self.rate_limiter = rate_limiter or SignupRateLimiter()
        self.rng = rng or random
        self.clock = clock
        self.resolver = DuplicateResolver(store)
        self.propagator = ReferralBonusPropagator(store, rng=self.rng, clock=clock)

    async def signup(
        self,
        request: WaitlistSignupRequest,
        client_ip: str,
        background_tasks: Optional[BackgroundTasks] = None,
        user_agent: Optional[str] = None,
    ) -> SignupResult:
        """
        Add an email to the waitlist, or return its existing spot.

        Raises:
            InvalidEmailError: The email is missing or malformed.
            RateLimitExceeded: Too many signups from ``client_ip`` in this window.
            PersistenceError: The entry could not be written.
        """
        email = normalize_email(request.email)
        if not is_valid_email(email):
            raise InvalidEmailError(details=f"rejected email {request.email!r}")

        rate = await self.rate_limiter.hit(client_ip)

        key = user_key(email)
        async with self.store.lock(key):
            existing = await self.resolver.find(email)
            if existing is not None:
                entry, total = await self._record_repeat(existing)
                created = False
            else:
                entry, total, created = await self._create(email, request)

        if not created:
            self._schedule(
                background_tasks,
                self.notifier.trigger_webhooks,
                "waitlist_returning",
                self._webhook_data(entry, total),
            )
            return SignupResult(
                position=entry.position,
                referral_code=entry.referral_code,
                total_waitlist=total,
                needs_confirmation=not entry.confirmed,
                email_confirmed=entry.confirmed,
                already_exists=True,
                rate_limit_remaining=rate.remaining,
                data=entry.public_data(),
            )

        delivery = await self._send_confirmation(entry)

        self._schedule(
            background_tasks,
            self.notifier.send_admin_alert,
            entry,
            total,
            delivery.sent,
            delivery.error,
            client_ip,
            user_agent,
        )
        self._schedule(
            background_tasks,
            self.notifier.trigger_webhooks,
            "waitlist_joined",
            self._webhook_data(entry, total),
        )

        logger.info(
            f"Waitlist signup completed: {email} at #{entry.position} "
            f"(emailSent={delivery.sent})"
        )
        return SignupResult(
            position=entry.position,
            referral_code=entry.referral_code,
            total_waitlist=total,
            email_sent=delivery.sent,
            email_error=delivery.error,
            needs_confirmation=delivery.sent and not entry.confirmed,
            email_confirmed=entry.confirmed,
            already_exists=False,
            rate_limit_remaining=rate.remaining,
            data=entry.public_data(),
        )

    async def _record_repeat(self, entry: WaitlistEntry) -> tuple[WaitlistEntry, int]:
        entry.activity_count += 1
        entry.last_active_date = self.clock()
        await self.store.set(user_key(entry.email), entry.to_record())
        logger.info(f"Repeat waitlist signup for {entry.email} (activity {entry.activity_count})")
        return entry, await self.total_waitlist()

    async def _create(
        self, email: str, request: WaitlistSignupRequest
    ) -> tuple[WaitlistEntry, int, bool]:
        counter = await self._read_counter()
        now = self.clock()

        entry = WaitlistEntry(
            email=email,
            name=request.name or email.split("@")[0],
            position=assign_position(counter.count, self.rng),
            referral_code=generate_referral_code(email),
            referred_by=request.referral_code,
            source=request.source or "website",
            utm_source=request.utm_source,
            utm_medium=request.utm_medium,
            utm_campaign=request.utm_campaign,
            signup_date=now,
            activity_count=1,
            last_active_date=now,
        )

        if not await self.store.set_if_absent(user_key(email), entry.to_record()):
            # created by another writer, or stored in a form we cannot read
            existing = await self.resolver.find(email)
            if existing is None:
                raise PersistenceError(details=f"entry for {email} exists but could not be read")
            repeat, total = await self._record_repeat(existing)
            return repeat, total, False

        await self._index_referral_code(entry)
        total = await self._bump_counter(counter.count, now)
        await self.propagator.apply(request.referral_code, entry)
        return entry, total, True

    async def _read_counter(self) -> WaitlistCounter:
        raw = await self.store.get(COUNTER_KEY)
        if isinstance(raw, dict):
            try:
                return WaitlistCounter.model_validate(raw)
            except ValidationError:
                logger.warning(f"Ignoring malformed waitlist counter: {raw}")
        return WaitlistCounter()

    async def _index_referral_code(self, entry: WaitlistEntry) -> None:
        try:
            await self.store.set(referral_index_key(entry.referral_code), {"email": entry.email})
        except PersistenceError:
            logger.warning(f"Referral index write failed for {entry.referral_code}")

    async def _bump_counter(self, seen_count: int, now: datetime) -> int:
        try:
            async with self.store.lock(COUNTER_KEY):
                counter = await self._read_counter()
                counter.count += 1
                counter.last_updated = now
                await self.store.set(COUNTER_KEY, counter.model_dump(mode="json", by_alias=True))
                return counter.count
        except PersistenceError:
            logger.warning("Waitlist counter update failed")
            return seen_count + 1

    async def _send_confirmation(self, entry: WaitlistEntry) -> DeliveryResult:
        if not self.token_service.available:
            return DeliveryResult(sent=False, error="Email confirmation service not available")

        token = self.token_service.issue(entry.email)
        delivery = await self.notifier.send_confirmation(entry, token)
        if not delivery.sent:
            return delivery

        now = self.clock()
        try:
            await self.record_email_sent(entry, now)
            await self.store.set(
                confirmation_key(token),
                {
                    "email": entry.email,
                    "position": entry.position,
                    "createdAt": now.isoformat(),
                    "confirmed": False,
                },
            )
        except PersistenceError:
            logger.warning(f"Could not record confirmation email bookkeeping for {entry.email}")
        return delivery

    async def record_email_sent(self, entry: WaitlistEntry, when: datetime) -> None:
        """Bump ``emailsSent`` on the stored entry and mirror it on ``entry``."""
        key = user_key(entry.email)
        async with self.store.lock(key):
            current = parse_entry(await self.store.get(key)) or entry
            current.emails_sent += 1
            current.last_email_sent = when
            await self.store.set(key, current.to_record())
        entry.emails_sent = current.emails_sent
        entry.last_email_sent = when

    def _schedule(self, background_tasks: Optional[BackgroundTasks], func, *args) -> None:
        if background_tasks is not None:
            background_tasks.add_task(func, *args)

    def _webhook_data(self, entry: WaitlistEntry, total: int) -> Dict[str, Any]:
        return {
            "email": entry.email,
            "name": entry.name,
            "referral_code": entry.referral_code,
            "used_referral_code": entry.referred_by,
            "position": entry.position,
            "created_at": entry.signup_date,
            "source": entry.source,
            "utm_source": entry.utm_source,
            "utm_medium": entry.utm_medium,
            "utm_campaign": entry.utm_campaign,
            "total_waitlist": total,
        }

    async def total_waitlist(self) -> int:
        counter = await self._read_counter()
        return max(counter.count, await self.store.count_by_prefix(USER_KEY_PREFIX))

    async def stats(self) -> WaitlistStats:
        """Aggregate counts over every stored entry."""
        counter = await self._read_counter()
        entries = [
            entry
            for entry in (parse_entry(r) for r in await self.store.get_by_prefix(USER_KEY_PREFIX))
            if entry is not None
        ]
        stored = await self.store.count_by_prefix(USER_KEY_PREFIX)

        now = self.clock()
        cutoff = now - RECENT_SIGNUP_WINDOW
        confirmed = sum(1 for entry in entries if entry.confirmed or entry.email_confirmed_at)
        recent = sum(1 for entry in entries if entry.signup_date > cutoff)
        conversion = int(confirmed * 100 / len(entries) + 0.5) if entries else 0

        return WaitlistStats(
            totalUsers=max(counter.count, stored, len(entries)),
            confirmedUsers=confirmed,
            recentSignups=recent,
            conversionRate=conversion,
            lastUpdated=now,
        )

    async def user_status(self, email: str) -> Dict[str, Any]:
        """
        Current state of one waitlist member.

        Raises:
            InvalidEmailError: ``email`` is missing or malformed.
            NotFoundError: Nobody signed up with ``email``.
        """
        email = normalize_email(email)
        if not is_valid_email(email):
            raise InvalidEmailError("Email parameter is required")

        entry = await self.resolver.find(email)
        if entry is None:
            raise NotFoundError("User not found")

        return {
            "user": {
                "email": entry.email,
                "name": entry.name,
                "position": entry.position,
                "referralCode": entry.referral_code,
                "signupDate": entry.signup_date,
                "confirmed": entry.confirmed,
                "emailConfirmedAt": entry.email_confirmed_at,
                "referrals": entry.referrals,
                "source": entry.source or "website",
            },
            "waitlist": {
                "position": entry.position,
                "total": await self.total_waitlist(),
                "confirmed": entry.confirmed,
            },
        }
