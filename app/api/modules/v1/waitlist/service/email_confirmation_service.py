import logging
from datetime import datetime
from typing import Callable, Optional

from app.api.core.exceptions import NotFoundError, PersistenceError
from app.api.db.kv_store import KeyValueStore
from app.api.modules.v1.waitlist.models.waitlist_entry import (
    WaitlistEntry,
    confirmation_key,
    user_key,
    utc_now,
)
from app.api.modules.v1.waitlist.schemas.waitlist_schema import ConfirmationResult
from app.api.modules.v1.waitlist.service.confirmation_token import ConfirmationTokenService
from app.api.modules.v1.waitlist.service.duplicate_resolver import DuplicateResolver, parse_entry
from app.api.modules.v1.waitlist.service.notifier import WaitlistNotifier

logger = logging.getLogger("app")


class EmailConfirmationService:
    """Turn a valid confirmation token into a confirmed waitlist entry."""

    def __init__(
        self,
        store: KeyValueStore,
        notifier: Optional[WaitlistNotifier] = None,
        token_service: Optional[ConfirmationTokenService] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.notifier = notifier or WaitlistNotifier()
        self.token_service = token_service or ConfirmationTokenService()
        self.clock = clock
        self.resolver = DuplicateResolver(store)

    async def confirm(self, token: str) -> ConfirmationResult:
        """
        Confirm the email address carried by ``token``.

        Confirming twice is harmless: the second call reports
        ``already_confirmed`` and changes nothing.

        Raises:
            ServiceUnavailableError: No token secret is configured.
            TokenError: The token is expired or malformed.
            PersistenceError: ``DATABASE_ERROR`` if the lookup fails,
                ``SAVE_ERROR`` if the confirmation cannot be stored.
            NotFoundError: The email is not on the waitlist.
        """
        email = self.token_service.validate(token)
        logger.info(f"Confirming email for {email} with token {token[:12]}...")

        try:
            entry = await self.resolver.find(email)
        except PersistenceError as e:
            raise PersistenceError(
                "Database error while confirming email",
                error_type="DATABASE_ERROR",
                details=e.details,
            ) from e

        if entry is None:
            raise NotFoundError("Email not found in waitlist", error_type="USER_NOT_FOUND")

        if entry.confirmed:
            return self._already_confirmed(entry)

        now = self.clock()
        key = user_key(entry.email)
        try:
            async with self.store.lock(key):
                entry = parse_entry(await self.store.get(key)) or entry
                if entry.confirmed:
                    return self._already_confirmed(entry)
                entry.confirmed = True
                entry.email_confirmed_at = now
                await self.store.set(key, entry.to_record())
        except PersistenceError as e:
            raise PersistenceError(
                "Failed to confirm email",
                error_type="SAVE_ERROR",
                details="Could not save confirmation status",
            ) from e

        welcome = await self.notifier.send_email_confirmed(entry)
        if welcome.sent:
            await self._record_email_sent(key, now)

        try:
            await self.store.delete(confirmation_key(token))
        except PersistenceError:
            logger.warning(f"Could not delete confirmation record for {entry.email}")

        logger.info(f"Email confirmed for {entry.email} at #{entry.position}")
        return ConfirmationResult(
            email=entry.email,
            position=entry.position,
            referral_code=entry.referral_code,
            confirmed_at=entry.email_confirmed_at,
            welcome_email_sent=welcome.sent,
            data=entry.public_data(),
        )

    def _already_confirmed(self, entry: WaitlistEntry) -> ConfirmationResult:
        return ConfirmationResult(
            email=entry.email,
            position=entry.position,
            referral_code=entry.referral_code,
            confirmed_at=entry.email_confirmed_at,
            already_confirmed=True,
            data=entry.public_data(),
        )

    async def _record_email_sent(self, key: str, when: datetime) -> None:
        try:
            async with self.store.lock(key):
                current = parse_entry(await self.store.get(key))
                if current is None:
                    return
                current.emails_sent += 1
                current.last_email_sent = when
                await self.store.set(key, current.to_record())
        except PersistenceError:
            logger.warning(f"Could not record welcome email for {key}")
