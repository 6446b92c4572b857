import logging
from typing import Optional

from pydantic import ValidationError

from app.api.db.kv_store import KeyValueStore
from app.api.modules.v1.waitlist.models.waitlist_entry import (
    USER_KEY_PREFIX,
    WaitlistEntry,
    user_key,
)
from app.api.modules.v1.waitlist.schemas.waitlist_schema import normalize_email

logger = logging.getLogger("app")


def parse_entry(record) -> Optional[WaitlistEntry]:
    """Validate a raw stored record, returning None for anything unusable."""
    if not isinstance(record, dict) or not record.get("email"):
        return None
    try:
        return WaitlistEntry.from_record(record)
    except (ValidationError, TypeError, ValueError) as e:
        logger.warning(f"Skipping malformed waitlist record for {record.get('email')}: {e}")
        return None


class DuplicateResolver:
    """Find the existing entry for an email, repairing legacy keys on the way."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def find(self, email: str) -> Optional[WaitlistEntry]:
        """
        Look up ``email`` by its canonical key, then by a full scan.

        A record found only by the scan is rewritten under its canonical key, as is
        a canonical record whose own email field is unreadable.

        Raises:
            PersistenceError: If the self-heal write fails.
        """
        email = normalize_email(email)

        raw = await self.store.get(user_key(email))
        entry = parse_entry(raw)
        if entry is None and isinstance(raw, dict):
            # the key already names the owner
            entry = parse_entry({**raw, "email": email})
            if entry is not None:
                logger.warning(f"Repaired the email field of the stored entry for {email}")
                await self.store.set(user_key(email), entry.to_record())
        if entry is not None:
            return entry

        for record in await self.store.get_by_prefix(USER_KEY_PREFIX):
            candidate = parse_entry(record)
            if candidate is not None and candidate.email == email:
                logger.info(f"Found {email} under a non-canonical key, rewriting it")
                await self.store.set(user_key(email), candidate.to_record())
                return candidate

        return None
