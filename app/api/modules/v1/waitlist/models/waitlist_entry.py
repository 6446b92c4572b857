import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from app.api.modules.v1.waitlist.utils.referral_code import generate_referral_code

logger = logging.getLogger("app")

USER_KEY_PREFIX = "waitlist_user_"
COUNTER_KEY = "waitlist_count"
CONFIRMATION_KEY_PREFIX = "email_confirmation_"
REFERRAL_INDEX_PREFIX = "referral_code_index_"


def user_key(email: str) -> str:
    return f"{USER_KEY_PREFIX}{email}"


def confirmation_key(token: str) -> str:
    return f"{CONFIRMATION_KEY_PREFIX}{token}"


def referral_index_key(code: str) -> str:
    return f"{REFERRAL_INDEX_PREFIX}{code}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WaitlistEntry(BaseModel):
    """Persistent waitlist record stored at ``waitlist_user_{email}``.

    Attributes:
        email: Normalized (trimmed, lowercased) address, one entry per email.
        name: Display name, defaults to the email local part.
        position: Queue position, assigned once and only lowered by referral boosts.
        referral_code: Deterministic code derived from ``email``.
        referred_by: Code supplied at signup. May point at nobody.
        signup_date: Creation timestamp, never rewritten.
        confirmed: Set once the confirmation link is used.
        emails_sent: Number of emails delivered to this user.
        activity_count: Bumped on every repeat signup.
        referrals: Number of successful referrals credited to this user.

    Fields not declared here are kept as-is so legacy records survive a rewrite.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    email: str
    name: str = ""
    position: int = 1
    referral_code: str = Field(default="", alias="referralCode")
    referred_by: Optional[str] = Field(default=None, alias="referredBy")
    source: Optional[str] = "website"
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    signup_date: datetime = Field(default_factory=utc_now, alias="signupDate")
    confirmed: bool = False
    email_confirmed_at: Optional[datetime] = Field(default=None, alias="emailConfirmedAt")
    emails_sent: int = Field(default=0, alias="emailsSent")
    last_email_sent: Optional[datetime] = Field(default=None, alias="lastEmailSent")
    activity_count: int = Field(default=1, alias="activityCount")
    last_active_date: Optional[datetime] = Field(default=None, alias="lastActiveDate")
    referrals: int = 0
    last_referral_date: Optional[datetime] = Field(default=None, alias="lastReferralDate")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("position", mode="before")
    @classmethod
    def floor_position(cls, value: Any) -> int:
        # legacy records store positions as strings or floats
        try:
            return max(1, int(float(value)))
        except (TypeError, ValueError, OverflowError):
            raise ValueError(f"position must be a number, got {value!r}")

    @field_validator(
        "signup_date",
        "email_confirmed_at",
        "last_email_sent",
        "last_active_date",
        "last_referral_date",
    )
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def fill_derived_fields(self) -> "WaitlistEntry":
        if not self.referral_code:
            self.referral_code = generate_referral_code(self.email)
        if not self.name:
            self.name = self.email.split("@")[0]
        return self

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "WaitlistEntry":
        """
        Load a stored record, resetting fields that no longer validate to their defaults.

        Older writers left nulls or free text in typed fields (`"position": null`,
        `"referralCode": null`). Those fields are dropped and rebuilt from defaults
        so the entry stays reachable.

        Raises:
            ValidationError: The record is unusable even without the bad fields,
                e.g. its email is missing or not a string.
        """
        try:
            return cls.model_validate(record)
        except ValidationError as e:
            bad = {str(err["loc"][0]) for err in e.errors() if err["loc"]}
            for name, field in cls.model_fields.items():
                if name in bad or field.alias in bad:
                    bad.update(key for key in (name, field.alias) if key)
            logger.warning(f"Resetting unreadable fields {sorted(bad)} on {record.get('email')}")
            return cls.model_validate({key: value for key, value in record.items() if key not in bad})

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def public_data(self) -> Dict[str, Any]:
        """Subset echoed back to the person who signed up."""
        return {
            "email": self.email,
            "name": self.name,
            "position": self.position,
            "signupDate": self.signup_date,
            "confirmed": self.confirmed,
            "emailsSent": self.emails_sent,
        }


class WaitlistCounter(BaseModel):
    """Advisory total stored at ``waitlist_count``."""

    model_config = ConfigDict(populate_by_name=True)

    count: int = 0
    last_updated: Optional[datetime] = Field(default=None, alias="lastUpdated")
