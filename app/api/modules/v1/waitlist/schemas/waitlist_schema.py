import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(value: Optional[str]) -> str:
    """Trim and lowercase an email address."""
    return (value or "").strip().lower()


def is_valid_email(value: str) -> bool:
    return bool(value) and len(value) <= 254 and EMAIL_PATTERN.match(value) is not None


class WaitlistSignupRequest(BaseModel):
    """Body of ``POST /email-waitlist``."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    email: str = Field(..., max_length=320)
    name: Optional[str] = Field(default=None, max_length=200)
    source: Optional[str] = Field(default=None, max_length=100)
    referral_code: Optional[str] = Field(default=None, alias="referralCode", max_length=64)
    utm_source: Optional[str] = Field(default=None, max_length=200)
    utm_medium: Optional[str] = Field(default=None, max_length=200)
    utm_campaign: Optional[str] = Field(default=None, max_length=200)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        email = normalize_email(value)
        if not is_valid_email(email):
            raise ValueError("Please provide a valid email address")
        return email

    @field_validator("name", "source", "referral_code", "utm_source", "utm_medium", "utm_campaign")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None


class SignupResult(BaseModel):
    """Outcome of a signup, new or repeat."""

    position: int
    referral_code: str
    total_waitlist: int
    email_sent: bool = False
    email_error: Optional[str] = None
    needs_confirmation: bool = False
    email_confirmed: bool = False
    already_exists: bool = False
    rate_limit_remaining: Optional[int] = None
    data: Dict[str, Any] = {}

    def response_fields(self) -> Dict[str, Any]:
        return {
            "position": self.position,
            "referralCode": self.referral_code,
            "totalWaitlist": self.total_waitlist,
            "emailSent": self.email_sent,
            "emailError": self.email_error,
            "needsConfirmation": self.needs_confirmation,
            "emailConfirmed": self.email_confirmed,
            "alreadyExists": self.already_exists,
        }


class ConfirmationResult(BaseModel):
    email: str
    position: int
    referral_code: str
    confirmed_at: Optional[datetime] = None
    already_confirmed: bool = False
    welcome_email_sent: bool = False
    data: Dict[str, Any] = {}


class WaitlistStats(BaseModel):
    totalUsers: int
    confirmedUsers: int
    recentSignups: int
    conversionRate: int
    lastUpdated: datetime


class LeaderboardEntry(BaseModel):
    rank: int
    name: str
    referralCode: str
    referrals: int
    position: int
    tier: str


class ReferredUser(BaseModel):
    name: str
    signupDate: datetime
    confirmed: bool


class ReferralStats(BaseModel):
    referralCode: str
    name: str
    position: int
    totalReferrals: int
    confirmedReferrals: int
    lastReferralDate: Optional[datetime] = None
    tier: str
    referredUsers: List[ReferredUser] = []
