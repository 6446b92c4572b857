import base64
import binascii
import hashlib
import hmac
import secrets
import time
from typing import Optional

from app.api.core.config import settings
from app.api.core.exceptions import ServiceUnavailableError, TokenError
from app.api.modules.v1.waitlist.schemas.waitlist_schema import is_valid_email

HOUR_MS = 60 * 60 * 1000


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def now_millis() -> int:
    return int(time.time() * 1000)


class ConfirmationTokenService:
    """
    Issue and verify HMAC-signed email confirmation tokens.

    A token is ``b64url(email:issuedAtMillis:nonce) + "." + b64url(signature)``
    where the signature is HMAC-SHA256 of the encoded payload under the
    server secret. Verification needs no storage lookup.
    """

    def __init__(self, secret: Optional[str] = None, ttl_hours: Optional[int] = None):
        self.secret = settings.CONFIRMATION_SECRET if secret is None else secret
        hours = settings.EMAIL_CONFIRMATION_TTL_HOURS if ttl_hours is None else ttl_hours
        self.ttl_ms = hours * HOUR_MS

    @property
    def available(self) -> bool:
        return bool(self.secret)

    def _require_secret(self) -> bytes:
        if not self.available:
            raise ServiceUnavailableError(details="confirmation secret is not configured")
        return self.secret.encode("utf-8")

    def _sign(self, payload: str) -> str:
        digest = hmac.new(self._require_secret(), payload.encode("ascii"), hashlib.sha256)
        return _b64encode(digest.digest())

    def issue(self, email: str, now_ms: Optional[int] = None) -> str:
        issued_at = now_millis() if now_ms is None else now_ms
        nonce = secrets.token_hex(8)
        payload = _b64encode(f"{email}:{issued_at}:{nonce}".encode("utf-8"))
        return f"{payload}.{self._sign(payload)}"

    def validate(self, token: str, now_ms: Optional[int] = None) -> str:
        """
        Verify ``token`` and return the email it was issued for.

        Raises:
            ServiceUnavailableError: No secret is configured.
            TokenError: ``EXPIRED`` once the token is 24h old (by default),
                ``MALFORMED`` for anything that does not decode or verify.
        """
        self._require_secret()
        token = (token or "").strip()

        payload, sep, signature = token.partition(".")
        if not sep or not payload or not signature:
            raise TokenError(TokenError.MALFORMED, "token is missing its signature")
        try:
            expected = self._sign(payload)
        except UnicodeEncodeError:
            raise TokenError(TokenError.MALFORMED, "token payload is not ascii")
        if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
            raise TokenError(TokenError.MALFORMED, "token signature mismatch")

        try:
            decoded = _b64decode(payload).decode("utf-8")
            email, issued_at, _nonce = decoded.rsplit(":", 2)
            issued_at_ms = int(issued_at)
        except (binascii.Error, UnicodeDecodeError, ValueError):
            raise TokenError(TokenError.MALFORMED, "token payload could not be decoded")

        if not is_valid_email(email):
            raise TokenError(TokenError.MALFORMED, "token does not carry a valid email")

        now = now_millis() if now_ms is None else now_ms
        if now - issued_at_ms >= self.ttl_ms:
            raise TokenError(TokenError.EXPIRED)

        return email
