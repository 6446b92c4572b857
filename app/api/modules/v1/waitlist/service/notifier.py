import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from fastapi.encoders import jsonable_encoder

from app.api.core.config import settings
from app.api.core.dependencies.send_mail import send_email
from app.api.core.exceptions import UpstreamError
from app.api.modules.v1.waitlist.models.waitlist_entry import WaitlistEntry, utc_now

logger = logging.getLogger("app")

Mailer = Callable[[str, str, str, Dict[str, Any]], Awaitable[bool]]


@dataclass
class DeliveryResult:
    """Outcome of one best-effort notification."""

    sent: bool
    error: Optional[str] = None


def confirmation_url(token: str) -> str:
    return f"{settings.BASE_URL.rstrip('/')}/confirm-email?token={token}"


def referral_url(code: str) -> str:
    return f"{settings.BASE_URL.rstrip('/')}?ref={code}"


class WaitlistNotifier:
    """
    Outbound email and webhook notifications for waitlist events.

    Every method is best-effort: failures are logged and returned as a
    ``DeliveryResult``, never raised to the caller.
    """

    def __init__(
        self,
        mailer: Mailer = send_email,
        mail_enabled: Optional[bool] = None,
        webhook_urls: Optional[List[str]] = None,
        webhook_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.mailer = mailer
        self.mail_enabled = settings.MAIL_ENABLED if mail_enabled is None else mail_enabled
        self.webhook_urls = settings.WEBHOOK_URLS if webhook_urls is None else webhook_urls
        self.webhook_token = (
            settings.WAITLIST_WEBHOOK_TOKEN if webhook_token is None else webhook_token
        )
        self.transport = transport

    async def _deliver(
        self, template_name: str, subject: str, recipient: str, context: Dict[str, Any]
    ) -> DeliveryResult:
        try:
            if not self.mail_enabled:
                raise UpstreamError("Email service not configured")
            sent = await asyncio.wait_for(
                self.mailer(template_name, subject, recipient, context),
                timeout=settings.EMAIL_SEND_TIMEOUT_SECONDS,
            )
            if not sent:
                raise UpstreamError("Email delivery failed")
            return DeliveryResult(sent=True)
        except UpstreamError as e:
            logger.warning(f"{template_name} to {recipient} not sent: {e.message}")
            return DeliveryResult(sent=False, error=e.message)
        except asyncio.TimeoutError:
            logger.error(f"{template_name} to {recipient} timed out")
            return DeliveryResult(sent=False, error="Email delivery timed out")
        except Exception as e:
            logger.error(f"{template_name} to {recipient} failed: {e}", exc_info=True)
            return DeliveryResult(sent=False, error=str(e) or "Email service error")

    async def send_confirmation(self, entry: WaitlistEntry, token: str) -> DeliveryResult:
        """Ask the new signup to confirm their address."""
        return await self._deliver(
            "waitlist_confirmation.html",
            f"Welcome to {settings.APP_NAME} - Confirm Your Spot!",
            entry.email,
            {
                "name": entry.name,
                "position": entry.position,
                "referral_code": entry.referral_code,
                "confirmation_url": confirmation_url(token),
                "referral_url": referral_url(entry.referral_code),
                "expires_in_hours": settings.EMAIL_CONFIRMATION_TTL_HOURS,
            },
        )

    async def send_email_confirmed(self, entry: WaitlistEntry) -> DeliveryResult:
        return await self._deliver(
            "email_confirmed.html",
            f"Welcome to {settings.APP_NAME}! You're #{entry.position} in queue",
            entry.email,
            {
                "name": entry.name,
                "position": entry.position,
                "referral_code": entry.referral_code,
                "referral_url": referral_url(entry.referral_code),
            },
        )

    async def send_admin_alert(
        self,
        entry: WaitlistEntry,
        total_waitlist: int,
        email_sent: bool,
        email_error: Optional[str] = None,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> DeliveryResult:
        """Tell the team about a new signup. No-op when no alert address is configured."""
        recipient = settings.WAITLIST_ALERT_EMAIL
        if not recipient:
            return DeliveryResult(sent=False, error="Alert email not configured")

        signup_date = entry.signup_date.isoformat()
        rows = [
            ("Email", entry.email),
            ("Name", entry.name),
            ("Queue Position", entry.position),
            ("Total Waitlist", total_waitlist),
            ("Referral Code", entry.referral_code),
            ("Used Referral", entry.referred_by),
            ("Source", entry.source),
            ("UTM Source", entry.utm_source),
            ("UTM Medium", entry.utm_medium),
            ("UTM Campaign", entry.utm_campaign),
            ("Signup Date", signup_date),
            ("IP Address", client_ip),
            ("User Agent", user_agent),
            ("Email Sent", "Yes" if email_sent else "No"),
            ("Email Error", email_error),
        ]
        return await self._deliver(
            "waitlist_admin_alert.html",
            f"New waitlist signup · {entry.email} (#{entry.position})",
            recipient,
            {"rows": rows, "signupDate": signup_date},
        )

    async def trigger_webhooks(self, trigger: str, data: Dict[str, Any]) -> List[DeliveryResult]:
        """POST ``{trigger, timestamp, data}`` to every configured webhook URL."""
        if not self.webhook_urls:
            return []

        payload = jsonable_encoder(
            {"trigger": trigger, "timestamp": utc_now().isoformat(), "data": data}
        )
        headers = {"Content-Type": "application/json"}
        if self.webhook_token:
            headers["Authorization"] = f"Bearer {self.webhook_token}"

        async with httpx.AsyncClient(
            timeout=settings.WEBHOOK_TIMEOUT_SECONDS, transport=self.transport
        ) as client:
            return list(
                await asyncio.gather(
                    *(self._post(client, url, payload, headers, trigger) for url in self.webhook_urls)
                )
            )

    async def _post(
        self,
        client: httpx.AsyncClient,
        url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
        trigger: str,
    ) -> DeliveryResult:
        try:
            response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            logger.info(f"Webhook {trigger} delivered to {url}")
            return DeliveryResult(sent=True)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"Webhook {trigger} to {url} failed: {e}")
            return DeliveryResult(sent=False, error=str(e) or e.__class__.__name__)
