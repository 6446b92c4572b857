import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict

import aiosmtplib

from app.api.core.config import settings
from app.api.utils.template_utils import render_template

logger = logging.getLogger("app")


async def send_email(
    template_name: str, subject: str, recipient: str, context: Dict[str, Any]
) -> bool:
    """
    Render ``template_name`` and deliver it over SMTP.

    Returns:
        True when the SMTP server accepted the message, False otherwise.
        Failures are logged, never raised.
    """
    try:
        if not settings.MAIL_ENABLED:
            logger.warning(f"Mail transport not configured, skipping email to {recipient}")
            return False

        if not recipient or recipient == "None":
            logger.error(f"Invalid recipient email: {recipient}")
            return False

        html_content = render_template(template_name, context)

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = settings.EMAIL
        msg["To"] = recipient

        msg.attach(MIMEText(html_content, "html"))

        await aiosmtplib.send(
            msg,
            hostname=settings.SMTP_SERVER,
            port=settings.SMTP_PORT,
            username=settings.MAIL_USERNAME,
            password=settings.MAIL_PASSWORD,
            start_tls=settings.SMTP_START_TLS,
            timeout=settings.EMAIL_SEND_TIMEOUT_SECONDS,
        )

        logger.info(f"Email sent successfully to {recipient}")
        return True

    except Exception as e:
        logger.error(f"Failed to send email to {recipient}: {str(e)}", exc_info=True)
        return False
