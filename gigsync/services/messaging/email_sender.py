"""
Outbound email via Resend.

The core only needs a success/failure signal: ``send`` returns True/False and
never raises. Delivery guarantees belong to Resend.
"""

import asyncio

import resend

from gigsync.config import settings
from gigsync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EmailSender:
    def __init__(self, api_key: str | None = None, from_address: str | None = None):
        self.api_key = api_key if api_key is not None else settings.RESEND_API_KEY
        self.from_address = from_address or settings.EMAIL_FROM

    async def send(self, to: str, subject: str, text: str) -> bool:
        if not self.api_key:
            logger.error("Email service not configured - RESEND_API_KEY missing")
            return False

        params = {
            "from": self.from_address,
            "to": [to],
            "subject": subject,
            "text": text,
        }

        try:
            resend.api_key = self.api_key
            # The Resend SDK is synchronous
            response = await asyncio.to_thread(resend.Emails.send, params)
            logger.info(
                "Email sent via Resend",
                to_domain=to.split("@")[-1],
                email_id=(response or {}).get("id"),
            )
            return True
        except Exception as e:
            logger.error(
                "Email send failed",
                to_domain=to.split("@")[-1],
                error=str(e),
                error_type=type(e).__name__,
            )
            return False


email_sender = EmailSender()
