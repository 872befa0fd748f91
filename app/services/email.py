# services/email.py - Email Service (SendGrid)
# ============================================================================

import asyncio
import logging

import sendgrid
from sendgrid.helpers.mail import Mail

from app.core.config import settings

logger = logging.getLogger(__name__)


class EmailNotConfiguredError(RuntimeError):
    pass


class EmailService:
    def __init__(self):
        self.sg = sendgrid.SendGridAPIClient(api_key=settings.SENDGRID_API_KEY) if settings.SENDGRID_API_KEY else None

    async def send_mail(self, to_email: str, subject: str, text: str) -> None:
        """Send a plain-text email. Raises on any delivery failure."""
        if self.sg is None:
            raise EmailNotConfiguredError("SENDGRID_API_KEY is not set")

        message = Mail(
            from_email=settings.FROM_EMAIL,
            to_emails=to_email,
            subject=subject,
            plain_text_content=text,
        )
        # SendGrid's client is blocking
        response = await asyncio.to_thread(self.sg.send, message)
        logger.info(f"📧 Mail '{subject}' sent to {to_email} (status {response.status_code})")

    async def send_ticket_assigned(self, to_email: str, ticket_title: str) -> None:
        await self.send_mail(
            to_email,
            "Ticket Assigned",
            f"A new ticket is assigned to you: {ticket_title or 'Untitled ticket'}",
        )
