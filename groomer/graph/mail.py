"""
Email Sender

Sends outbound meeting emails via Microsoft Graph API (sendMail) from the
mailbox of the user's connected Outlook account.
"""

import logging
import uuid
from abc import ABC, abstractmethod

from ..core.database import Integration
from ..core.exceptions import EmailSendError
from .client import GraphAPIClient


logger = logging.getLogger(__name__)


class MailSender(ABC):
    """Capability to deliver one HTML email using a stored credential."""

    @abstractmethod
    def send(self, credential: Integration, to: str, subject: str, html_body: str) -> str:
        """
        Send one email.

        Returns:
            Tracking ID of the sent message

        Raises:
            EmailSendError: If sending fails
        """


class EmailSender(MailSender):
    """
    Sends emails via Microsoft Graph API.

    Usage:
        sender = EmailSender(GraphAPIClient(config.graph_api))
        sender.send(integration, "lead@example.com", "Let's reschedule", "<p>...</p>")
    """

    def __init__(self, client: GraphAPIClient):
        self.client = client

    def send(self, credential: Integration, to: str, subject: str, html_body: str) -> str:
        from_email = credential.account_email
        if not from_email:
            raise EmailSendError(f"Integration {credential.id} has no sending account")

        message = {
            "subject": subject,
            "importance": "normal",
            "body": {"contentType": "HTML", "content": html_body},
            "toRecipients": [{"emailAddress": {"address": to}}],
        }

        try:
            self.client.post(f"/users/{from_email}/sendMail", json={"message": message, "saveToSentItems": True})
        except Exception as e:
            logger.error(f"Failed to send email from {from_email} to {to}: {e}", exc_info=True)
            raise EmailSendError(f"Graph API sendMail failed: {e}")

        logger.info(f"Email sent from {from_email} to {to}")

        # Graph API doesn't return message ID for sendMail, generate tracking ID
        return f"sent-{uuid.uuid4()}"


class DisabledMailSender(MailSender):
    """Stand-in used when Graph credentials are not configured; every send fails."""

    def send(self, credential: Integration, to: str, subject: str, html_body: str) -> str:
        raise EmailSendError("Mail is not configured (GRAPH_CLIENT_ID / GRAPH_CLIENT_SECRET / GRAPH_TENANT_ID)")
