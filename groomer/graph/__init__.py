"""
Microsoft Graph Module

Authenticated Graph API client and Graph-backed mail sender.
"""

from .client import GraphAPIClient
from .mail import DisabledMailSender, EmailSender, MailSender

__all__ = ["GraphAPIClient", "EmailSender", "DisabledMailSender", "MailSender"]
