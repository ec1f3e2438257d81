"""
Unit tests for the Graph mail sender.
"""

from unittest.mock import Mock

import pytest

from groomer.core.exceptions import EmailSendError, GraphAPIError
from groomer.graph.mail import DisabledMailSender, EmailSender
from tests.factories import DatabaseTestFactory


def _credential(account_email="rep@example.com"):
    return DatabaseTestFactory.create_integration(1, "outlook", account_email=account_email)


class TestEmailSender:

    def test_posts_send_mail_from_users_mailbox(self):
        client = Mock()
        client.post = Mock(return_value={})

        tracking_id = EmailSender(client).send(_credential(), "lead@prospect.com", "Hello", "<p>Hi</p>")

        assert tracking_id.startswith("sent-")
        endpoint = client.post.call_args[0][0]
        message = client.post.call_args[1]["json"]["message"]
        assert endpoint == "/users/rep@example.com/sendMail"
        assert message["subject"] == "Hello"
        assert message["body"] == {"contentType": "HTML", "content": "<p>Hi</p>"}
        assert message["toRecipients"] == [{"emailAddress": {"address": "lead@prospect.com"}}]

    def test_graph_failure_raises_send_error(self):
        client = Mock()
        client.post = Mock(side_effect=GraphAPIError("500"))

        with pytest.raises(EmailSendError):
            EmailSender(client).send(_credential(), "lead@prospect.com", "Hello", "<p>Hi</p>")

    def test_missing_mailbox_raises_send_error(self):
        with pytest.raises(EmailSendError):
            EmailSender(Mock()).send(_credential(account_email=None), "lead@prospect.com", "Hello", "<p>Hi</p>")

    def test_disabled_sender_always_fails(self):
        with pytest.raises(EmailSendError):
            DisabledMailSender().send(_credential(), "lead@prospect.com", "Hello", "<p>Hi</p>")
