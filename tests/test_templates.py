"""
Unit tests for email body rendering.
"""

from datetime import datetime

from groomer.jobs.templates import render_calendar_deletion, render_confirmation, render_reschedule_offer
from tests.factories import DatabaseTestFactory


def _hostile_meeting():
    return DatabaseTestFactory.create_meeting(
        1,
        title="<script>alert(1)</script>",
        company='<img src=x onerror="steal()">',
        description="<a href='https://evil.example'>agenda</a>",
        qualification_reason="<b>Industry</b>: Retail eq Software",
    )


class TestEscaping:
    """Meeting fields come from calendars and booking forms, not from us."""

    def test_confirmation_escapes_meeting_fields(self):
        subject, body = render_confirmation(_hostile_meeting(), "Acme <Sales>")

        assert "<script>" not in body
        assert "<img" not in body
        assert "<a href" not in body
        assert "&lt;script&gt;" in body
        assert "Acme &lt;Sales&gt;" in body
        # Subjects are plain text
        assert subject == "Meeting confirmed: <script>alert(1)</script>"

    def test_calendar_deletion_escapes_reason(self):
        _, body = render_calendar_deletion(_hostile_meeting(), "Acme")

        assert "<b>Industry</b>" not in body
        assert "&lt;b&gt;Industry&lt;/b&gt;" in body

    def test_reschedule_offer_escapes_title(self):
        _, body = render_reschedule_offer(_hostile_meeting(), datetime(2025, 3, 4, 9, 0), 1, "Acme")

        assert "<script>" not in body

    def test_template_markup_is_kept(self):
        meeting = DatabaseTestFactory.create_meeting(1, title="Pricing review", company="Acme & Co")

        _, body = render_confirmation(meeting, "Acme")

        assert "<h3>Pricing review</h3>" in body
        assert "<strong>Company:</strong> Acme &amp; Co" in body
