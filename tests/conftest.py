"""
Shared fixtures: in-memory database, fake calendar provider and mocked mail sender.
"""

from unittest.mock import Mock

import pytest

from groomer.calendar.providers import CalendarProvider, CalendarRegistry
from groomer.core.database import DatabaseManager
from groomer.graph.mail import MailSender
from groomer.jobs.email_queue import EmailJobQueue


class FakeCalendarProvider(CalendarProvider):
    """In-memory calendar that records every call."""

    def __init__(self, external_id_prefix: str = "outlook_"):
        self.external_id_prefix = external_id_prefix
        self.events = []
        self.responses = {}
        self.freed = []
        self.cancelled = []
        self.fail_with = None

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    def fetch_events(self, credential, start, end):
        self._maybe_fail()
        return [e for e in self.events if e.start < end and e.end > start]

    def get_attendee_responses(self, credential, event_id):
        self._maybe_fail()
        return list(self.responses.get(event_id, []))

    def mark_event_free(self, credential, event_id):
        self._maybe_fail()
        self.freed.append(event_id)

    def cancel_event(self, credential, event_id):
        self._maybe_fail()
        self.cancelled.append(event_id)


@pytest.fixture
def test_db():
    """Create temporary in-memory database for testing."""
    db = DatabaseManager("sqlite://")
    db.create_tables()

    yield db

    db.drop_tables()
    db.engine.dispose()


@pytest.fixture
def fake_calendar():
    return FakeCalendarProvider("outlook_")


@pytest.fixture
def calendars(test_db, fake_calendar):
    """Registry with the fake provider serving Outlook meetings."""
    return CalendarRegistry(test_db, {"outlook": fake_calendar})


@pytest.fixture
def mail_sender():
    """Mock mail sender that succeeds by default."""
    sender = Mock(spec=MailSender)
    sender.send = Mock(return_value="sent-test")
    return sender


@pytest.fixture
def email_queue(test_db, mail_sender):
    return EmailJobQueue(test_db, mail_sender)
