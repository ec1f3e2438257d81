"""
Unit tests for calendar providers with mocked Graph / Google responses.
"""

from datetime import datetime
from unittest.mock import Mock, patch

import pytest

from groomer.calendar.providers import CalendarRegistry, GoogleCalendarProvider, GraphCalendarProvider
from groomer.core.exceptions import (
    CalendarAuthenticationError,
    CalendarRateLimitError,
    GraphAPIRateLimitError,
)
from tests.factories import DatabaseTestFactory, persist


def _credential(**fields):
    return DatabaseTestFactory.create_integration(1, account_email="rep@example.com", **fields)


@pytest.fixture
def mock_graph_client():
    """Mock Graph API client."""
    client = Mock()
    client.get = Mock()
    client.get_paged = Mock()
    client.patch = Mock(return_value={})
    client.post = Mock(return_value={})
    return client


class TestGraphCalendarProvider:

    def test_fetch_events_parses_utc_times_and_attendee(self, mock_graph_client):
        mock_graph_client.get_paged.return_value = [
            {
                "id": "AAMk1",
                "subject": "Intro call",
                "start": {"dateTime": "2025-03-04T15:00:00.0000000", "timeZone": "UTC"},
                "end": {"dateTime": "2025-03-04T15:30:00.0000000", "timeZone": "UTC"},
                "attendees": [
                    {"emailAddress": {"address": "Rep@Example.com", "name": "Rep"}},
                    {"emailAddress": {"address": "Lead@Prospect.com", "name": "Pat Lead"}},
                ],
            },
            {"id": "AAMk2", "isCancelled": True},
        ]

        events = GraphCalendarProvider(mock_graph_client).fetch_events(
            _credential(), datetime(2025, 3, 1), datetime(2025, 3, 31)
        )

        assert len(events) == 1
        assert events[0].event_id == "AAMk1"
        assert events[0].start == datetime(2025, 3, 4, 15, 0)
        assert events[0].attendee_email == "lead@prospect.com"
        endpoint = mock_graph_client.get_paged.call_args[0][0]
        assert endpoint == "/users/rep@example.com/calendarView"

    def test_attendee_responses_are_normalized(self, mock_graph_client):
        mock_graph_client.get.return_value = {
            "attendees": [
                {"emailAddress": {"address": "a@x.com"}, "status": {"response": "accepted", "time": "2025-03-01T10:00:00Z"}},
                {"emailAddress": {"address": "b@x.com"}, "status": {"response": "tentativelyAccepted"}},
                {"emailAddress": {"address": "c@x.com"}, "status": {"response": "declined"}},
                {"emailAddress": {"address": "d@x.com"}, "status": {"response": "none"}},
            ]
        }

        responses = GraphCalendarProvider(mock_graph_client).get_attendee_responses(_credential(), "AAMk1")

        assert [r.status for r in responses] == ["accepted", "pending", "declined", "unknown"]
        assert responses[0].response_time == "2025-03-01T10:00:00Z"

    def test_mailbox_owner_response_is_excluded(self, mock_graph_client):
        mock_graph_client.get.return_value = {
            "attendees": [
                {"emailAddress": {"address": "Rep@Example.com"}, "status": {"response": "organizer"}},
                {"emailAddress": {"address": "rep@example.com"}, "status": {"response": "accepted"}},
                {"emailAddress": {"address": "lead@prospect.com"}, "status": {"response": "notResponded"}},
            ]
        }

        responses = GraphCalendarProvider(mock_graph_client).get_attendee_responses(_credential(), "AAMk1")

        assert [(r.email, r.status) for r in responses] == [("lead@prospect.com", "pending")]

    def test_mark_free_patches_show_as(self, mock_graph_client):
        GraphCalendarProvider(mock_graph_client).mark_event_free(_credential(), "AAMk1")

        mock_graph_client.patch.assert_called_once_with("/users/rep@example.com/events/AAMk1", json={"showAs": "free"})

    def test_graph_errors_become_calendar_errors(self, mock_graph_client):
        mock_graph_client.post.side_effect = GraphAPIRateLimitError("slow down")

        with pytest.raises(CalendarRateLimitError):
            GraphCalendarProvider(mock_graph_client).cancel_event(_credential(), "AAMk1")


class TestGoogleCalendarProvider:

    @patch("groomer.calendar.providers.requests.request")
    def test_fetch_events_skips_all_day_and_follows_pages(self, mock_request):
        first = Mock(status_code=200)
        first.json.return_value = {
            "items": [
                {"id": "allday", "start": {"date": "2025-03-04"}, "end": {"date": "2025-03-05"}},
                {
                    "id": "g1",
                    "summary": "Demo",
                    "start": {"dateTime": "2025-03-04T10:00:00-05:00"},
                    "end": {"dateTime": "2025-03-04T11:00:00-05:00"},
                    "attendees": [{"email": "me@example.com", "self": True}, {"email": "Lead@Prospect.com"}],
                },
            ],
            "nextPageToken": "p2",
        }
        second = Mock(status_code=200)
        second.json.return_value = {"items": [{"id": "gone", "status": "cancelled"}]}
        mock_request.side_effect = [first, second]

        events = GoogleCalendarProvider().fetch_events(_credential(), datetime(2025, 3, 1), datetime(2025, 3, 31))

        assert [e.event_id for e in events] == ["g1"]
        assert events[0].start == datetime(2025, 3, 4, 15, 0)
        assert events[0].attendee_email == "lead@prospect.com"
        assert mock_request.call_count == 2

    @patch("groomer.calendar.providers.requests.request")
    def test_own_and_organizer_responses_are_excluded(self, mock_request):
        response = Mock(status_code=200)
        response.json.return_value = {
            "attendees": [
                {"email": "me@example.com", "self": True, "responseStatus": "accepted"},
                {"email": "boss@example.com", "organizer": True, "responseStatus": "accepted"},
                {"email": "Lead@Prospect.com", "responseStatus": "needsAction"},
            ]
        }
        mock_request.return_value = response

        responses = GoogleCalendarProvider().get_attendee_responses(_credential(), "g1")

        assert [(r.email, r.status) for r in responses] == [("lead@prospect.com", "pending")]

    @patch("groomer.calendar.providers.requests.request")
    def test_rejected_token_raises_authentication_error(self, mock_request):
        mock_request.return_value = Mock(status_code=401, text="unauthorized")

        with pytest.raises(CalendarAuthenticationError):
            GoogleCalendarProvider().mark_event_free(_credential(), "g1")

    def test_missing_token_raises_authentication_error(self):
        with pytest.raises(CalendarAuthenticationError):
            GoogleCalendarProvider().cancel_event(_credential(access_token=None), "g1")


class TestCalendarRegistry:

    def test_resolution_by_external_id_prefix(self, test_db, mock_graph_client):
        user = persist(test_db, DatabaseTestFactory.create_user())
        persist(test_db, DatabaseTestFactory.create_integration(user.id, "outlook"))
        outlook = GraphCalendarProvider(mock_graph_client)
        google = GoogleCalendarProvider()
        registry = CalendarRegistry(test_db, {"outlook": outlook, "google_calendar": google})

        resolved = registry.resolve(DatabaseTestFactory.create_meeting(user.id, external_id="outlook_1"))

        assert resolved[0] is outlook
        assert resolved[1].type == "outlook"
        # No google integration stored
        assert registry.resolve(DatabaseTestFactory.create_meeting(user.id, external_id="gcal_1")) is None
        assert registry.resolve(DatabaseTestFactory.create_meeting(user.id, external_id="calendly_1")) is None
        assert registry.resolve(DatabaseTestFactory.create_meeting(user.id, external_id="zoom_1")) is None
