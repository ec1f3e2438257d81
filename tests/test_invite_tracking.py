"""
Unit tests for invite RSVP tracking.
"""

from datetime import timedelta

import pytest

from groomer.core.exceptions import CalendarAPIError
from groomer.tracking.invite_tracking import InviteTracker, aggregate_invite_status, is_at_risk
from tests.factories import BASE_TIME, CalendarTestFactory, DatabaseTestFactory, persist


NOW = BASE_TIME + timedelta(days=1)


@pytest.fixture
def tracker(test_db, calendars):
    return InviteTracker(test_db, calendars)


@pytest.fixture
def user(test_db):
    user = persist(test_db, DatabaseTestFactory.create_user())
    persist(test_db, DatabaseTestFactory.create_integration(user.id, "outlook"))
    return user


class TestAggregation:

    @pytest.mark.parametrize(
        "statuses,expected",
        [
            (["accepted", "declined"], "accepted"),
            (["declined", "unknown"], "declined"),
            (["declined", "pending"], "pending"),
            (["pending", "unknown"], "pending"),
            (["unknown"], "unknown"),
            ([], "unknown"),
        ],
    )
    def test_aggregate(self, statuses, expected):
        assert aggregate_invite_status(statuses) == expected

    def test_at_risk(self):
        declined = DatabaseTestFactory.create_meeting(1, invite_status="declined", invite_last_checked=NOW)
        stale = DatabaseTestFactory.create_meeting(
            1, invite_status="pending", invite_last_checked=NOW - timedelta(hours=25)
        )
        fresh = DatabaseTestFactory.create_meeting(
            1, invite_status="pending", invite_last_checked=NOW - timedelta(hours=2)
        )
        accepted = DatabaseTestFactory.create_meeting(1, invite_status="accepted", invite_last_checked=NOW)

        assert is_at_risk(declined, NOW)
        assert is_at_risk(stale, NOW)
        assert not is_at_risk(fresh, NOW)
        assert not is_at_risk(accepted, NOW)


class TestInviteTracker:

    def test_stores_responses_and_aggregate(self, test_db, tracker, fake_calendar, user):
        meeting = persist(test_db, DatabaseTestFactory.create_meeting(user.id, external_id="outlook_evt1"))
        fake_calendar.responses["evt1"] = CalendarTestFactory.create_responses("declined", "accepted")

        stats = tracker.run_tracking(NOW)

        assert stats == {"checked": 1, "updated": 1, "skipped": 0, "errors": 0}
        stored = test_db.get_meeting_by_id(meeting.id)
        assert stored.invite_status == "accepted"
        assert stored.invite_accepted is True
        assert stored.invite_last_checked == NOW
        assert [r["status"] for r in stored.attendee_responses] == ["declined", "accepted"]

    def test_no_accepted_response_means_not_accepted(self, test_db, tracker, fake_calendar, user):
        meeting = persist(test_db, DatabaseTestFactory.create_meeting(user.id, external_id="outlook_evt2"))
        fake_calendar.responses["evt2"] = CalendarTestFactory.create_responses("pending")

        tracker.run_tracking(NOW)

        stored = test_db.get_meeting_by_id(meeting.id)
        assert stored.invite_status == "pending"
        assert stored.invite_accepted is False

    def test_scope_excludes_old_cancelled_and_calendly(self, test_db, tracker, user):
        persist(
            test_db,
            DatabaseTestFactory.create_meeting(user.id, start_time=NOW - timedelta(days=31)),
            DatabaseTestFactory.create_meeting(user.id, status="cancelled"),
            DatabaseTestFactory.create_meeting(user.id, status="disqualified", calendar_deleted=True),
        )
        calendly = persist(test_db, DatabaseTestFactory.create_meeting(user.id, external_id="calendly_x"))

        stats = tracker.run_tracking(NOW)

        assert stats["checked"] == 1
        assert stats["skipped"] == 1
        assert test_db.get_meeting_by_id(calendly.id).invite_last_checked is None

    def test_provider_error_is_counted(self, test_db, tracker, fake_calendar, user):
        persist(test_db, DatabaseTestFactory.create_meeting(user.id))
        fake_calendar.fail_with = CalendarAPIError("calendar unavailable")

        assert tracker.run_tracking(NOW)["errors"] == 1

    def test_check_user_and_at_risk_listing(self, test_db, tracker, fake_calendar, user):
        other = persist(test_db, DatabaseTestFactory.create_user())
        declined = persist(test_db, DatabaseTestFactory.create_meeting(user.id, external_id="outlook_d"))
        persist(test_db, DatabaseTestFactory.create_meeting(other.id, external_id="outlook_o"))
        fake_calendar.responses["d"] = CalendarTestFactory.create_responses("declined")

        result = tracker.check_user(user.id, NOW)
        at_risk = tracker.get_at_risk_meetings(user.id, NOW)

        assert result == {"checked": 1, "updated": 1}
        assert [m.id for m in at_risk] == [declined.id]

    def test_invite_stats(self, test_db, tracker, fake_calendar, user):
        persist(
            test_db,
            DatabaseTestFactory.create_meeting(user.id, external_id="outlook_a"),
            DatabaseTestFactory.create_meeting(user.id, external_id="outlook_b"),
        )
        fake_calendar.responses["a"] = CalendarTestFactory.create_responses("accepted")
        fake_calendar.responses["b"] = CalendarTestFactory.create_responses("declined")

        tracker.run_tracking(NOW)
        stats = tracker.get_invite_stats(user.id)

        assert stats["invites_accepted"] == 1
        assert stats["invites_declined"] == 1
        assert stats["acceptance_rate"] == 50.0
        assert stats["last_checked"] == NOW.isoformat()
