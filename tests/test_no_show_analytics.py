"""
Unit tests for no-show analytics.
"""

from datetime import datetime, timedelta
from decimal import Decimal

from groomer.reporting.no_show_analytics import NoShowAnalytics, company_size_bucket, revenue_bucket
from groomer.scheduling.auto_reschedule import AutoRescheduleCoordinator
from tests.factories import BASE_TIME, DatabaseTestFactory, persist


class TestBuckets:

    def test_company_size(self):
        assert company_size_bucket(None) == "Unknown"
        assert company_size_bucket(10) == "1-10"
        assert company_size_bucket(11) == "11-50"
        assert company_size_bucket(200) == "51-200"
        assert company_size_bucket(1000) == "201-1000"
        assert company_size_bucket(1001) == "1000+"

    def test_revenue(self):
        assert revenue_bucket(None) == "Unknown"
        assert revenue_bucket(Decimal("999999")) == "<$1M"
        assert revenue_bucket(Decimal("1000000")) == "$1M-$10M"
        assert revenue_bucket(Decimal("25000000")) == "$10M-$50M"
        assert revenue_bucket(Decimal("50000000")) == "$50M+"


class TestNoShowAnalytics:

    def test_breakdown(self, test_db):
        user = persist(test_db, DatabaseTestFactory.create_user())
        marked = BASE_TIME + timedelta(hours=1)
        persist(
            test_db,
            DatabaseTestFactory.create_meeting(
                user.id, status="no_show", no_show_marked_at=marked, industry="Software", company_size=30
            ),
            # Rescheduled after a no-show keeps its marker
            DatabaseTestFactory.create_meeting(
                user.id,
                start_time=BASE_TIME + timedelta(hours=4),
                status="pending",
                no_show_marked_at=marked,
                revenue=Decimal("2000000"),
            ),
            DatabaseTestFactory.create_meeting(user.id, status="qualified"),
            DatabaseTestFactory.create_meeting(user.id, status="qualified"),
        )

        report = NoShowAnalytics(test_db).get_no_show_analytics(user.id)

        assert report["total_meetings"] == 4
        assert report["total_no_shows"] == 2
        assert report["no_show_rate"] == 50.0
        assert report["by_hour"] == {10: 1, 14: 1}
        assert report["by_industry"] == {"Software": 1, "Unknown": 1}
        assert report["by_company_size"] == {"11-50": 1, "Unknown": 1}
        assert report["by_revenue"] == {"Unknown": 1, "$1M-$10M": 1}

    def test_date_range_filters_on_start_time(self, test_db):
        user = persist(test_db, DatabaseTestFactory.create_user())
        persist(
            test_db,
            DatabaseTestFactory.create_meeting(user.id, status="no_show", no_show_marked_at=BASE_TIME),
            DatabaseTestFactory.create_meeting(
                user.id, start_time=BASE_TIME + timedelta(days=10), status="no_show", no_show_marked_at=BASE_TIME
            ),
        )

        report = NoShowAnalytics(test_db).get_no_show_analytics(
            user.id, start=BASE_TIME - timedelta(days=1), end=datetime(2025, 3, 10)
        )

        assert report["total_meetings"] == 1
        assert report["total_no_shows"] == 1

    def test_no_meetings(self, test_db):
        user = persist(test_db, DatabaseTestFactory.create_user())

        report = NoShowAnalytics(test_db).get_no_show_analytics(user.id)

        assert report["total_no_shows"] == 0
        assert report["no_show_rate"] == 0.0


class TestRescheduledNoShows:
    """A no-show stays at the hour and day it happened after the meeting is moved."""

    def test_rescheduled_no_show_keeps_original_hour(self, test_db, email_queue):
        user = persist(
            test_db,
            DatabaseTestFactory.create_user(
                settings={"auto_reschedule_enabled": True, "reschedule_delay_hours": 2, "max_reschedule_attempts": 2}
            ),
        )
        persist(test_db, DatabaseTestFactory.create_integration(user.id, "outlook"))
        start = BASE_TIME.replace(hour=14)
        meeting = persist(
            test_db,
            DatabaseTestFactory.create_meeting(
                user.id, start_time=start, status="no_show", no_show_marked_at=start + timedelta(hours=1)
            ),
        )
        analytics = NoShowAnalytics(test_db)
        monday = {"start": BASE_TIME.replace(hour=0), "end": BASE_TIME.replace(hour=0) + timedelta(days=1)}
        before = analytics.get_no_show_analytics(user.id, **monday)

        results = AutoRescheduleCoordinator(test_db, email_queue).process_due(start + timedelta(hours=5))
        assert results[0].success
        assert test_db.get_meeting_by_id(meeting.id).start_time.date() != start.date()

        after = analytics.get_no_show_analytics(user.id, **monday)
        assert before["by_hour"] == {14: 1}
        assert after == before
