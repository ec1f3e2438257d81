"""
Unit tests for the qualification engine.

Covers:
- Per-rule evaluation and failure explanations
- Status precedence (disqualified > needs_review > qualified)
- Persisting verdicts and freeing calendar slots of disqualified meetings
- Manual review verdicts
"""

from decimal import Decimal

import pytest

from groomer.core.exceptions import CalendarAPIError, MeetingNotFoundError, ValidationError
from groomer.qualification.engine import (
    NEEDS_REVIEW_REASON,
    QUALIFIED_REASON,
    QualificationEngine,
    evaluate,
    evaluate_rule,
    is_automated_reason,
)
from tests.factories import DatabaseTestFactory, persist


def _meeting(**fields):
    return DatabaseTestFactory.create_meeting(user_id=1, **fields)


def _rule(field, operator, value, name=None):
    return DatabaseTestFactory.create_rule(1, field, operator, value, name=name)


class TestEvaluateRule:
    """Single rule evaluation."""

    def test_numeric_rule_passes(self):
        meeting = _meeting(revenue=Decimal("2500000"))
        assert evaluate_rule(meeting, _rule("revenue", "gte", "1000000")) is None

    def test_numeric_rule_failure_explains_values(self):
        meeting = _meeting(revenue=Decimal("500000.00"))
        failure = evaluate_rule(meeting, _rule("revenue", "gte", "$1,000,000", name="Min revenue"))
        assert failure == "Min revenue: 500000 gte 1000000"

    def test_missing_field_fails(self):
        meeting = _meeting(revenue=None)
        assert evaluate_rule(meeting, _rule("revenue", "gte", "1000")) == "missing revenue data"

    def test_zero_counts_as_present(self):
        meeting = _meeting(company_size=0)
        assert evaluate_rule(meeting, _rule("company_size", "lte", "10")) is None

    def test_blank_text_counts_as_missing(self):
        meeting = _meeting(industry="   ")
        assert evaluate_rule(meeting, _rule("industry", "eq", "Software")) == "missing industry data"

    def test_contains_is_case_insensitive(self):
        meeting = _meeting(industry="Enterprise SOFTWARE")
        assert evaluate_rule(meeting, _rule("industry", "contains", "software")) is None
        assert evaluate_rule(meeting, _rule("industry", "not_contains", "software")) is not None

    def test_eq_is_exact_after_strip(self):
        meeting = _meeting(company=" Acme ")
        assert evaluate_rule(meeting, _rule("company", "eq", "Acme")) is None
        assert evaluate_rule(meeting, _rule("company", "eq", "acme")) is not None


class TestEvaluate:
    """Status precedence across a rule list."""

    def test_all_rules_pass_with_complete_data(self):
        meeting = _meeting(revenue=Decimal("5000000"), company_size=120, company="Acme")
        status, reason = evaluate(meeting, [_rule("revenue", "gte", "1000000")])
        assert status == "qualified"
        assert reason == QUALIFIED_REASON

    def test_no_rules_still_checks_completeness(self):
        meeting = _meeting(company="Acme")
        status, reason = evaluate(meeting, [])
        assert status == "needs_review"
        assert reason == NEEDS_REVIEW_REASON

    def test_one_missing_critical_field_is_still_qualified(self):
        meeting = _meeting(revenue=Decimal("100"), company="Acme")
        status, _ = evaluate(meeting, [])
        assert status == "qualified"

    def test_disqualified_dominates_needs_review(self):
        meeting = _meeting(industry="Retail")
        status, reason = evaluate(meeting, [_rule("industry", "eq", "Software", name="Industry")])
        assert status == "disqualified"
        assert reason == "Industry: Retail eq Software"

    def test_failures_are_joined_in_rule_order(self):
        meeting = _meeting(revenue=Decimal("10"), company_size=3, company="Acme")
        rules = [_rule("revenue", "gte", "1000", name="Revenue"), _rule("company_size", "gte", "50", name="Size")]
        status, reason = evaluate(meeting, rules)
        assert status == "disqualified"
        assert reason == "Revenue: 10 gte 1000; Size: 3 gte 50"


class TestAutomatedReason:

    def test_manual_prefix_is_not_automated(self):
        assert is_automated_reason(QUALIFIED_REASON)
        assert not is_automated_reason("Manual review: confirmed budget")
        assert not is_automated_reason(None)


class TestQualificationEngine:
    """Persisted verdicts and calendar side effects."""

    @pytest.fixture
    def user(self, test_db):
        return persist(test_db, DatabaseTestFactory.create_user(settings={"auto_free_calendar_slots": True}))

    @pytest.fixture
    def engine(self, test_db, calendars):
        return QualificationEngine(test_db, calendars=calendars)

    def test_qualify_persists_status(self, test_db, engine, user):
        meeting = persist(
            test_db,
            DatabaseTestFactory.create_meeting(user.id, revenue=Decimal("2000000"), company_size=80, company="Acme"),
        )
        persist(test_db, DatabaseTestFactory.create_rule(user.id, "revenue", "gte", "1000000"))

        status, _ = engine.qualify_meeting(meeting.id)

        stored = test_db.get_meeting_by_id(meeting.id)
        assert status == "qualified"
        assert stored.status == "qualified"
        assert stored.qualification_reason == QUALIFIED_REASON
        assert stored.last_processed is not None

    def test_inactive_rules_are_ignored(self, test_db, engine, user):
        meeting = persist(test_db, DatabaseTestFactory.create_meeting(user.id, company_size=5, company="Acme"))
        persist(test_db, DatabaseTestFactory.create_rule(user.id, "company_size", "gte", "100", is_active=False))

        status, _ = engine.qualify_meeting(meeting.id)
        assert status == "qualified"

    def test_disqualification_frees_calendar_slot(self, test_db, engine, user, fake_calendar):
        persist(test_db, DatabaseTestFactory.create_integration(user.id, "outlook"))
        meeting = persist(
            test_db, DatabaseTestFactory.create_meeting(user.id, external_id="outlook_evt1", industry="Retail")
        )
        persist(test_db, DatabaseTestFactory.create_rule(user.id, "industry", "eq", "Software"))

        status, _ = engine.qualify_meeting(meeting.id)

        assert status == "disqualified"
        assert fake_calendar.freed == ["evt1"]

    def test_calendly_meetings_are_never_freed(self, test_db, calendars, user, fake_calendar):
        calendars.providers["calendly"] = fake_calendar
        persist(test_db, DatabaseTestFactory.create_integration(user.id, "calendly"))
        meeting = persist(
            test_db, DatabaseTestFactory.create_meeting(user.id, external_id="calendly_abc", industry="Retail")
        )
        persist(test_db, DatabaseTestFactory.create_rule(user.id, "industry", "eq", "Software"))

        status, _ = QualificationEngine(test_db, calendars=calendars).qualify_meeting(meeting.id)

        assert status == "disqualified"
        assert fake_calendar.freed == []

    def test_slot_not_freed_when_setting_disabled(self, test_db, engine, fake_calendar):
        user = persist(test_db, DatabaseTestFactory.create_user(settings={"auto_free_calendar_slots": False}))
        persist(test_db, DatabaseTestFactory.create_integration(user.id, "outlook"))
        meeting = persist(test_db, DatabaseTestFactory.create_meeting(user.id, industry="Retail"))
        persist(test_db, DatabaseTestFactory.create_rule(user.id, "industry", "eq", "Software"))

        engine.qualify_meeting(meeting.id)
        assert fake_calendar.freed == []

    def test_calendar_failure_does_not_block_verdict(self, test_db, engine, user, fake_calendar):
        fake_calendar.fail_with = CalendarAPIError("calendar unavailable")
        persist(test_db, DatabaseTestFactory.create_integration(user.id, "outlook"))
        meeting = persist(test_db, DatabaseTestFactory.create_meeting(user.id, industry="Retail"))
        persist(test_db, DatabaseTestFactory.create_rule(user.id, "industry", "eq", "Software"))

        status, _ = engine.qualify_meeting(meeting.id)

        assert status == "disqualified"
        assert test_db.get_meeting_by_id(meeting.id).status == "disqualified"

    def test_unknown_meeting_raises(self, engine):
        with pytest.raises(MeetingNotFoundError):
            engine.qualify_meeting(9999)

    def test_manual_status_uses_review_prefix(self, test_db, engine, user):
        meeting = persist(test_db, DatabaseTestFactory.create_meeting(user.id, status="needs_review"))

        updated = engine.set_manual_status(meeting.id, "qualified", "Confirmed budget on call")

        assert updated.status == "qualified"
        assert updated.qualification_reason == "Manual review: Confirmed budget on call"
        assert not is_automated_reason(updated.qualification_reason)

    def test_manual_status_rejects_lifecycle_states(self, test_db, engine, user):
        meeting = persist(test_db, DatabaseTestFactory.create_meeting(user.id))
        with pytest.raises(ValidationError):
            engine.set_manual_status(meeting.id, "no_show")
