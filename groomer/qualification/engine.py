"""
Qualification Engine

Evaluates a user's active qualification rules against the facts stored on a
meeting and assigns one of qualified / disqualified / needs_review.
"""

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Any, List, Optional, Tuple

from ..core.database import DatabaseManager, Meeting, QualificationRule
from ..core.exceptions import ValidationError
from ..preferences.user_settings import SettingsManager
from ..utils.time_utils import utc_now
from ..utils.validators import is_blank, parse_amount
from .rules import NUMERIC_FIELDS, RuleManager

if TYPE_CHECKING:
    from ..calendar.providers import CalendarRegistry


logger = logging.getLogger(__name__)


QUALIFIED_REASON = "Meets all qualification criteria"
NEEDS_REVIEW_REASON = "Missing required data for automatic qualification"
MANUAL_REVIEW_PREFIX = "Manual review:"

# Missing two or more of these sends an otherwise passing meeting to review
CRITICAL_FIELDS = ("revenue", "company_size", "company")
MIN_MISSING_FOR_REVIEW = 2

MANUAL_STATUSES = ("qualified", "disqualified", "needs_review")


def _display(value: Any) -> str:
    """Render a compared value for a failure explanation."""
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return str(int(value))
        return str(value.normalize())
    return str(value)


def evaluate_rule(meeting: Meeting, rule: QualificationRule) -> Optional[str]:
    """
    Evaluate one rule against a meeting.

    Returns:
        None if the rule passes, otherwise a human-readable failure reason
    """
    raw = getattr(meeting, rule.field, None)
    if is_blank(raw):
        return f"missing {rule.field} data"

    if rule.field in NUMERIC_FIELDS:
        actual = parse_amount(raw)
        if actual is None:
            return f"invalid {rule.field} data"
        expected = parse_amount(rule.value)
        if expected is None:
            # Rules are validated on creation; rows edited directly in the database can still be bad
            return f"{rule.name}: invalid rule value {rule.value!r}"
    else:
        actual = str(raw).strip()
        expected = rule.value.strip()

    op = rule.operator
    if op == "gte":
        passed = actual >= expected
    elif op == "lte":
        passed = actual <= expected
    elif op == "eq":
        passed = actual == expected
    elif op == "ne":
        passed = actual != expected
    elif op == "contains":
        passed = str(expected).lower() in str(actual).lower()
    elif op == "not_contains":
        passed = str(expected).lower() not in str(actual).lower()
    else:
        passed = False

    if passed:
        return None
    return f"{rule.name}: {_display(actual)} {op} {_display(expected)}"


def needs_manual_review(meeting: Meeting) -> bool:
    missing = sum(1 for field in CRITICAL_FIELDS if is_blank(getattr(meeting, field, None)))
    return missing >= MIN_MISSING_FOR_REVIEW


def evaluate(meeting: Meeting, rules: List[QualificationRule]) -> Tuple[str, str]:
    """
    Classify a meeting against an ordered rule list.

    Returns:
        (status, reason) tuple
    """
    failures = []
    for rule in rules:
        failure = evaluate_rule(meeting, rule)
        if failure:
            failures.append(failure)

    if failures:
        return "disqualified", "; ".join(failures)
    if needs_manual_review(meeting):
        return "needs_review", NEEDS_REVIEW_REASON
    return "qualified", QUALIFIED_REASON


def is_automated_reason(reason: Optional[str]) -> bool:
    """True when a verdict was produced by the engine rather than a human."""
    return not is_blank(reason) and not reason.startswith(MANUAL_REVIEW_PREFIX)


class QualificationEngine:
    """
    Assigns qualification status to meetings.

    Usage:
        engine = QualificationEngine(db, calendars=registry)
        status, reason = engine.qualify_meeting(meeting_id)
    """

    def __init__(
        self,
        db: DatabaseManager,
        calendars: Optional["CalendarRegistry"] = None,
        rules: Optional[RuleManager] = None,
        settings: Optional[SettingsManager] = None,
    ):
        """
        Initialize qualification engine.

        Args:
            db: DatabaseManager instance
            calendars: Calendar registry used to free slots of disqualified meetings
            rules: RuleManager (created from db if omitted)
            settings: SettingsManager (created from db if omitted)
        """
        self.db = db
        self.calendars = calendars
        self.rules = rules or RuleManager(db)
        self.settings = settings or SettingsManager(db)

    def qualify_meeting(self, meeting_id: int) -> Tuple[str, str]:
        """
        Evaluate active rules and persist the verdict.

        Raises:
            MeetingNotFoundError: If the meeting does not exist
        """
        meeting = self.db.get_meeting_by_id(meeting_id)
        active_rules = self.rules.get_active_rules(meeting.user_id)

        status, reason = evaluate(meeting, active_rules)
        self._apply_status(meeting, status, reason)

        logger.info(f"Meeting {meeting_id} {status} ({len(active_rules)} rules): {reason}")
        return status, reason

    def set_manual_status(self, meeting_id: int, status: str, note: Optional[str] = None) -> Meeting:
        """
        Record a human verdict.

        Raises:
            MeetingNotFoundError: If the meeting does not exist
            ValidationError: If status is not a qualification outcome
        """
        if status not in MANUAL_STATUSES:
            raise ValidationError(f"Manual status must be one of {', '.join(MANUAL_STATUSES)}")

        meeting = self.db.get_meeting_by_id(meeting_id)
        reason = f"{MANUAL_REVIEW_PREFIX} {note.strip()}" if not is_blank(note) else f"{MANUAL_REVIEW_PREFIX} {status}"
        updated = self._apply_status(meeting, status, reason)

        logger.info(f"Meeting {meeting_id} manually set to {status}")
        return updated

    def _apply_status(self, meeting: Meeting, status: str, reason: str) -> Meeting:
        previous = meeting.status
        updated = self.db.update_meeting(
            meeting.id, status=status, qualification_reason=reason, last_processed=utc_now()
        )

        if status == "disqualified" and previous != "disqualified":
            self._free_calendar_slot(updated)

        return updated

    def _free_calendar_slot(self, meeting: Meeting) -> None:
        """Mark the event free in its source calendar; failures are logged, never raised."""
        if self.calendars is None or meeting.is_calendly:
            return

        try:
            if not self.settings.get_settings(meeting.user_id).auto_free_calendar_slots:
                return

            resolved = self.calendars.resolve(meeting)
            if resolved is None:
                logger.debug(f"No calendar provider for meeting {meeting.id} ({meeting.external_id})")
                return

            provider, credential = resolved
            provider.mark_event_free(credential, meeting.provider_event_id)
            logger.info(f"Freed calendar slot for disqualified meeting {meeting.id}")
        except Exception as e:
            logger.warning(f"Failed to free calendar slot for meeting {meeting.id}: {e}", exc_info=True)
