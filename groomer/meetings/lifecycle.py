"""
Meeting lifecycle transitions that are triggered by a person rather than a poller.
"""

import logging
from datetime import datetime
from typing import Optional

from ..core.database import DatabaseManager, Meeting
from ..core.exceptions import ValidationError
from ..utils.time_utils import utc_now


logger = logging.getLogger(__name__)


NO_SHOW_REASONS = ("did_not_attend", "cancelled_late", "rescheduled_no_show")


class MeetingLifecycle:
    """
    Usage:
        lifecycle = MeetingLifecycle(db)
        lifecycle.mark_no_show(meeting_id)
    """

    def __init__(self, db: DatabaseManager):
        self.db = db

    def mark_no_show(
        self, meeting_id: int, reason: str = "did_not_attend", now: Optional[datetime] = None
    ) -> Meeting:
        """
        Mark a finished meeting as a no-show.

        The marker timestamp is set once; marking again keeps the first timestamp.

        Raises:
            MeetingNotFoundError: If the meeting does not exist
            ValidationError: If the meeting has not ended yet or the reason is unknown
        """
        if reason not in NO_SHOW_REASONS:
            raise ValidationError(f"Unknown no-show reason '{reason}' (expected one of {', '.join(NO_SHOW_REASONS)})")

        now = now or utc_now()
        meeting = self.db.get_meeting_by_id(meeting_id)

        if meeting.end_time > now:
            raise ValidationError(f"Meeting {meeting_id} has not ended yet (ends {meeting.end_time:%Y-%m-%d %H:%M})")
        if meeting.status == "cancelled":
            raise ValidationError(f"Meeting {meeting_id} is cancelled")

        fields = {"status": "no_show", "no_show_reason": reason}
        if meeting.no_show_marked_at is None:
            fields["no_show_marked_at"] = now

        updated = self.db.update_meeting(meeting_id, **fields)
        logger.info(f"Meeting {meeting_id} marked no-show ({reason})")
        return updated
