"""
Invite Tracking Poller

Refreshes attendee RSVP state from the source calendar of each recent
meeting and flags meetings whose invite is at risk.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from ..calendar.providers import ACCEPTED, DECLINED, PENDING, UNKNOWN, CalendarRegistry
from ..core.database import DatabaseManager, Meeting
from ..utils.time_utils import utc_now


logger = logging.getLogger(__name__)


def aggregate_invite_status(statuses: Iterable[str]) -> str:
    """
    Overall invite status from per-attendee statuses.

    accepted if anyone accepted; declined if someone declined and nobody is
    still pending; pending if anyone is pending; otherwise unknown.
    """
    statuses = set(statuses)
    if ACCEPTED in statuses:
        return ACCEPTED
    if DECLINED in statuses and PENDING not in statuses:
        return DECLINED
    if PENDING in statuses:
        return PENDING
    return UNKNOWN


def is_at_risk(meeting: Meeting, now: datetime, at_risk_hours: int = 24) -> bool:
    """Declined, or still pending more than at_risk_hours after the last check."""
    if meeting.invite_status == DECLINED:
        return True
    if meeting.invite_status == PENDING and meeting.invite_last_checked is not None:
        return now - meeting.invite_last_checked > timedelta(hours=at_risk_hours)
    return False


class InviteTracker:
    """
    Usage:
        tracker = InviteTracker(db, registry)
        stats = tracker.run_tracking()
    """

    def __init__(
        self,
        db: DatabaseManager,
        calendars: CalendarRegistry,
        lookback_days: int = 30,
        at_risk_hours: int = 24,
    ):
        """
        Initialize invite tracker.

        Args:
            db: DatabaseManager instance
            calendars: Registry resolving meetings to provider + credential
            lookback_days: Meetings starting within this many past days (or later) are tracked
            at_risk_hours: Hours a pending invite may go unanswered before it is at risk
        """
        self.db = db
        self.calendars = calendars
        self.lookback_days = lookback_days
        self.at_risk_hours = at_risk_hours

    def _tracked_meetings(self, now: datetime, user_id: Optional[int] = None) -> List[Meeting]:
        cutoff = now - timedelta(days=self.lookback_days)
        with self.db.get_session() as session:
            query = session.query(Meeting).filter(
                Meeting.start_time >= cutoff,
                Meeting.status != "cancelled",
                Meeting.calendar_deleted.is_(False),
            )
            if user_id is not None:
                query = query.filter(Meeting.user_id == user_id)
            return query.order_by(Meeting.start_time).all()

    def run_tracking(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Refresh every tracked meeting.

        Returns:
            Counts: checked, updated, skipped, errors
        """
        now = now or utc_now()
        stats = {"checked": 0, "updated": 0, "skipped": 0, "errors": 0}

        for meeting in self._tracked_meetings(now):
            stats["checked"] += 1
            try:
                if self.check_meeting(meeting, now):
                    stats["updated"] += 1
                else:
                    stats["skipped"] += 1
            except Exception as e:
                logger.error(f"Error checking invite status for meeting {meeting.id}: {e}", exc_info=True)
                stats["errors"] += 1

        logger.info(
            f"Invite tracking complete: {stats['checked']} checked, {stats['updated']} updated, "
            f"{stats['skipped']} skipped, {stats['errors']} errors"
        )
        return stats

    def check_user(self, user_id: int, now: Optional[datetime] = None) -> Dict[str, int]:
        """Manual trigger for one user's tracked meetings."""
        now = now or utc_now()
        checked = 0
        updated = 0

        for meeting in self._tracked_meetings(now, user_id):
            checked += 1
            try:
                if self.check_meeting(meeting, now):
                    updated += 1
            except Exception as e:
                logger.error(f"Error checking invite status for meeting {meeting.id}: {e}", exc_info=True)

        logger.info(f"Invite check for user {user_id}: {checked} checked, {updated} updated")
        return {"checked": checked, "updated": updated}

    def check_meeting(self, meeting: Meeting, now: datetime) -> bool:
        """
        Refresh one meeting's RSVP state.

        Returns:
            True if the meeting was updated, False if it has no resolvable calendar
        """
        resolved = self.calendars.resolve(meeting)
        if resolved is None:
            logger.debug(f"Skipping invite check for meeting {meeting.id} ({meeting.external_id})")
            return False

        provider, credential = resolved
        responses = provider.get_attendee_responses(credential, meeting.provider_event_id)

        status = aggregate_invite_status(r.status for r in responses)
        self.db.update_meeting(
            meeting.id,
            attendee_responses=[r.to_dict() for r in responses],
            invite_accepted=any(r.status == ACCEPTED for r in responses),
            invite_status=status,
            invite_last_checked=now,
        )
        logger.debug(f"Meeting {meeting.id} invite status: {status} ({len(responses)} attendees)")
        return True

    def get_invite_stats(self, user_id: int) -> Dict[str, Any]:
        """Invite status counts over all of a user's meetings."""
        with self.db.get_session() as session:
            rows = (
                session.query(Meeting.invite_status, Meeting.invite_last_checked)
                .filter(Meeting.user_id == user_id)
                .all()
            )

        stats = {
            "total_meetings": len(rows),
            "invites_accepted": 0,
            "invites_pending": 0,
            "invites_declined": 0,
            "invites_unknown": 0,
            "acceptance_rate": 0.0,
            "last_checked": None,
        }
        last_checked = None
        for row in rows:
            if row.invite_status == ACCEPTED:
                stats["invites_accepted"] += 1
            elif row.invite_status == PENDING:
                stats["invites_pending"] += 1
            elif row.invite_status == DECLINED:
                stats["invites_declined"] += 1
            else:
                stats["invites_unknown"] += 1
            if row.invite_last_checked and (last_checked is None or row.invite_last_checked > last_checked):
                last_checked = row.invite_last_checked

        if rows:
            stats["acceptance_rate"] = round(stats["invites_accepted"] / len(rows) * 100, 2)
        stats["last_checked"] = last_checked.isoformat() if last_checked else None
        return stats

    def get_at_risk_meetings(self, user_id: int, now: Optional[datetime] = None) -> List[Meeting]:
        """Tracked meetings whose invite was declined or has gone unanswered."""
        now = now or utc_now()
        return [m for m in self._tracked_meetings(now, user_id) if is_at_risk(m, now, self.at_risk_hours)]
