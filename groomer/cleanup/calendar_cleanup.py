"""
Calendar Cleanup Poller

Removes disqualified meetings from the calendars of users who opted in.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func

from ..calendar.providers import CalendarRegistry
from ..core.database import DatabaseManager, Meeting
from ..jobs.email_queue import EmailJobQueue
from ..preferences.user_settings import SettingsManager, UserSettings
from ..utils.time_utils import utc_now


logger = logging.getLogger(__name__)


class CalendarCleanup:
    """
    Usage:
        cleanup = CalendarCleanup(db, registry, queue)
        stats = cleanup.run_cleanup()
    """

    def __init__(
        self,
        db: DatabaseManager,
        calendars: CalendarRegistry,
        queue: EmailJobQueue,
        settings: Optional[SettingsManager] = None,
    ):
        self.db = db
        self.calendars = calendars
        self.queue = queue
        self.settings = settings or SettingsManager(db)

    def run_cleanup(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Clean up every opted-in user's calendar."""
        now = now or utc_now()
        stats = {"users": 0, "deleted": 0, "errors": 0}

        for user_id in self.db.get_all_user_ids():
            try:
                settings = self.settings.get_settings(user_id)
                if not settings.auto_delete_disqualified:
                    continue
                result = self._cleanup(user_id, settings, now)
            except Exception as e:
                logger.error(f"Calendar cleanup failed for user {user_id}: {e}", exc_info=True)
                stats["errors"] += 1
                continue
            stats["users"] += 1
            stats["deleted"] += result["deleted"]
            stats["errors"] += len(result["errors"])

        if stats["deleted"] or stats["errors"]:
            logger.info(
                f"Calendar cleanup: {stats['deleted']} meeting(s) removed for {stats['users']} user(s), "
                f"{stats['errors']} errors"
            )
        return stats

    def cleanup_user(self, user_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Manual trigger for one user.

        Runs even if the user has not opted in to automatic cleanup.

        Returns:
            {'deleted': int, 'errors': [str]}
        """
        settings = self.settings.get_settings(user_id)
        return self._cleanup(user_id, settings, now or utc_now())

    def _pending_meetings(self, user_id: int) -> List[Meeting]:
        with self.db.get_session() as session:
            return (
                session.query(Meeting)
                .filter(
                    Meeting.user_id == user_id,
                    Meeting.status == "disqualified",
                    Meeting.calendar_deleted.is_(False),
                )
                .order_by(Meeting.start_time)
                .all()
            )

    def _cleanup(self, user_id: int, settings: UserSettings, now: datetime) -> Dict[str, Any]:
        deleted = 0
        errors = []

        for meeting in self._pending_meetings(user_id):
            try:
                self._remove_meeting(meeting, settings, now)
                deleted += 1
            except Exception as e:
                logger.error(f"Error removing meeting {meeting.id} from calendar: {e}", exc_info=True)
                errors.append(f"Failed to delete meeting {meeting.title}: {e}")

        return {"deleted": deleted, "errors": errors}

    def _remove_meeting(self, meeting: Meeting, settings: UserSettings, now: datetime) -> None:
        self._cancel_in_calendar(meeting)

        self.db.update_meeting(meeting.id, calendar_deleted=True, deleted_at=now, status="cancelled")
        logger.info(f"Removed disqualified meeting {meeting.id} ({meeting.title}) from calendar")

        if settings.notify_calendar_deletions:
            self.queue.enqueue(meeting.user_id, meeting.id, "calendar_deletion", scheduled_at=now)

    def _cancel_in_calendar(self, meeting: Meeting) -> None:
        """Cancel in the provider when possible; failures are logged and ignored."""
        if meeting.is_calendly:
            return

        resolved = self.calendars.resolve(meeting)
        if resolved is None:
            logger.debug(f"No calendar provider for meeting {meeting.id} ({meeting.external_id})")
            return

        provider, credential = resolved
        try:
            provider.cancel_event(credential, meeting.provider_event_id)
        except Exception as e:
            logger.warning(f"Could not cancel calendar event for meeting {meeting.id}: {e}")

    def get_cleanup_stats(self, user_id: int) -> Dict[str, int]:
        with self.db.get_session() as session:
            total_disqualified = (
                session.query(func.count(Meeting.id))
                .filter(
                    Meeting.user_id == user_id,
                    (Meeting.status == "disqualified") | Meeting.calendar_deleted.is_(True),
                )
                .scalar()
            )
            deleted = (
                session.query(func.count(Meeting.id))
                .filter(Meeting.user_id == user_id, Meeting.calendar_deleted.is_(True))
                .scalar()
            )

        return {
            "total_disqualified": total_disqualified,
            "deleted_from_calendar": deleted,
            "pending_deletion": total_disqualified - deleted,
        }
