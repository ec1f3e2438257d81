"""
Auto-Reschedule Coordinator

Offers a new time to attendees who missed their meeting. Runs on a timer
and can be triggered manually for a single meeting.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ..core.database import DatabaseManager, Meeting
from ..jobs.email_queue import EmailJobQueue
from ..jobs.templates import render_reschedule_offer
from ..preferences.user_settings import SettingsManager, UserSettings
from ..utils.time_utils import utc_now
from .slot_finder import SLOT_LENGTH, SlotFinder, SlotPolicy


logger = logging.getLogger(__name__)


OPTED_OUT_REASON = "Auto-reschedule disabled for user"
NO_SLOT_REASON = "No available time slots found"
MAX_ATTEMPTS_REASON = "Maximum reschedule attempts reached"


@dataclass
class RescheduleResult:
    """Outcome of one reschedule attempt."""

    meeting_id: int
    attempt_number: int
    outcome: str  # 'sent', 'skipped', 'send_failed', 'error'
    email_sent: bool = False
    proposed_time: Optional[datetime] = None
    job_id: Optional[int] = None
    reason: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome == "sent"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["proposed_time"] = self.proposed_time.isoformat() if self.proposed_time else None
        return data


class AutoRescheduleCoordinator:
    """
    Usage:
        coordinator = AutoRescheduleCoordinator(db, queue)
        results = coordinator.process_due()
    """

    def __init__(
        self,
        db: DatabaseManager,
        queue: EmailJobQueue,
        slot_finder: Optional[SlotFinder] = None,
        settings: Optional[SettingsManager] = None,
    ):
        self.db = db
        self.queue = queue
        self.slot_finder = slot_finder or SlotFinder(db)
        self.settings = settings or SettingsManager(db)

    def process_due(self, now: Optional[datetime] = None) -> List[RescheduleResult]:
        """
        Attempt a reschedule for every eligible no-show.

        Eligible: status no_show, marked at least reschedule_delay_hours ago and
        fewer than max_reschedule_attempts attempts so far (per-user settings).
        """
        now = now or utc_now()

        with self.db.get_session() as session:
            candidates = (
                session.query(Meeting)
                .filter(Meeting.status == "no_show", Meeting.no_show_marked_at.isnot(None))
                .order_by(Meeting.no_show_marked_at, Meeting.id)
                .all()
            )

        user_settings: Dict[int, UserSettings] = {}
        results = []

        for meeting in candidates:
            try:
                if meeting.user_id not in user_settings:
                    user_settings[meeting.user_id] = self.settings.get_settings(meeting.user_id)
                settings = user_settings[meeting.user_id]

                if meeting.no_show_marked_at > now - timedelta(hours=settings.reschedule_delay_hours):
                    continue
                if meeting.auto_reschedule_attempts >= settings.max_reschedule_attempts:
                    continue

                results.append(self._attempt(meeting, settings, now))
            except Exception as e:
                logger.error(f"Error processing reschedule for meeting {meeting.id}: {e}", exc_info=True)
                results.append(
                    RescheduleResult(
                        meeting_id=meeting.id,
                        attempt_number=meeting.auto_reschedule_attempts + 1,
                        outcome="error",
                        reason=str(e),
                    )
                )

        if results:
            sent = sum(1 for r in results if r.success)
            logger.info(f"Auto-reschedule processed {len(results)} meeting(s), {sent} offer(s) sent")
        return results

    def trigger_for_meeting(self, meeting_id: int, now: Optional[datetime] = None) -> RescheduleResult:
        """
        Attempt a reschedule for one meeting regardless of status and delay.

        Raises:
            MeetingNotFoundError: If the meeting does not exist
        """
        now = now or utc_now()
        meeting = self.db.get_meeting_by_id(meeting_id)
        settings = self.settings.get_settings(meeting.user_id)

        if meeting.auto_reschedule_attempts >= settings.max_reschedule_attempts:
            logger.info(f"Meeting {meeting_id} already had {meeting.auto_reschedule_attempts} reschedule attempt(s)")
            return RescheduleResult(
                meeting_id=meeting_id,
                attempt_number=meeting.auto_reschedule_attempts,
                outcome="skipped",
                reason=MAX_ATTEMPTS_REASON,
            )

        return self._attempt(meeting, settings, now)

    def _attempt(self, meeting: Meeting, settings: UserSettings, now: datetime) -> RescheduleResult:
        attempt_number = meeting.auto_reschedule_attempts + 1

        if not settings.auto_reschedule_enabled:
            return RescheduleResult(
                meeting_id=meeting.id, attempt_number=attempt_number, outcome="skipped", reason=OPTED_OUT_REASON
            )

        result = RescheduleResult(meeting_id=meeting.id, attempt_number=attempt_number, outcome="error")
        try:
            search_from = max(meeting.start_time, now)
            slot = self.slot_finder.find_next_slot(meeting.user_id, search_from, SlotPolicy.from_settings(settings))

            if slot is None:
                result.outcome = "skipped"
                result.reason = NO_SLOT_REASON
            else:
                result.proposed_time = slot
                self._send_offer(meeting, slot, attempt_number, settings, now, result)
        except Exception as e:
            logger.error(f"Reschedule attempt {attempt_number} for meeting {meeting.id} failed: {e}", exc_info=True)
            result.outcome = "error"
            result.reason = str(e)

        self._record_attempt(meeting, result, now)
        return result

    def _send_offer(
        self,
        meeting: Meeting,
        slot: datetime,
        attempt_number: int,
        settings: UserSettings,
        now: datetime,
        result: RescheduleResult,
    ) -> None:
        subject, body_html = render_reschedule_offer(meeting, slot, attempt_number, settings.sender_name)
        job_id = self.queue.enqueue(
            meeting.user_id,
            meeting.id,
            "no_show_reschedule",
            scheduled_at=now,
            recipient_email=meeting.attendee_email,
            subject=subject,
            body_html=body_html,
        )
        result.job_id = job_id

        job = self.queue.dispatch_job(job_id, now)
        if job.status == "sent":
            result.outcome = "sent"
            result.email_sent = True
            logger.info(f"Sent reschedule offer {attempt_number} for meeting {meeting.id}: {slot:%Y-%m-%d %H:%M}")
            return

        # The proposed slot goes stale; never let the queue retry this offer
        if job.status == "pending":
            job = self.queue.cancel_job(job_id)
        result.outcome = "send_failed"
        result.reason = job.error_message
        logger.warning(f"Reschedule offer for meeting {meeting.id} not sent: {job.error_message}")

    def _record_attempt(self, meeting: Meeting, result: RescheduleResult, now: datetime) -> None:
        fields = {
            "auto_reschedule_attempts": result.attempt_number,
            "last_reschedule_attempt": now,
            "reschedule_email_sent": result.email_sent,
        }
        if meeting.original_meeting_time is None:
            fields["original_meeting_time"] = meeting.start_time
        if result.email_sent:
            fields["start_time"] = result.proposed_time
            fields["end_time"] = result.proposed_time + SLOT_LENGTH
            fields["status"] = "pending"

        self.db.update_meeting(meeting.id, **fields)

    def get_reschedule_stats(self, user_id: int) -> Dict[str, Any]:
        """Attempt totals across a user's meetings."""
        with self.db.get_session() as session:
            rows = (
                session.query(Meeting.auto_reschedule_attempts, Meeting.reschedule_email_sent)
                .filter(Meeting.user_id == user_id, Meeting.auto_reschedule_attempts > 0)
                .all()
            )

        total_attempts = sum(row.auto_reschedule_attempts for row in rows)
        successful = sum(1 for row in rows if row.reschedule_email_sent)
        return {
            "total_attempts": total_attempts,
            "successful_reschedules": successful,
            "failed_attempts": total_attempts - successful,
            "meetings_with_reschedules": len(rows),
            "average_attempts_per_meeting": round(total_attempts / len(rows), 2) if rows else 0.0,
        }
