"""
Email Job Queue

Durable outbound email intents stored in the email_jobs table and delivered
by a periodic dispatch tick.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func

from ..core.database import (
    DatabaseManager,
    EmailJob,
    Integration,
    Meeting,
    User,
    EMAIL_JOB_TYPES,
    MAIL_INTEGRATION_TYPE,
)
from ..core.exceptions import (
    CredentialNotFoundError,
    JobNotFoundError,
    MeetingNotFoundError,
    ValidationError,
)
from ..graph.mail import MailSender
from ..preferences.user_settings import SettingsManager
from ..utils.time_utils import utc_now
from ..utils.validators import validate_email
from .retry import format_retry_info, should_retry
from .templates import RENDERERS


logger = logging.getLogger(__name__)


REMINDER_LEAD = timedelta(hours=24)
FOLLOW_UP_DELAY = timedelta(hours=2)


class EmailJobQueue:
    """
    Enqueues and dispatches email jobs.

    Usage:
        queue = EmailJobQueue(db, EmailSender(graph_client))
        queue.schedule_reminder(meeting_id)
        stats = queue.dispatch_due()
    """

    def __init__(
        self,
        db: DatabaseManager,
        sender: MailSender,
        settings: Optional[SettingsManager] = None,
        max_retries: int = 3,
    ):
        """
        Initialize email job queue.

        Args:
            db: DatabaseManager instance
            sender: Mail sender used at dispatch
            settings: SettingsManager for the sender display name
            max_retries: Retry budget written onto new jobs
        """
        self.db = db
        self.sender = sender
        self.settings = settings or SettingsManager(db)
        self.max_retries = max_retries

    # ========================================================================
    # ENQUEUE
    # ========================================================================

    def enqueue(
        self,
        user_id: int,
        meeting_id: int,
        job_type: str,
        scheduled_at: Optional[datetime] = None,
        recipient_email: Optional[str] = None,
        subject: Optional[str] = None,
        body_html: Optional[str] = None,
    ) -> int:
        """
        Create a pending job.

        Returns:
            ID of the created job

        Raises:
            ValidationError: If job_type is unknown
        """
        if job_type not in EMAIL_JOB_TYPES:
            raise ValidationError(f"Unknown email job type '{job_type}'")

        session = self.db.get_session()
        try:
            job = EmailJob(
                user_id=user_id,
                meeting_id=meeting_id,
                job_type=job_type,
                status="pending",
                scheduled_at=scheduled_at or utc_now(),
                retry_count=0,
                max_retries=self.max_retries,
                recipient_email=recipient_email,
                subject=subject,
                body_html=body_html,
            )
            session.add(job)
            session.commit()
            logger.info(f"Enqueued {job_type} job {job.id} for meeting {meeting_id} at {job.scheduled_at}")
            return job.id
        except Exception as e:
            session.rollback()
            logger.error(f"Failed to enqueue {job_type} job for meeting {meeting_id}: {e}")
            raise
        finally:
            session.close()

    def schedule_confirmation(self, meeting_id: int) -> int:
        """Confirmation sent on the next dispatch tick."""
        meeting = self.db.get_meeting_by_id(meeting_id)
        return self.enqueue(meeting.user_id, meeting.id, "confirmation")

    def schedule_reminder(self, meeting_id: int) -> int:
        """Reminder 24 hours before the meeting starts."""
        meeting = self.db.get_meeting_by_id(meeting_id)
        return self.enqueue(meeting.user_id, meeting.id, "reminder", scheduled_at=meeting.start_time - REMINDER_LEAD)

    def schedule_follow_up(self, meeting_id: int) -> int:
        """Follow-up 2 hours after the meeting starts."""
        meeting = self.db.get_meeting_by_id(meeting_id)
        return self.enqueue(
            meeting.user_id, meeting.id, "follow_up", scheduled_at=meeting.start_time + FOLLOW_UP_DELAY
        )

    def get_job(self, job_id: int) -> EmailJob:
        """
        Raises:
            JobNotFoundError: If no job has this ID
        """
        with self.db.get_session() as session:
            job = session.get(EmailJob, job_id)
            if not job:
                raise JobNotFoundError(f"Email job {job_id} not found")
            return job

    def cancel_job(self, job_id: int, reason: Optional[str] = None) -> EmailJob:
        """
        Fail a pending job so it is never sent.

        The last error is kept unless a reason is given.

        Raises:
            JobNotFoundError: If no job has this ID
        """
        session = self.db.get_session()
        try:
            job = session.get(EmailJob, job_id)
            if not job:
                raise JobNotFoundError(f"Email job {job_id} not found")
            if job.status != "pending":
                logger.warning(f"Job {job_id} is {job.status}, not cancelling")
                return job

            job.status = "failed"
            if reason:
                job.error_message = reason
            elif not job.error_message:
                job.error_message = "cancelled"
            session.commit()
            logger.info(f"Cancelled job {job_id}: {job.error_message}")
            return job
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ========================================================================
    # DISPATCH
    # ========================================================================

    def dispatch_due(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Deliver every pending job whose scheduled time has passed.

        Returns:
            Counts: processed, sent, retrying, failed
        """
        now = now or utc_now()
        stats = {"processed": 0, "sent": 0, "retrying": 0, "failed": 0}

        with self.db.get_session() as session:
            due_ids = [
                row[0]
                for row in session.query(EmailJob.id)
                .filter(EmailJob.status == "pending", EmailJob.scheduled_at <= now)
                .order_by(EmailJob.scheduled_at, EmailJob.id)
                .all()
            ]

        if due_ids:
            logger.info(f"Dispatching {len(due_ids)} due email job(s)")

        for job_id in due_ids:
            try:
                outcome = self._process_job(job_id, now)
            except Exception as e:
                logger.error(f"Unexpected error dispatching job {job_id}: {e}", exc_info=True)
                continue
            if outcome == "skipped":
                continue
            stats["processed"] += 1
            stats[outcome] += 1

        return stats

    def dispatch_job(self, job_id: int, now: Optional[datetime] = None) -> EmailJob:
        """
        Deliver one job immediately, ignoring its scheduled time.

        Returns:
            The job after the attempt (status sent, pending or failed)
        """
        self._process_job(job_id, now or utc_now())
        return self.get_job(job_id)

    def _process_job(self, job_id: int, now: datetime) -> str:
        session = self.db.get_session()
        try:
            job = session.get(EmailJob, job_id)
            if job is None or job.status != "pending":
                return "skipped"

            try:
                recipient, subject, body_html, credential = self._prepare(session, job)
                self.sender.send(credential, recipient, subject, body_html)
            except Exception as e:
                outcome = self._record_failure(job, e)
                session.commit()
                return outcome

            job.status = "sent"
            job.sent_at = now
            job.error_message = None
            session.commit()
            logger.info(f"Sent {job.job_type} job {job.id} for meeting {job.meeting_id}")
            return "sent"
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _prepare(self, session, job: EmailJob):
        """
        Resolve recipient, content and credential for a job.

        Raises:
            MeetingNotFoundError: If the job's meeting is gone
            CredentialNotFoundError: If the user has no mail integration
            ValidationError: If there is nobody to send to
        """
        meeting = session.get(Meeting, job.meeting_id)
        if meeting is None:
            raise MeetingNotFoundError("meeting not found")

        credential = (
            session.query(Integration)
            .filter(
                Integration.user_id == job.user_id,
                Integration.type == MAIL_INTEGRATION_TYPE,
                Integration.is_active.is_(True),
            )
            .first()
        )
        if credential is None:
            raise CredentialNotFoundError("credential not found")

        recipient = job.recipient_email
        if not recipient:
            if job.job_type == "calendar_deletion":
                user = session.get(User, job.user_id)
                recipient = user.email if user else None
            else:
                recipient = meeting.attendee_email
        if not recipient:
            raise ValidationError("no recipient email")
        if not validate_email(recipient):
            raise ValidationError(f"invalid recipient email: {recipient}")

        if job.subject and job.body_html:
            return recipient, job.subject, job.body_html, credential

        renderer = RENDERERS.get(job.job_type)
        if renderer is None:
            raise ValidationError(f"no template for {job.job_type} job")
        sender_name = self.settings.get_settings(job.user_id).sender_name
        subject, body_html = renderer(meeting, sender_name)
        return recipient, subject, body_html, credential

    def _record_failure(self, job: EmailJob, error: Exception) -> str:
        job.retry_count += 1
        job.error_message = str(error)

        if should_retry(job.retry_count, job.max_retries, error):
            logger.warning(
                f"Job {job.id} ({job.job_type}) failed, will retry next tick "
                f"[{format_retry_info(job.retry_count, job.max_retries)}]: {error}"
            )
            return "retrying"

        job.status = "failed"
        logger.error(
            f"Job {job.id} ({job.job_type}) failed permanently "
            f"[{format_retry_info(job.retry_count, job.max_retries)}]: {error}"
        )
        return "failed"

    # ========================================================================
    # MONITORING
    # ========================================================================

    def get_queue_stats(self, user_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Queue statistics.

        Returns:
            Dictionary with by_status, by_type, due_now and oldest_pending
        """
        now = utc_now()
        with self.db.get_session() as session:
            base = session.query(EmailJob)
            if user_id is not None:
                base = base.filter(EmailJob.user_id == user_id)

            by_status = {status: 0 for status in ("pending", "sent", "failed")}
            for status, count in (
                base.with_entities(EmailJob.status, func.count(EmailJob.id)).group_by(EmailJob.status).all()
            ):
                by_status[status] = count

            by_type = dict(
                base.with_entities(EmailJob.job_type, func.count(EmailJob.id)).group_by(EmailJob.job_type).all()
            )

            pending = base.filter(EmailJob.status == "pending")
            due_now = pending.filter(EmailJob.scheduled_at <= now).count()
            oldest = pending.with_entities(func.min(EmailJob.scheduled_at)).scalar()

        return {
            "by_status": by_status,
            "by_type": by_type,
            "due_now": due_now,
            "oldest_pending": oldest.isoformat() if oldest else None,
        }
