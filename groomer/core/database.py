"""
Database models and management for Meeting Groomer.

This module contains all SQLAlchemy models and the DatabaseManager class
for database operations.
"""

from sqlalchemy import (
    create_engine,
    Column,
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    CheckConstraint,
    UniqueConstraint,
    Numeric,
    JSON,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import sessionmaker, relationship, declarative_base
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from typing import Optional, List, Dict, Any
import logging

from .exceptions import DatabaseError, MeetingNotFoundError, UserNotFoundError, ValidationError
from ..utils.time_utils import utc_now
from ..utils.validators import validate_email

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ============================================================================
# CONSTANTS
# ============================================================================

MEETING_STATUSES = ("pending", "qualified", "disqualified", "needs_review", "no_show", "cancelled")
INVITE_STATUSES = ("sent", "accepted", "declined", "pending", "unknown")
INTEGRATION_TYPES = ("google_calendar", "outlook", "calendly")
RULE_FIELDS = ("revenue", "company_size", "industry", "budget", "company")
RULE_OPERATORS = ("gte", "lte", "eq", "ne", "contains", "not_contains")
EMAIL_JOB_TYPES = ("confirmation", "reminder", "follow_up", "no_show_reschedule", "calendar_deletion")
EMAIL_JOB_STATUSES = ("pending", "sent", "failed")

# External id prefixes written by the calendar importers
EXTERNAL_ID_PREFIXES = {
    "gcal_": "google_calendar",
    "outlook_": "outlook",
    "calendly_": "calendly",
}

# Integration whose account sends outbound mail (Graph sendMail)
MAIL_INTEGRATION_TYPE = "outlook"


def _in_clause(values) -> str:
    return ", ".join(f"'{v}'" for v in values)


# ============================================================================
# USERS & INTEGRATIONS
# ============================================================================


class User(Base):
    """Sales users who own meetings, rules and settings."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(500))
    settings = Column(JSONType, default=dict)  # Read-only policy bag (see preferences.user_settings)
    created_at = Column(DateTime, default=utc_now)

    integrations = relationship("Integration", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"


class Integration(Base):
    """Stored provider credential for one user (OAuth handshake happens elsewhere)."""

    __tablename__ = "integrations"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(50), nullable=False)  # 'google_calendar', 'outlook', 'calendly'
    account_email = Column(String(255))  # Mailbox / calendar owner
    access_token = Column(Text)
    refresh_token = Column(Text)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utc_now)

    user = relationship("User", back_populates="integrations")

    __table_args__ = (
        UniqueConstraint("user_id", "type", name="uq_integration_user_type"),
        CheckConstraint(f"type IN ({_in_clause(INTEGRATION_TYPES)})", name="valid_integration_type"),
    )

    def __repr__(self):
        return f"<Integration(id={self.id}, user_id={self.user_id}, type='{self.type}')>"


# ============================================================================
# QUALIFICATION
# ============================================================================


class QualificationRule(Base):
    """User-defined predicate evaluated against meeting facts."""

    __tablename__ = "qualification_rules"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    field = Column(String(50), nullable=False)  # 'revenue', 'company_size', 'industry', 'budget', 'company'
    operator = Column(String(20), nullable=False)  # 'gte', 'lte', 'eq', 'ne', 'contains', 'not_contains'
    value = Column(String(500), nullable=False)
    priority = Column(Integer, default=0, nullable=False)  # Display ordering only
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime, default=utc_now)

    __table_args__ = (
        CheckConstraint(f"field IN ({_in_clause(RULE_FIELDS)})", name="valid_rule_field"),
        CheckConstraint(f"operator IN ({_in_clause(RULE_OPERATORS)})", name="valid_rule_operator"),
    )

    def __repr__(self):
        return f"<QualificationRule(id={self.id}, {self.field} {self.operator} {self.value!r})>"


# ============================================================================
# MEETINGS
# ============================================================================


class Meeting(Base):
    """Imported calendar event or form booking and its lifecycle state."""

    __tablename__ = "meetings"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    external_id = Column(String(500), nullable=False, index=True)  # gcal_..., outlook_..., calendly_...

    # Event metadata
    title = Column(String(500), nullable=False, default="Untitled meeting")
    description = Column(Text)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)
    attendee_email = Column(String(255), index=True)
    attendee_name = Column(String(500))

    # Qualification facts (all optional)
    company = Column(String(500))
    revenue = Column(Numeric(15, 2))
    company_size = Column(Integer)
    industry = Column(String(255))
    budget = Column(Numeric(15, 2))
    form_data = Column(JSONType)

    # Qualification result
    status = Column(String(50), default="pending", nullable=False, index=True)
    qualification_reason = Column(Text)
    last_processed = Column(DateTime)

    # No-show marker (set once)
    no_show_marked_at = Column(DateTime, index=True)
    no_show_reason = Column(String(100))  # 'did_not_attend', 'cancelled_late', 'rescheduled_no_show'

    # Auto-reschedule state
    auto_reschedule_attempts = Column(Integer, default=0, nullable=False)
    last_reschedule_attempt = Column(DateTime)
    reschedule_email_sent = Column(Boolean, default=False, nullable=False)
    original_meeting_time = Column(DateTime)

    # Invite tracking state
    invite_status = Column(String(20))  # None until first check
    invite_accepted = Column(Boolean)
    invite_last_checked = Column(DateTime)
    attendee_responses = Column(JSONType)  # [{email, name, status, response_time}]

    # Calendar cleanup marker
    calendar_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime)

    created_at = Column(DateTime, default=utc_now, index=True)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    email_jobs = relationship("EmailJob", back_populates="meeting", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_meetings_user_status", "user_id", "status"),
        CheckConstraint(f"status IN ({_in_clause(MEETING_STATUSES)})", name="valid_meeting_status"),
        CheckConstraint(
            f"invite_status IS NULL OR invite_status IN ({_in_clause(INVITE_STATUSES)})",
            name="valid_invite_status",
        ),
    )

    @property
    def provider_type(self) -> Optional[str]:
        """Integration type implied by the external id prefix."""
        for prefix, integration_type in EXTERNAL_ID_PREFIXES.items():
            if (self.external_id or "").startswith(prefix):
                return integration_type
        return None

    @property
    def provider_event_id(self) -> str:
        """External id without its provider prefix."""
        for prefix in EXTERNAL_ID_PREFIXES:
            if (self.external_id or "").startswith(prefix):
                return self.external_id[len(prefix):]
        return self.external_id

    @property
    def is_calendly(self) -> bool:
        return (self.external_id or "").startswith("calendly_")

    def __repr__(self):
        return f"<Meeting(id={self.id}, external_id='{self.external_id}', status='{self.status}')>"


# ============================================================================
# EMAIL JOB QUEUE
# ============================================================================


class EmailJob(Base):
    """Durable outbound email intent."""

    __tablename__ = "email_jobs"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    meeting_id = Column(Integer, ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False, index=True)

    job_type = Column(String(50), nullable=False, index=True)
    status = Column(String(20), default="pending", nullable=False, index=True)

    scheduled_at = Column(DateTime, nullable=False, default=utc_now)
    sent_at = Column(DateTime)

    # Retry logic (retry cadence equals the dispatch poll interval)
    retry_count = Column(Integer, default=0, nullable=False)
    max_retries = Column(Integer, default=3, nullable=False)
    error_message = Column(Text)

    # Pre-rendered content (reschedule offers); rendered at dispatch otherwise
    recipient_email = Column(String(255))
    subject = Column(String(500))
    body_html = Column(Text)

    created_at = Column(DateTime, default=utc_now, index=True)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    meeting = relationship("Meeting", back_populates="email_jobs")

    __table_args__ = (
        Index("idx_email_jobs_due", "status", "scheduled_at"),
        CheckConstraint(f"status IN ({_in_clause(EMAIL_JOB_STATUSES)})", name="valid_email_job_status"),
        CheckConstraint(f"job_type IN ({_in_clause(EMAIL_JOB_TYPES)})", name="valid_email_job_type"),
    )

    def __repr__(self):
        return f"<EmailJob(id={self.id}, type='{self.job_type}', status='{self.status}', retry={self.retry_count})>"


# ============================================================================
# REPORTING
# ============================================================================


class GroomingMetrics(Base):
    """Weekly automation-effectiveness snapshot per user."""

    __tablename__ = "grooming_metrics"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    week_start = Column(DateTime, nullable=False)
    week_end = Column(DateTime, nullable=False)

    total_meetings = Column(Integer, default=0, nullable=False)
    qualified_meetings = Column(Integer, default=0, nullable=False)
    disqualified_meetings = Column(Integer, default=0, nullable=False)
    auto_qualified_meetings = Column(Integer, default=0, nullable=False)
    auto_disqualified_meetings = Column(Integer, default=0, nullable=False)
    needs_review_meetings = Column(Integer, default=0, nullable=False)

    time_saved_minutes = Column(Integer, default=0, nullable=False)
    time_spent_grooming_minutes = Column(Integer, default=0, nullable=False)
    automation_accuracy = Column(Float, default=0.0, nullable=False)  # Percentage 0-100

    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (UniqueConstraint("user_id", "week_start", name="uq_grooming_metrics_user_week"),)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "week_start": self.week_start.isoformat(),
            "week_end": self.week_end.isoformat(),
            "total_meetings": self.total_meetings,
            "qualified_meetings": self.qualified_meetings,
            "disqualified_meetings": self.disqualified_meetings,
            "auto_qualified_meetings": self.auto_qualified_meetings,
            "auto_disqualified_meetings": self.auto_disqualified_meetings,
            "needs_review_meetings": self.needs_review_meetings,
            "time_saved_minutes": self.time_saved_minutes,
            "time_spent_grooming_minutes": self.time_spent_grooming_minutes,
            "automation_accuracy": round(self.automation_accuracy, 2),
        }

    def __repr__(self):
        return f"<GroomingMetrics(user_id={self.user_id}, week_start={self.week_start:%Y-%m-%d})>"


# ============================================================================
# DATABASE MANAGER
# ============================================================================


class DatabaseManager:
    """Database operations manager."""

    def __init__(self, connection_string: str):
        """Initialize database manager with connection string."""
        self.logger = logging.getLogger(__name__)
        self.connection_string = connection_string

        if connection_string.startswith("sqlite"):
            # Single shared connection so in-memory databases survive across sessions and threads
            self.engine = create_engine(
                connection_string,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                echo=False,
            )
        else:
            self.engine = create_engine(
                connection_string,
                pool_size=10,
                max_overflow=20,
                pool_pre_ping=True,  # Verify connections before using
                echo=False,
            )

        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False, expire_on_commit=False)

    def create_tables(self):
        """Create all database tables."""
        Base.metadata.create_all(self.engine)
        self.logger.info("Database tables created successfully")

    def drop_tables(self):
        """Drop all database tables (use with caution!)."""
        Base.metadata.drop_all(self.engine)
        self.logger.warning("All database tables dropped")

    def get_session(self):
        """Get a new database session."""
        return self.SessionLocal()

    # ========================================================================
    # USER METHODS
    # ========================================================================

    def create_user(self, email: str, **kwargs) -> User:
        """
        Create user record.

        Raises:
            ValidationError: If the email address is malformed
            DatabaseError: If the insert fails (e.g. the email is already registered)
        """
        if not validate_email(email):
            raise ValidationError(f"Invalid email address: {email!r}")

        session = self.get_session()
        try:
            user = User(email=email.lower(), **kwargs)
            session.add(user)
            session.commit()
            session.refresh(user)
            self.logger.info(f"Created user: {email}")
            return user
        except SQLAlchemyError as e:
            session.rollback()
            self.logger.error(f"Failed to create user {email}: {e}")
            raise DatabaseError(f"Failed to create user {email}: {e}") from e
        finally:
            session.close()

    def get_user(self, user_id: int) -> User:
        """Find user by ID."""
        with self.get_session() as session:
            user = session.get(User, user_id)
            if not user:
                raise UserNotFoundError(f"User {user_id} not found")
            return user

    def get_all_user_ids(self) -> List[int]:
        """IDs of every user, ascending."""
        with self.get_session() as session:
            return [row[0] for row in session.query(User.id).order_by(User.id).all()]

    def save_integration(self, user_id: int, type: str, **kwargs) -> Integration:
        """Create or replace the integration of one type for a user."""
        session = self.get_session()
        try:
            integration = session.query(Integration).filter_by(user_id=user_id, type=type).first()
            if integration is None:
                integration = Integration(user_id=user_id, type=type)
                session.add(integration)
            for key, value in kwargs.items():
                setattr(integration, key, value)
            session.commit()
            session.refresh(integration)
            self.logger.info(f"Saved {type} integration for user {user_id}")
            return integration
        except SQLAlchemyError as e:
            session.rollback()
            self.logger.error(f"Failed to save {type} integration for user {user_id}: {e}")
            raise DatabaseError(f"Failed to save {type} integration for user {user_id}: {e}") from e
        finally:
            session.close()

    def get_integration(self, user_id: int, type: str) -> Optional[Integration]:
        """Active integration of the given type, or None."""
        with self.get_session() as session:
            return (
                session.query(Integration)
                .filter(Integration.user_id == user_id, Integration.type == type, Integration.is_active.is_(True))
                .first()
            )

    # ========================================================================
    # MEETING METHODS
    # ========================================================================

    def create_meeting(self, **kwargs) -> Meeting:
        """Create new meeting record."""
        session = self.get_session()
        try:
            meeting = Meeting(**kwargs)
            session.add(meeting)
            session.commit()
            session.refresh(meeting)
            self.logger.info(f"Created meeting {meeting.id}: {meeting.external_id}")
            return meeting
        except SQLAlchemyError as e:
            session.rollback()
            self.logger.error(f"Failed to create meeting: {e}")
            raise DatabaseError(f"Failed to create meeting: {e}") from e
        finally:
            session.close()

    def get_meeting_by_id(self, meeting_id: int) -> Meeting:
        """
        Find meeting by internal ID.

        Raises:
            MeetingNotFoundError: If no meeting has this ID
        """
        with self.get_session() as session:
            meeting = session.get(Meeting, meeting_id)
            if not meeting:
                raise MeetingNotFoundError(f"Meeting {meeting_id} not found")
            return meeting

    def get_meeting_by_external_id(self, user_id: int, external_id: str) -> Optional[Meeting]:
        """Find a user's meeting by provider-prefixed external ID."""
        with self.get_session() as session:
            return session.query(Meeting).filter_by(user_id=user_id, external_id=external_id).first()

    def get_user_meetings(self, user_id: int, limit: Optional[int] = None) -> List[Meeting]:
        """A user's meetings, newest start first."""
        with self.get_session() as session:
            query = session.query(Meeting).filter(Meeting.user_id == user_id).order_by(Meeting.start_time.desc())
            if limit:
                query = query.limit(limit)
            return query.all()

    def update_meeting(self, meeting_id: int, **fields) -> Meeting:
        """
        Single-row update of meeting fields.

        Raises:
            MeetingNotFoundError: If no meeting has this ID
        """
        session = self.get_session()
        try:
            meeting = session.get(Meeting, meeting_id)
            if not meeting:
                raise MeetingNotFoundError(f"Meeting {meeting_id} not found")
            for key, value in fields.items():
                if not hasattr(Meeting, key):
                    raise AttributeError(f"Meeting has no field '{key}'")
                setattr(meeting, key, value)
            meeting.updated_at = utc_now()
            session.commit()
            session.refresh(meeting)
            self.logger.debug(f"Updated meeting {meeting_id}: {sorted(fields)}")
            return meeting
        except MeetingNotFoundError:
            session.rollback()
            raise
        except Exception as e:
            session.rollback()
            self.logger.error(f"Failed to update meeting {meeting_id}: {e}")
            raise
        finally:
            session.close()

    # ========================================================================
    # ANALYTICS METHODS
    # ========================================================================

    def get_dashboard_stats(self, user_id: int) -> dict:
        """Meeting and email job counts by status for one user."""
        from sqlalchemy import func

        with self.get_session() as session:
            meeting_counts = dict(
                session.query(Meeting.status, func.count(Meeting.id))
                .filter(Meeting.user_id == user_id)
                .group_by(Meeting.status)
                .all()
            )
            job_counts = dict(
                session.query(EmailJob.status, func.count(EmailJob.id))
                .filter(EmailJob.user_id == user_id)
                .group_by(EmailJob.status)
                .all()
            )
            return {
                "total_meetings": sum(meeting_counts.values()),
                "meeting_status": meeting_counts,
                "email_job_status": job_counts,
            }
