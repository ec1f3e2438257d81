"""
Calendar Importer

Pulls events from a user's connected calendars into meeting rows and runs
qualification on each new meeting.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from ..core.database import DatabaseManager
from ..qualification.engine import QualificationEngine
from ..utils.time_utils import utc_now
from .providers import CalendarRegistry


logger = logging.getLogger(__name__)


# Integration types whose events are imported
CALENDAR_INTEGRATION_TYPES = ("google_calendar", "outlook")


class CalendarImporter:
    """
    Usage:
        importer = CalendarImporter(db, registry, engine)
        stats = importer.import_user_events(user_id)
    """

    def __init__(self, db: DatabaseManager, calendars: CalendarRegistry, engine: QualificationEngine):
        self.db = db
        self.calendars = calendars
        self.engine = engine

    def import_user_events(
        self, user_id: int, days_back: int = 7, days_ahead: int = 30, now: Optional[datetime] = None
    ) -> Dict[str, int]:
        """
        Import events from every active calendar integration of a user.

        Returns:
            Counts: fetched, created, existing, qualified, errors
        """
        now = now or utc_now()
        window_start = now - timedelta(days=days_back)
        window_end = now + timedelta(days=days_ahead)
        stats = {"fetched": 0, "created": 0, "existing": 0, "qualified": 0, "errors": 0}

        for integration_type in CALENDAR_INTEGRATION_TYPES:
            credential = self.db.get_integration(user_id, integration_type)
            provider = self.calendars.get_provider(integration_type)
            if credential is None or provider is None:
                continue

            try:
                events = provider.fetch_events(credential, window_start, window_end)
            except Exception as e:
                logger.error(f"Failed to fetch {integration_type} events for user {user_id}: {e}", exc_info=True)
                stats["errors"] += 1
                continue

            stats["fetched"] += len(events)
            for event in events:
                try:
                    self._import_event(user_id, provider.external_id_prefix, event, stats)
                except Exception as e:
                    logger.error(f"Error importing event {event.event_id}: {e}", exc_info=True)
                    stats["errors"] += 1

        logger.info(
            f"Calendar import for user {user_id}: {stats['fetched']} fetched, {stats['created']} new, "
            f"{stats['existing']} existing, {stats['errors']} errors"
        )
        return stats

    def _import_event(self, user_id: int, prefix: str, event, stats: Dict[str, int]) -> None:
        external_id = f"{prefix}{event.event_id}"
        if self.db.get_meeting_by_external_id(user_id, external_id):
            stats["existing"] += 1
            return

        meeting = self.db.create_meeting(
            user_id=user_id,
            external_id=external_id,
            title=event.title,
            description=event.description,
            start_time=event.start,
            end_time=event.end,
            attendee_email=event.attendee_email,
            attendee_name=event.attendee_name,
            status="pending",
        )
        stats["created"] += 1

        self.engine.qualify_meeting(meeting.id)
        stats["qualified"] += 1
