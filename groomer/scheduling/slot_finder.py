"""
Slot Finder

Finds the next free one-hour slot inside a user's business hours.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from ..core.database import DatabaseManager, Meeting
from ..preferences.user_settings import UserSettings
from ..utils.time_utils import parse_hour


logger = logging.getLogger(__name__)


SLOT_LENGTH = timedelta(hours=1)


@dataclass
class SlotPolicy:
    """Where a rescheduled meeting may land."""

    business_hours_start: str = "09:00"
    business_hours_end: str = "17:00"
    include_weekends: bool = False
    search_window_days: int = 7

    @classmethod
    def from_settings(cls, settings: UserSettings) -> "SlotPolicy":
        return cls(
            business_hours_start=settings.business_hours_start,
            business_hours_end=settings.business_hours_end,
            include_weekends=settings.include_weekends,
            search_window_days=settings.reschedule_days_out,
        )

    def search_range(self, from_time: datetime) -> Tuple[datetime, datetime]:
        """[first day 00:00, day after the last searched day 00:00)."""
        first_day = (from_time + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
        return first_day, first_day + timedelta(days=self.search_window_days)


def overlaps(slot_start: datetime, existing_start: datetime, existing_end: datetime) -> bool:
    return slot_start < existing_end and slot_start + SLOT_LENGTH > existing_start


def next_free_slot(
    existing: Iterable[Tuple[datetime, datetime]], from_time: datetime, policy: SlotPolicy
) -> Optional[datetime]:
    """
    First conflict-free slot after from_time.

    Walks days starting the calendar day after from_time, skipping weekends
    unless allowed, and hours [start, end) of each day in one-hour steps.

    Args:
        existing: (start, end) windows already booked
        from_time: Reference time; its own day is never searched
        policy: Business hours and search window

    Returns:
        Slot start, or None if the window has no free slot
    """
    start_hour = parse_hour(policy.business_hours_start)
    end_hour = parse_hour(policy.business_hours_end)
    booked = list(existing)
    first_day, _ = policy.search_range(from_time)

    for day_offset in range(policy.search_window_days):
        day = first_day + timedelta(days=day_offset)
        if not policy.include_weekends and day.weekday() >= 5:
            continue

        for hour in range(start_hour, end_hour):
            slot = day.replace(hour=hour)
            if not any(overlaps(slot, b_start, b_end) for b_start, b_end in booked):
                return slot

    return None


class SlotFinder:
    """
    Usage:
        finder = SlotFinder(db)
        slot = finder.find_next_slot(user_id, meeting.start_time, SlotPolicy.from_settings(settings))
    """

    def __init__(self, db: DatabaseManager):
        self.db = db

    def booked_windows(self, user_id: int, start: datetime, end: datetime) -> List[Tuple[datetime, datetime]]:
        """Time windows of live meetings overlapping [start, end)."""
        with self.db.get_session() as session:
            rows = (
                session.query(Meeting.start_time, Meeting.end_time)
                .filter(
                    Meeting.user_id == user_id,
                    Meeting.status != "cancelled",
                    Meeting.calendar_deleted.is_(False),
                    Meeting.start_time < end,
                    Meeting.end_time > start,
                )
                .all()
            )
        return [(row.start_time, row.end_time) for row in rows]

    def find_next_slot(self, user_id: int, from_time: datetime, policy: SlotPolicy) -> Optional[datetime]:
        search_start, search_end = policy.search_range(from_time)
        booked = self.booked_windows(user_id, search_start, search_end)

        slot = next_free_slot(booked, from_time, policy)
        if slot is None:
            logger.info(
                f"No free slot for user {user_id} in {policy.search_window_days} days after {from_time:%Y-%m-%d}"
            )
        return slot
