"""
Calendar Module

Provider adapters (Outlook via Graph, Google Calendar) and event import.
"""

from .providers import (
    AttendeeResponse,
    CalendarEvent,
    CalendarProvider,
    CalendarRegistry,
    GoogleCalendarProvider,
    GraphCalendarProvider,
)
from .sync import CalendarImporter

__all__ = [
    "AttendeeResponse",
    "CalendarEvent",
    "CalendarProvider",
    "CalendarRegistry",
    "GoogleCalendarProvider",
    "GraphCalendarProvider",
    "CalendarImporter",
]
