from .calendar_cleanup import CalendarCleanup

__all__ = ["CalendarCleanup"]
