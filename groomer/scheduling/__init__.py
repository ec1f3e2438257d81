"""
Scheduling Module

Free-slot search and the no-show auto-reschedule coordinator.
"""

from .auto_reschedule import AutoRescheduleCoordinator, RescheduleResult
from .slot_finder import SlotFinder, SlotPolicy

__all__ = ["AutoRescheduleCoordinator", "RescheduleResult", "SlotFinder", "SlotPolicy"]
