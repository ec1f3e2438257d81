from .lifecycle import MeetingLifecycle

__all__ = ["MeetingLifecycle"]
