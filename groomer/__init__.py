"""
Meeting Groomer

Qualifies sales meetings, reschedules no-shows, tracks invites and sends
meeting emails on behalf of sales reps.
"""

__version__ = "0.1.0"
