"""
Email Jobs Module

Durable outbound email queue with bounded retries.
"""

from .email_queue import EmailJobQueue

__all__ = ["EmailJobQueue"]
