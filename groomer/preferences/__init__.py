"""
User Settings Module

Typed view over each user's automation policy.
"""

from .user_settings import SettingsManager, UserSettings

__all__ = ["SettingsManager", "UserSettings"]
