"""
User Settings Management

Per-user automation policy stored as a JSON bag on the user row.
The engine only reads these values; they are written by the CLI or an
external settings UI.
"""

import logging
from dataclasses import dataclass, fields, asdict
from typing import Any, Dict

from ..core.database import DatabaseManager, User
from ..core.exceptions import UserNotFoundError
from ..utils.time_utils import parse_hour


logger = logging.getLogger(__name__)


@dataclass
class UserSettings:
    """Typed view of a user's settings bag with defaults applied."""

    auto_reschedule_enabled: bool = False
    reschedule_delay_hours: int = 2
    max_reschedule_attempts: int = 2
    business_hours_start: str = "09:00"
    business_hours_end: str = "17:00"
    include_weekends: bool = False
    reschedule_days_out: int = 7
    auto_free_calendar_slots: bool = True
    auto_delete_disqualified: bool = False
    notify_calendar_deletions: bool = False
    sender_name: str = "Your Sales Team"

    @property
    def business_start_hour(self) -> int:
        return parse_hour(self.business_hours_start)

    @property
    def business_end_hour(self) -> int:
        return parse_hour(self.business_hours_end)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_DEFAULTS = UserSettings()


def _coerce(key: str, value: Any) -> Any:
    """
    Validate one settings value against the type of its default.

    Raises:
        ValueError: If the value is malformed
    """
    default = getattr(_DEFAULTS, key)

    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        raise ValueError(f"expected boolean, got {value!r}")

    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise ValueError(f"expected integer, got {value!r}")
        number = int(value)
        minimum = 1 if key in ("max_reschedule_attempts", "reschedule_days_out") else 0
        if number < minimum:
            raise ValueError(f"must be >= {minimum}, got {number}")
        return number

    if key in ("business_hours_start", "business_hours_end"):
        parse_hour(value)
        return str(value)

    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"expected non-empty string, got {value!r}")
    return value.strip()


def build_settings(raw: Dict[str, Any], user_id: Any = None) -> UserSettings:
    """
    Build UserSettings from a raw bag.

    Unknown keys are ignored; malformed values fall back to the default with a warning.
    """
    values = {}
    for f in fields(UserSettings):
        if f.name not in (raw or {}):
            continue
        try:
            values[f.name] = _coerce(f.name, raw[f.name])
        except (TypeError, ValueError) as e:
            logger.warning(f"Invalid setting {f.name} for user {user_id}: {e}; using default")

    settings = UserSettings(**values)

    if settings.business_start_hour >= settings.business_end_hour:
        logger.warning(
            f"Business hours {settings.business_hours_start}-{settings.business_hours_end} for user {user_id} "
            f"are empty; using defaults"
        )
        settings.business_hours_start = _DEFAULTS.business_hours_start
        settings.business_hours_end = _DEFAULTS.business_hours_end

    return settings


class SettingsManager:
    """
    Reads and updates user automation settings.

    Usage:
        settings_mgr = SettingsManager(db)
        settings = settings_mgr.get_settings(user_id)
        if settings.auto_reschedule_enabled:
            ...
    """

    def __init__(self, db: DatabaseManager):
        """
        Initialize settings manager.

        Args:
            db: DatabaseManager instance
        """
        self.db = db

    def get_settings(self, user_id: int) -> UserSettings:
        """
        Get settings for a user with defaults applied.

        Raises:
            UserNotFoundError: If the user does not exist
        """
        with self.db.get_session() as session:
            user = session.get(User, user_id)
            if not user:
                raise UserNotFoundError(f"User {user_id} not found")
            raw = dict(user.settings or {})

        return build_settings(raw, user_id)

    def update_settings(self, user_id: int, **values) -> UserSettings:
        """
        Merge values into a user's settings bag.

        Raises:
            UserNotFoundError: If the user does not exist
            ValueError: If a key is unknown or a value is malformed
        """
        known = {f.name for f in fields(UserSettings)}
        for key, value in values.items():
            if key not in known:
                raise ValueError(f"Unknown setting: {key}")
            _coerce(key, value)

        session = self.db.get_session()
        try:
            user = session.get(User, user_id)
            if not user:
                raise UserNotFoundError(f"User {user_id} not found")
            # Reassign so the JSON column is flagged dirty
            user.settings = {**(user.settings or {}), **values}
            session.commit()
            logger.info(f"Updated settings for user {user_id}: {sorted(values)}")
            return build_settings(user.settings, user_id)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
