"""
Unit tests for user automation settings.
"""

import pytest

from groomer.core.exceptions import UserNotFoundError
from groomer.preferences.user_settings import SettingsManager, UserSettings, build_settings
from tests.factories import DatabaseTestFactory, persist


class TestBuildSettings:

    def test_defaults(self):
        settings = build_settings({})

        assert settings == UserSettings()
        assert settings.auto_reschedule_enabled is False
        assert settings.reschedule_delay_hours == 2
        assert settings.max_reschedule_attempts == 2
        assert settings.business_start_hour == 9
        assert settings.business_end_hour == 17
        assert settings.auto_free_calendar_slots is True

    def test_known_values_are_applied(self):
        settings = build_settings(
            {"auto_reschedule_enabled": True, "reschedule_delay_hours": "4", "business_hours_start": "08:30"}
        )

        assert settings.auto_reschedule_enabled is True
        assert settings.reschedule_delay_hours == 4
        assert settings.business_start_hour == 8

    def test_unknown_keys_are_ignored(self):
        assert build_settings({"theme": "dark"}) == UserSettings()

    def test_malformed_values_fall_back_to_default(self):
        settings = build_settings(
            {"auto_reschedule_enabled": "yes", "max_reschedule_attempts": 0, "business_hours_end": "25:00"}
        )

        assert settings.auto_reschedule_enabled is False
        assert settings.max_reschedule_attempts == 2
        assert settings.business_hours_end == "17:00"

    def test_empty_business_hours_reset(self):
        settings = build_settings({"business_hours_start": "18:00", "business_hours_end": "09:00"})

        assert (settings.business_start_hour, settings.business_end_hour) == (9, 17)


class TestSettingsManager:

    def test_get_settings_reads_user_bag(self, test_db):
        user = persist(test_db, DatabaseTestFactory.create_user(settings={"include_weekends": True}))

        assert SettingsManager(test_db).get_settings(user.id).include_weekends is True

    def test_update_settings_merges(self, test_db):
        user = persist(test_db, DatabaseTestFactory.create_user(settings={"include_weekends": True}))
        manager = SettingsManager(test_db)

        manager.update_settings(user.id, auto_reschedule_enabled=True)

        settings = manager.get_settings(user.id)
        assert settings.include_weekends is True
        assert settings.auto_reschedule_enabled is True

    def test_update_rejects_unknown_and_malformed(self, test_db):
        user = persist(test_db, DatabaseTestFactory.create_user())
        manager = SettingsManager(test_db)

        with pytest.raises(ValueError):
            manager.update_settings(user.id, theme="dark")
        with pytest.raises(ValueError):
            manager.update_settings(user.id, reschedule_delay_hours=-1)

    def test_unknown_user_raises(self, test_db):
        with pytest.raises(UserNotFoundError):
            SettingsManager(test_db).get_settings(404)
