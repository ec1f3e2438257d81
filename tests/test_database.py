"""
Unit tests for DatabaseManager write helpers.
"""

import pytest

from groomer.core.exceptions import DatabaseError, ValidationError


class TestCreateUser:

    def test_email_is_lowercased(self, test_db):
        user = test_db.create_user(email="Rep@Example.com", display_name="Rep")

        assert user.email == "rep@example.com"
        assert test_db.get_user(user.id).display_name == "Rep"

    def test_malformed_email_rejected(self, test_db):
        with pytest.raises(ValidationError):
            test_db.create_user(email="not-an-email")

        assert test_db.get_all_user_ids() == []

    def test_duplicate_email_raises_database_error(self, test_db):
        test_db.create_user(email="rep@example.com")

        with pytest.raises(DatabaseError):
            test_db.create_user(email="REP@example.com")

        assert len(test_db.get_all_user_ids()) == 1


class TestSaveIntegration:

    def test_second_save_replaces_first(self, test_db):
        user = test_db.create_user(email="rep@example.com")

        test_db.save_integration(user.id, "outlook", account_email="old@example.com")
        test_db.save_integration(user.id, "outlook", account_email="new@example.com")

        assert test_db.get_integration(user.id, "outlook").account_email == "new@example.com"
