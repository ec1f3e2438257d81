"""
Unit tests for configuration loading.
"""

import pytest

from groomer.core.config import AppConfig, ConfigManager


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ("GRAPH_CLIENT_ID", "GRAPH_CLIENT_SECRET", "GRAPH_TENANT_ID", "DB_PASSWORD", "DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


class TestConfigManager:

    def test_defaults_without_config_file(self, clean_env):
        config = ConfigManager(env_file=str(clean_env / ".env"), config_file=str(clean_env / "missing.yaml"))

        assert config.app == AppConfig()
        assert not config.graph_api.is_configured()

    def test_yaml_overrides_and_unknown_keys(self, clean_env):
        config_file = clean_env / "config.yaml"
        config_file.write_text("email_queue_interval_seconds: 60\ninvite_tracking_enabled: false\ncolor: blue\n")

        config = ConfigManager(env_file=str(clean_env / ".env"), config_file=str(config_file))

        assert config.app.email_queue_interval_seconds == 60
        assert config.app.invite_tracking_enabled is False

    def test_database_url_overrides_parts(self, clean_env, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite://")

        config = ConfigManager(env_file=str(clean_env / ".env"), config_file=str(clean_env / "missing.yaml"))

        assert config.database.connection_string == "sqlite://"

    def test_validate_reports_problems(self, clean_env, monkeypatch):
        monkeypatch.setenv("GRAPH_CLIENT_ID", "id")
        monkeypatch.setenv("GRAPH_CLIENT_SECRET", "secret")
        monkeypatch.setenv("GRAPH_TENANT_ID", "tenant")
        config_file = clean_env / "config.yaml"
        config_file.write_text("email_max_retries: 0\n")

        config = ConfigManager(env_file=str(clean_env / ".env"), config_file=str(config_file))
        errors = config.validate()

        assert config.graph_api.authority == "https://login.microsoftonline.com/tenant"
        assert "DB_PASSWORD (or DATABASE_URL) not set in .env" in errors
        assert "email_max_retries must be >= 1" in errors
        assert not any("GRAPH" in e for e in errors)
