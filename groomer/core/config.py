"""
Configuration management for Meeting Groomer.

Loads configuration from:
1. .env file (secrets - never committed)
2. config.yaml (runtime settings - poll intervals, defaults)
"""

from dataclasses import dataclass, field, fields
from typing import List, Optional
import logging
import os
import yaml
from dotenv import load_dotenv


logger = logging.getLogger(__name__)


@dataclass
class GraphAPIConfig:
    """Microsoft Graph API configuration (Outlook calendar + sendMail)."""

    client_id: str
    client_secret: str
    tenant_id: str
    authority: str
    scopes: List[str] = field(
        default_factory=lambda: [
            "https://graph.microsoft.com/.default"  # Application permissions
        ]
    )

    def __post_init__(self):
        """Build authority URL from tenant ID if not provided."""
        if self.tenant_id and not self.authority:
            self.authority = f"https://login.microsoftonline.com/{self.tenant_id}"

    def is_configured(self) -> bool:
        """Check if Graph credentials are present."""
        return bool(self.client_id and self.client_secret and self.tenant_id)


@dataclass
class GoogleCalendarConfig:
    """Google Calendar API configuration (per-user bearer tokens live in integrations)."""

    api_url: str = "https://www.googleapis.com/calendar/v3"
    calendar_id: str = "primary"
    timeout_seconds: int = 30


@dataclass
class DatabaseConfig:
    """PostgreSQL database configuration."""

    host: str = "localhost"
    port: int = 5432
    database: str = "meeting_groomer"
    user: str = "postgres"
    password: str = ""
    url: str = ""  # Full SQLAlchemy URL overrides the parts above

    @property
    def connection_string(self) -> str:
        """Generate PostgreSQL connection string."""
        if self.url:
            return self.url
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


@dataclass
class AppConfig:
    """Runtime application configuration (from config.yaml)."""

    # Poller intervals
    email_queue_interval_seconds: int = 120
    auto_reschedule_interval_minutes: int = 30
    invite_tracking_interval_minutes: int = 30
    grooming_metrics_interval_minutes: int = 30
    calendar_cleanup_interval_minutes: int = 5

    # Poller switches
    email_queue_enabled: bool = True
    auto_reschedule_enabled: bool = True
    invite_tracking_enabled: bool = True
    grooming_metrics_enabled: bool = True
    calendar_cleanup_enabled: bool = True

    # Invite tracking
    invite_lookback_days: int = 30
    invite_at_risk_hours: int = 24

    # Email queue
    email_max_retries: int = 3

    # Calendar import
    import_days_back: int = 7
    import_days_ahead: int = 30


class ConfigManager:
    """Central configuration manager.

    Loads configuration from:
    - .env file for secrets (Graph API, DB credentials)
    - config.yaml for runtime settings
    """

    def __init__(self, env_file: Optional[str] = None, config_file: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            env_file: Path to .env file (default: .env in working directory)
            config_file: Path to config.yaml file (default: config.yaml in working directory)
        """
        if env_file is None:
            env_file = ".env"
        load_dotenv(env_file)

        if config_file is None:
            config_file = "config.yaml"
        self.config_file = config_file

        self._load_env_config()
        self._load_yaml_config()

    def _load_env_config(self):
        """Load secrets from .env file."""

        self.graph_api = GraphAPIConfig(
            client_id=os.getenv("GRAPH_CLIENT_ID", ""),
            client_secret=os.getenv("GRAPH_CLIENT_SECRET", ""),
            tenant_id=os.getenv("GRAPH_TENANT_ID", ""),
            authority=os.getenv("GRAPH_AUTHORITY", ""),
        )

        self.google_calendar = GoogleCalendarConfig(
            api_url=os.getenv("GOOGLE_CALENDAR_API_URL", "https://www.googleapis.com/calendar/v3"),
            calendar_id=os.getenv("GOOGLE_CALENDAR_ID", "primary"),
        )

        self.database = DatabaseConfig(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "5432")),
            database=os.getenv("DB_NAME", "meeting_groomer"),
            user=os.getenv("DB_USER", "postgres"),
            password=os.getenv("DB_PASSWORD", ""),
            url=os.getenv("DATABASE_URL", ""),
        )

    def _load_yaml_config(self):
        """Load runtime configuration from config.yaml."""
        if os.path.exists(self.config_file):
            try:
                with open(self.config_file, "r") as f:
                    data = yaml.safe_load(f) or {}

                known = {f.name for f in fields(AppConfig)}
                unknown = sorted(set(data) - known)
                if unknown:
                    logger.warning(f"Ignoring unknown config.yaml keys: {', '.join(unknown)}")

                self.app = AppConfig(**{k: v for k, v in data.items() if k in known})
            except (OSError, yaml.YAMLError, TypeError) as e:
                logger.warning(f"Failed to load {self.config_file}: {e}; using default configuration")
                self.app = AppConfig()
        else:
            self.app = AppConfig()

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if not self.database.url and not self.database.password:
            errors.append("DB_PASSWORD (or DATABASE_URL) not set in .env")

        if not self.graph_api.is_configured():
            errors.append("GRAPH_CLIENT_ID / GRAPH_CLIENT_SECRET / GRAPH_TENANT_ID not set in .env (mail disabled)")

        if self.app.email_queue_interval_seconds < 1:
            errors.append("email_queue_interval_seconds must be >= 1")
        for name in (
            "auto_reschedule_interval_minutes",
            "invite_tracking_interval_minutes",
            "grooming_metrics_interval_minutes",
            "calendar_cleanup_interval_minutes",
        ):
            if getattr(self.app, name) < 1:
                errors.append(f"{name} must be >= 1")
        if self.app.email_max_retries < 1:
            errors.append("email_max_retries must be >= 1")

        return errors


# Cached instance for the CLI entry point
_config: Optional[ConfigManager] = None


def get_config(env_file: Optional[str] = None, config_file: Optional[str] = None) -> ConfigManager:
    """
    Get the cached configuration manager (created on first call).

    Args:
        env_file: Path to .env file (only used on first call)
        config_file: Path to config.yaml file (only used on first call)

    Returns:
        ConfigManager instance
    """
    global _config
    if _config is None:
        _config = ConfigManager(env_file=env_file, config_file=config_file)
    return _config
