"""
Logging configuration for Meeting Groomer.

Everything logs through the root logger; modules use logging.getLogger(__name__).
"""

import logging
import logging.handlers
from pathlib import Path
from typing import Optional


LOG_FORMATS = {
    "standard": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    "detailed": "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(funcName)s - %(message)s",
    # Process id tells apart scheduler instances sharing one log file
    "poller": "%(asctime)s - %(name)s - %(levelname)s - [%(process)d] %(message)s",
}

# Libraries that are chatty at INFO
QUIET_LOGGERS = {
    "urllib3": logging.WARNING,
    "msal": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "asyncio": logging.WARNING,
}

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def _file_handler(log_file: str) -> logging.Handler:
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding="utf-8"
    )


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    log_to_console: bool = True,
    log_format: str = "standard",
) -> logging.Logger:
    """
    Configure application logging.

    Safe to call more than once; existing root handlers are replaced.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to rotating log file (None = no file logging)
        log_to_console: Whether to log to stderr
        log_format: One of LOG_FORMATS ('standard', 'detailed', 'poller')

    Returns:
        The configured root logger
    """
    formatter = logging.Formatter(LOG_FORMATS.get(log_format, LOG_FORMATS["standard"]), datefmt="%Y-%m-%d %H:%M:%S")

    handlers = []
    if log_to_console:
        handlers.append(logging.StreamHandler())
    if log_file:
        handlers.append(_file_handler(log_file))

    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    root.debug(f"Logging configured: level={log_level}, file={log_file}, format={log_format}")
    return root


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (typically for __name__)."""
    return logging.getLogger(name)
