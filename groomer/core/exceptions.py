"""
Custom exceptions for Meeting Groomer.
"""


class GroomerException(Exception):
    """Base exception for all custom exceptions."""

    pass


# ============================================================================
# Not Found Exceptions
# ============================================================================


class NotFoundError(GroomerException):
    """Referenced record does not exist."""

    pass


class MeetingNotFoundError(NotFoundError):
    """Meeting not found in database."""

    pass


class RuleNotFoundError(NotFoundError):
    """Qualification rule not found in database."""

    pass


class JobNotFoundError(NotFoundError):
    """Email job not found in database."""

    pass


class UserNotFoundError(NotFoundError):
    """User not found in database."""

    pass


# ============================================================================
# Validation Exceptions
# ============================================================================


class ValidationError(GroomerException):
    """Input rejected before it reaches the engine."""

    pass


class RuleValidationError(ValidationError):
    """Qualification rule definition is malformed."""

    pass


# ============================================================================
# External Service Exceptions
# ============================================================================


class TransientExternalError(GroomerException):
    """Calendar or mail call failed; the owning component decides on retry."""

    pass


class CalendarAPIError(TransientExternalError):
    """Error communicating with a calendar provider."""

    pass


class CalendarAuthenticationError(CalendarAPIError):
    """Calendar provider rejected the credential."""

    pass


class CalendarRateLimitError(CalendarAPIError):
    """Calendar provider rate limit exceeded."""

    pass


class GraphAPIError(TransientExternalError):
    """Error communicating with Microsoft Graph API."""

    pass


class GraphAPIAuthenticationError(GraphAPIError):
    """Authentication failed for Graph API."""

    pass


class GraphAPIRateLimitError(GraphAPIError):
    """Graph API rate limit exceeded."""

    pass


class EmailSendError(TransientExternalError):
    """Failed to send email."""

    pass


# ============================================================================
# Configuration Exceptions
# ============================================================================


class ConfigurationError(GroomerException):
    """Configuration is invalid or missing."""

    pass


class CredentialNotFoundError(ConfigurationError):
    """User has no active integration for the requested provider."""

    pass


# ============================================================================
# Database Exceptions
# ============================================================================


class DatabaseError(GroomerException):
    """Database operation failed."""

    pass
