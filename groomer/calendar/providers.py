"""
Calendar providers.

Narrow capability interface the lifecycle engine needs from a calendar:
fetch events, read attendee RSVPs, mark an event free, cancel an event.
Implementations exist for Microsoft Graph (Outlook) and Google Calendar.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import requests

from ..core.config import GoogleCalendarConfig
from ..core.database import DatabaseManager, Integration, Meeting
from ..core.exceptions import (
    CalendarAPIError,
    CalendarAuthenticationError,
    CalendarRateLimitError,
    GraphAPIAuthenticationError,
    GraphAPIError,
    GraphAPIRateLimitError,
)
from ..graph.client import GraphAPIClient
from ..utils.time_utils import parse_iso_datetime


logger = logging.getLogger(__name__)


# Normalized RSVP values
ACCEPTED = "accepted"
DECLINED = "declined"
PENDING = "pending"
UNKNOWN = "unknown"


@dataclass
class AttendeeResponse:
    """One attendee's RSVP as reported by the provider."""

    email: str
    name: Optional[str]
    status: str  # accepted, declined, pending, unknown
    response_time: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"email": self.email, "name": self.name, "status": self.status, "response_time": self.response_time}


@dataclass
class CalendarEvent:
    """Provider event reduced to the fields a meeting row needs."""

    event_id: str
    title: str
    start: datetime
    end: datetime
    description: Optional[str] = None
    attendee_email: Optional[str] = None
    attendee_name: Optional[str] = None


class CalendarProvider(ABC):
    """Capability interface over one calendar backend."""

    # Prefix applied to event IDs when stored as Meeting.external_id
    external_id_prefix: str = ""

    @abstractmethod
    def fetch_events(self, credential: Integration, start: datetime, end: datetime) -> List[CalendarEvent]:
        """Events overlapping [start, end)."""

    @abstractmethod
    def get_attendee_responses(self, credential: Integration, event_id: str) -> List[AttendeeResponse]:
        """Attendee RSVPs for one event (organizer excluded where the provider marks it)."""

    @abstractmethod
    def mark_event_free(self, credential: Integration, event_id: str) -> None:
        """Release the time slot without deleting the event."""

    @abstractmethod
    def cancel_event(self, credential: Integration, event_id: str) -> None:
        """Cancel the event and notify attendees."""


# ============================================================================
# MICROSOFT GRAPH (OUTLOOK)
# ============================================================================


class GraphCalendarProvider(CalendarProvider):
    """
    Outlook calendar via Microsoft Graph application permissions.

    The integration's account_email names the mailbox whose calendar is used.
    """

    external_id_prefix = "outlook_"

    # Graph responseStatus.response -> normalized status
    RESPONSE_MAP = {
        "accepted": ACCEPTED,
        "organizer": ACCEPTED,
        "tentativelyAccepted": PENDING,
        "notResponded": PENDING,
        "declined": DECLINED,
        "none": UNKNOWN,
    }

    # Ask Graph to return dateTime values in UTC
    UTC_HEADERS = {"Prefer": 'outlook.timezone="UTC"'}

    def __init__(self, client: GraphAPIClient):
        self.client = client

    @staticmethod
    def _mailbox(credential: Integration) -> str:
        if not credential.account_email:
            raise CalendarAPIError(f"Outlook integration {credential.id} has no account email")
        return credential.account_email

    def _call(self, func, *args, **kwargs):
        """Translate Graph client errors into calendar errors."""
        try:
            return func(*args, **kwargs)
        except GraphAPIAuthenticationError as e:
            raise CalendarAuthenticationError(str(e)) from e
        except GraphAPIRateLimitError as e:
            raise CalendarRateLimitError(str(e)) from e
        except GraphAPIError as e:
            raise CalendarAPIError(str(e)) from e

    def fetch_events(self, credential: Integration, start: datetime, end: datetime) -> List[CalendarEvent]:
        mailbox = self._mailbox(credential)
        params = {
            "startDateTime": start.isoformat(),
            "endDateTime": end.isoformat(),
            "$select": "id,subject,bodyPreview,start,end,attendees,organizer,isCancelled",
            "$top": 100,
        }
        items = self._call(
            self.client.get_paged, f"/users/{mailbox}/calendarView", params=params, headers=self.UTC_HEADERS
        )

        events = []
        for item in items:
            if item.get("isCancelled"):
                continue
            try:
                events.append(self._parse_event(item, mailbox))
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping malformed Outlook event {item.get('id')}: {e}")
        logger.debug(f"Fetched {len(events)} Outlook events for {mailbox}")
        return events

    @staticmethod
    def _parse_event(item: Dict[str, Any], mailbox: str) -> CalendarEvent:
        attendee_email = None
        attendee_name = None
        for attendee in item.get("attendees") or []:
            address = (attendee.get("emailAddress") or {}).get("address")
            if address and address.lower() != mailbox.lower():
                attendee_email = address.lower()
                attendee_name = (attendee.get("emailAddress") or {}).get("name")
                break

        return CalendarEvent(
            event_id=item["id"],
            title=item.get("subject") or "Untitled meeting",
            description=item.get("bodyPreview"),
            start=parse_iso_datetime(item["start"]["dateTime"]),
            end=parse_iso_datetime(item["end"]["dateTime"]),
            attendee_email=attendee_email,
            attendee_name=attendee_name,
        )

    def get_attendee_responses(self, credential: Integration, event_id: str) -> List[AttendeeResponse]:
        mailbox = self._mailbox(credential)
        event = self._call(self.client.get, f"/users/{mailbox}/events/{event_id}", params={"$select": "attendees"})

        # The mailbox owner's own response says nothing about the prospect
        responses = []
        for attendee in event.get("attendees") or []:
            address = (attendee.get("emailAddress") or {}).get("address")
            if not address or address.lower() == mailbox.lower():
                continue
            status = attendee.get("status") or {}
            responses.append(
                AttendeeResponse(
                    email=address.lower(),
                    name=(attendee.get("emailAddress") or {}).get("name"),
                    status=self.RESPONSE_MAP.get(status.get("response"), UNKNOWN),
                    response_time=status.get("time"),
                )
            )
        return responses

    def mark_event_free(self, credential: Integration, event_id: str) -> None:
        mailbox = self._mailbox(credential)
        self._call(self.client.patch, f"/users/{mailbox}/events/{event_id}", json={"showAs": "free"})
        logger.info(f"Marked Outlook event {event_id} as free")

    def cancel_event(self, credential: Integration, event_id: str) -> None:
        mailbox = self._mailbox(credential)
        self._call(
            self.client.post,
            f"/users/{mailbox}/events/{event_id}/cancel",
            json={"comment": "This meeting has been cancelled."},
        )
        logger.info(f"Cancelled Outlook event {event_id}")


# ============================================================================
# GOOGLE CALENDAR
# ============================================================================


class GoogleCalendarProvider(CalendarProvider):
    """Google Calendar REST API with the integration's stored bearer token."""

    external_id_prefix = "gcal_"

    RESPONSE_MAP = {
        "accepted": ACCEPTED,
        "declined": DECLINED,
        "tentative": PENDING,
        "needsAction": PENDING,
    }

    def __init__(self, config: Optional[GoogleCalendarConfig] = None):
        self.config = config or GoogleCalendarConfig()

    def _request(self, method: str, credential: Integration, path: str, **kwargs) -> requests.Response:
        if not credential.access_token:
            raise CalendarAuthenticationError(f"Google integration {credential.id} has no access token")

        url = f"{self.config.api_url}/calendars/{self.config.calendar_id}{path}"
        headers = {"Authorization": f"Bearer {credential.access_token}", "Accept": "application/json"}

        try:
            response = requests.request(method, url, headers=headers, timeout=self.config.timeout_seconds, **kwargs)
        except requests.RequestException as e:
            raise CalendarAPIError(f"Google Calendar {method} {path} failed: {e}") from e

        if response.status_code in (401, 403):
            raise CalendarAuthenticationError(f"Google Calendar rejected credential: {response.status_code}")
        if response.status_code == 429:
            raise CalendarRateLimitError("Google Calendar rate limit exceeded")
        if response.status_code >= 400:
            raise CalendarAPIError(f"Google Calendar {method} {path} failed: {response.status_code} {response.text}")
        return response

    def fetch_events(self, credential: Integration, start: datetime, end: datetime) -> List[CalendarEvent]:
        params = {
            "timeMin": start.isoformat() + "Z",
            "timeMax": end.isoformat() + "Z",
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": 250,
        }

        events = []
        page_token = None
        while True:
            if page_token:
                params["pageToken"] = page_token
            data = self._request("GET", credential, "/events", params=params).json()
            for item in data.get("items", []):
                if item.get("status") == "cancelled":
                    continue
                # All-day events carry 'date' only and are not meetings
                if "dateTime" not in (item.get("start") or {}):
                    continue
                try:
                    events.append(self._parse_event(item))
                except (KeyError, ValueError) as e:
                    logger.warning(f"Skipping malformed Google event {item.get('id')}: {e}")
            page_token = data.get("nextPageToken")
            if not page_token:
                break

        logger.debug(f"Fetched {len(events)} Google events for integration {credential.id}")
        return events

    @staticmethod
    def _parse_event(item: Dict[str, Any]) -> CalendarEvent:
        attendee_email = None
        attendee_name = None
        for attendee in item.get("attendees") or []:
            if attendee.get("self") or attendee.get("organizer"):
                continue
            if attendee.get("email"):
                attendee_email = attendee["email"].lower()
                attendee_name = attendee.get("displayName")
                break

        return CalendarEvent(
            event_id=item["id"],
            title=item.get("summary") or "Untitled meeting",
            description=item.get("description"),
            start=parse_iso_datetime(item["start"]["dateTime"]),
            end=parse_iso_datetime(item["end"]["dateTime"]),
            attendee_email=attendee_email,
            attendee_name=attendee_name,
        )

    def get_attendee_responses(self, credential: Integration, event_id: str) -> List[AttendeeResponse]:
        event = self._request("GET", credential, f"/events/{event_id}").json()

        responses = []
        for attendee in event.get("attendees") or []:
            if not attendee.get("email") or attendee.get("self") or attendee.get("organizer"):
                continue
            responses.append(
                AttendeeResponse(
                    email=attendee["email"].lower(),
                    name=attendee.get("displayName"),
                    status=self.RESPONSE_MAP.get(attendee.get("responseStatus"), UNKNOWN),
                )
            )
        return responses

    def mark_event_free(self, credential: Integration, event_id: str) -> None:
        self._request("PATCH", credential, f"/events/{event_id}", json={"transparency": "transparent"})
        logger.info(f"Marked Google event {event_id} as free")

    def cancel_event(self, credential: Integration, event_id: str) -> None:
        self._request("DELETE", credential, f"/events/{event_id}", params={"sendUpdates": "all"})
        logger.info(f"Cancelled Google event {event_id}")


# ============================================================================
# REGISTRY
# ============================================================================


class CalendarRegistry:
    """
    Resolves a meeting to its calendar provider and stored credential.

    Calendly bookings, unknown external-id prefixes and users without an
    active integration of the matching type resolve to None.
    """

    def __init__(self, db: DatabaseManager, providers: Dict[str, CalendarProvider]):
        """
        Args:
            db: DatabaseManager for integration lookups
            providers: Integration type ('google_calendar', 'outlook') -> provider
        """
        self.db = db
        self.providers = providers

    def get_provider(self, integration_type: str) -> Optional[CalendarProvider]:
        return self.providers.get(integration_type)

    def resolve(self, meeting: Meeting) -> Optional[Tuple[CalendarProvider, Integration]]:
        """(provider, credential) for the meeting's source calendar, or None."""
        if meeting.is_calendly:
            return None

        integration_type = meeting.provider_type
        provider = self.providers.get(integration_type) if integration_type else None
        if provider is None:
            return None

        credential = self.db.get_integration(meeting.user_id, integration_type)
        if credential is None:
            logger.debug(f"No active {integration_type} integration for user {meeting.user_id}")
            return None

        return provider, credential
