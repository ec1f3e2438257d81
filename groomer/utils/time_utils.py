"""
Time helpers.

All timestamps stored by Meeting Groomer are naive UTC datetimes.
"""

from datetime import datetime, timedelta, timezone
from typing import Tuple, Union


def utc_now() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed to be UTC already."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_iso_datetime(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp as returned by calendar APIs.

    Handles the trailing 'Z' and the 7-digit fractional seconds Graph returns.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    if "." in text:
        head, _, tail = text.partition(".")
        frac = ""
        rest = ""
        for i, ch in enumerate(tail):
            if not ch.isdigit():
                rest = tail[i:]
                break
            frac += ch
        text = f"{head}.{frac[:6]}{rest}" if frac else f"{head}{rest}"
    return to_naive_utc(datetime.fromisoformat(text))


def parse_hour(value: Union[int, str]) -> int:
    """
    Parse a business-hours boundary into an hour of day.

    Accepts 9, "9", "09:00" or "09:30" (minutes are ignored).

    Raises:
        ValueError: If the value is not a valid hour
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid hour: {value!r}")
    if isinstance(value, int):
        hour = value
    else:
        hour = int(str(value).strip().split(":")[0])
    if not 0 <= hour <= 24:
        raise ValueError(f"Hour out of range: {value!r}")
    return hour


def week_bounds(moment: datetime) -> Tuple[datetime, datetime]:
    """
    Monday 00:00 to Sunday 23:59:59.999999 of the week containing `moment`.
    """
    week_start = (moment - timedelta(days=moment.weekday())).replace(hour=0, minute=0, second=0, microsecond=0)
    week_end = week_start + timedelta(days=7) - timedelta(microseconds=1)
    return week_start, week_end
