"""
Email bodies for queued jobs.

Bodies are written in markdown and converted to HTML with markdown2.
markdown2 passes raw HTML through, so meeting fields from calendars and
booking forms are HTML-escaped before they go into the markdown.
"""

import html
from datetime import datetime
from typing import Tuple

import markdown2

from ..core.database import Meeting


MARKDOWN_EXTRAS = ["break-on-newline", "cuddled-lists"]


def format_time(value: datetime) -> str:
    """e.g. 'Tuesday, March 04, 2025 at 10:00 AM UTC'"""
    return value.strftime("%A, %B %d, %Y at %I:%M %p UTC")


def _esc(value) -> str:
    return html.escape(str(value))


def _greeting(meeting: Meeting) -> str:
    return f"Hi {_esc(meeting.attendee_name or 'there')},"


def _signature(sender_name: str) -> str:
    return f"Best regards,\n{_esc(sender_name)}"


def _to_html(body_markdown: str, footer: str = "") -> str:
    body_html = markdown2.markdown(body_markdown, extras=MARKDOWN_EXTRAS)
    footer_html = (
        f'<p style="color: #6c757d; font-size: 12px;"><em>{footer}</em></p>' if footer else ""
    )
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; color: #333;">'
        f"{body_html}{footer_html}</div>"
    )


def render_confirmation(meeting: Meeting, sender_name: str) -> Tuple[str, str]:
    duration = int((meeting.end_time - meeting.start_time).total_seconds() // 60)
    lines = [
        _greeting(meeting),
        "",
        "Thank you for scheduling time with us! This email confirms your upcoming meeting.",
        "",
        f"### {_esc(meeting.title)}",
        f"**When:** {format_time(meeting.start_time)}  ",
        f"**Duration:** {duration} minutes",
    ]
    if meeting.company:
        lines.append(f"**Company:** {_esc(meeting.company)}")
    if meeting.description:
        lines.append(f"**Agenda:** {_esc(meeting.description)}")
    lines += [
        "",
        "If you need to reschedule or have any questions, just reply to this email.",
        "",
        _signature(sender_name),
    ]
    return f"Meeting confirmed: {meeting.title}", _to_html("\n".join(lines))


def render_reminder(meeting: Meeting, sender_name: str) -> Tuple[str, str]:
    lines = [
        _greeting(meeting),
        "",
        "This is a friendly reminder about our meeting tomorrow:",
        "",
        f"### {_esc(meeting.title)}",
        f"**When:** {format_time(meeting.start_time)}",
    ]
    if meeting.company:
        lines.append(f"**Company:** {_esc(meeting.company)}")
    lines += ["", "See you tomorrow!", "", _signature(sender_name)]
    return f"Reminder: {meeting.title} tomorrow", _to_html("\n".join(lines))


def render_follow_up(meeting: Meeting, sender_name: str) -> Tuple[str, str]:
    about = f" more about {_esc(meeting.company)} and your goals" if meeting.company else " about your goals"
    lines = [
        _greeting(meeting),
        "",
        f"Thank you for taking the time to meet with us today. It was great learning{about}.",
        "",
        "If you have any questions or need additional information, please don't hesitate to reach out.",
        "",
        _signature(sender_name),
    ]
    return f"Thank you for meeting with us: {meeting.title}", _to_html("\n".join(lines))


def render_calendar_deletion(meeting: Meeting, sender_name: str) -> Tuple[str, str]:
    lines = [
        "The following disqualified meeting was removed from your calendar:",
        "",
        f"### {_esc(meeting.title)}",
        f"**Was scheduled:** {format_time(meeting.start_time)}  ",
        f"**Attendee:** {_esc(meeting.attendee_name or 'Unknown')} ({_esc(meeting.attendee_email or 'no email')})",
    ]
    if meeting.qualification_reason:
        lines.append(f"**Reason:** {_esc(meeting.qualification_reason)}")
    lines += ["", f"- {_esc(sender_name)}"]
    return f"Removed from calendar: {meeting.title}", _to_html("\n".join(lines))


def render_reschedule_offer(
    meeting: Meeting, proposed_time: datetime, attempt_number: int, sender_name: str
) -> Tuple[str, str]:
    """
    Reschedule offer after a no-show.

    The first attempt is apologetic; later attempts are a final notice.
    """
    first_attempt = attempt_number == 1
    subject = (
        f"Let's reschedule our meeting - {meeting.title}"
        if first_attempt
        else f"Second attempt: Rescheduling our meeting - {meeting.title}"
    )
    opener = (
        "I noticed we missed our scheduled meeting earlier. No worries - these things happen!"
        if first_attempt
        else "I wanted to follow up on rescheduling our meeting."
    )
    original = meeting.original_meeting_time or meeting.start_time
    lines = [
        _greeting(meeting),
        "",
        opener,
        "",
        "#### Original meeting",
        f"**{_esc(meeting.title)}**  ",
        f"Originally scheduled: {format_time(original)}",
        "",
        "#### Proposed new time",
        f"**{format_time(proposed_time)}**",
        "",
        "Please reply to confirm this time works for you, or suggest an alternative that's more convenient.",
        "",
        "Looking forward to connecting with you!",
        "",
        _signature(sender_name),
    ]
    footer = (
        ""
        if first_attempt
        else "This is our final automatic reschedule attempt. Please reply to confirm or suggest an alternative time."
    )
    return subject, _to_html("\n".join(lines), footer)


RENDERERS = {
    "confirmation": render_confirmation,
    "reminder": render_reminder,
    "follow_up": render_follow_up,
    "calendar_deletion": render_calendar_deletion,
}
