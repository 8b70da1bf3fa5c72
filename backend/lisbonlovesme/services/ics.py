"""
ICS calendar invites for confirmed bookings (RFC 5545, CRLF line endings).
"""

from datetime import datetime, timedelta
from typing import Optional
import re
import uuid

_DEFAULT_DURATION_HOURS = 3


def parse_duration_hours(duration: Optional[str]) -> int:
    """'3 hours' -> 3, '2h30' -> 2; anything unparseable falls back to 3."""
    if not duration:
        return _DEFAULT_DURATION_HOURS
    match = re.match(r"\s*(\d+)", str(duration))
    if not match:
        return _DEFAULT_DURATION_HOURS
    hours = int(match.group(1))
    return hours if hours > 0 else _DEFAULT_DURATION_HOURS


def escape_text(value: str) -> str:
    return (
        str(value)
        .replace("\\", "\\\\")
        .replace("\r", "")
        .replace("\n", "\\n")
        .replace(",", "\\,")
        .replace(";", "\\;")
    )


def _fmt_utc(dt: datetime) -> str:
    return dt.strftime("%Y%m%dT%H%M%SZ")


def _fmt_local(dt: datetime) -> str:
    return dt.strftime("%Y%m%dT%H%M%S")


def generate_ics(
    summary: str,
    description: str,
    location: str,
    start: datetime,
    duration_hours: int = _DEFAULT_DURATION_HOURS,
    url: Optional[str] = None,
    tzid: Optional[str] = None,
    uid: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Build a single-event calendar. `start` is wall-clock time in `tzid` when
    a tzid is given, otherwise UTC.
    """
    end = start + timedelta(hours=duration_hours)
    stamp = now or datetime.utcnow()
    uid = uid or f"event-{uuid.uuid4().hex}@lisbonlovesme.com"

    if tzid:
        when = [f"DTSTART;TZID={tzid}:{_fmt_local(start)}", f"DTEND;TZID={tzid}:{_fmt_local(end)}"]
    else:
        when = [f"DTSTART:{_fmt_utc(start)}", f"DTEND:{_fmt_utc(end)}"]

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Lisbonlovesme//Tour Booking//EN",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        "BEGIN:VEVENT",
        f"UID:{uid}",
        f"SUMMARY:{escape_text(summary)}",
        f"DTSTAMP:{_fmt_utc(stamp)}",
        *when,
        f"DESCRIPTION:{escape_text(description)}",
        f"LOCATION:{escape_text(location)}",
        "STATUS:CONFIRMED",
    ]
    if url:
        lines.append(f"URL:{url}")
    lines += [
        "BEGIN:VALARM",
        "TRIGGER:-PT1H",
        "ACTION:DISPLAY",
        "DESCRIPTION:Reminder",
        "END:VALARM",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
    return "\r\n".join(lines) + "\r\n"
