"""
ICS Generator for creating iCalendar (.ics) text and files.
Generates RFC5545 calendars with one VEVENT per MaterializedEvent.
"""

import re
import uuid
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, List, Union

from dateutil import tz as dateutil_tz

from kairos.event_models import MaterializedEvent
from kairos.logging_helper import Log

PRODID = "-//Kairos//EN"
UID_DOMAIN = "kairos.app"
MAX_LINE_OCTETS = 75


def _escape_ical_text(text: str) -> str:
    """
    Escape text for iCalendar format (RFC5545).
    Escapes commas, semicolons, backslashes, and newlines.

    Args:
        text: Text to escape

    Returns:
        Escaped text safe for iCalendar
    """
    if text is None:
        return ""

    # Replace backslashes first (before other replacements)
    text = text.replace('\\', '\\\\')
    text = text.replace(';', '\\;')
    text = text.replace(',', '\\,')
    text = text.replace('\r\n', '\n')
    text = text.replace('\n', '\\n')
    text = text.replace('\r', '')
    return text


def _fold_line(line: str) -> List[str]:
    """
    Fold a content line to at most 75 octets per physical line.
    Continuation lines start with a single space.
    """
    if len(line.encode('utf-8')) <= MAX_LINE_OCTETS:
        return [line]

    lines = []
    current_line = ""
    for char in line:
        test_line = current_line + char
        if len(test_line.encode('utf-8')) <= MAX_LINE_OCTETS:
            current_line = test_line
        else:
            lines.append(current_line)
            current_line = " " + char
    if current_line:
        lines.append(current_line)
    return lines


def _format_ical_datetime(dt: datetime) -> str:
    """
    Format datetime to iCalendar UTC form.

    Args:
        dt: timezone-aware datetime

    Returns:
        Formatted datetime string (YYYYMMDDTHHMMSSZ)
    """
    if dt.tzinfo is None:
        # If no timezone, assume it's local time (system timezone)
        system_tz = dateutil_tz.tzlocal()
        dt = dt.replace(tzinfo=system_tz)
        Log.warn(f"Datetime missing timezone info, assuming system timezone: {system_tz}")

    dt_utc = dt.astimezone(dateutil_tz.tzutc())
    return dt_utc.strftime('%Y%m%dT%H%M%SZ')


def _format_ical_date(d: date) -> str:
    return d.strftime('%Y%m%d')


def _event_lines(event: MaterializedEvent, dtstamp: str) -> List[str]:
    lines = [
        "BEGIN:VEVENT",
        f"UID:{uuid.uuid4()}@{UID_DOMAIN}",
        f"DTSTAMP:{dtstamp}",
    ]
    if event.title:
        lines.append(f"SUMMARY:{_escape_ical_text(event.title)}")
    if event.location:
        lines.append(f"LOCATION:{_escape_ical_text(event.location)}")
    if event.notes:
        lines.append(f"DESCRIPTION:{_escape_ical_text(event.notes)}")

    if event.all_day:
        lines.append(f"DTSTART;VALUE=DATE:{_format_ical_date(event.start.date())}")
        lines.append(f"DTEND;VALUE=DATE:{_format_ical_date(event.end.date())}")
    else:
        lines.append(f"DTSTART:{_format_ical_datetime(event.start)}")
        lines.append(f"DTEND:{_format_ical_datetime(event.end)}")

    lines.append("END:VEVENT")
    return lines


def generate_ics(events: Union[MaterializedEvent, Iterable[MaterializedEvent]]) -> str:
    """
    Build an iCalendar document.

    Each call stamps a fresh UID per event and the current UTC time as DTSTAMP.

    Args:
        events: One MaterializedEvent or a sequence of them

    Returns:
        ICS text with CRLF line endings
    """
    if isinstance(events, MaterializedEvent):
        events = [events]

    dtstamp = _format_ical_datetime(datetime.now(dateutil_tz.tzutc()))
    ics_lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
    ]
    count = 0
    for event in events:
        ics_lines.extend(_event_lines(event, dtstamp))
        count += 1
    ics_lines.append("END:VCALENDAR")

    folded = [physical for line in ics_lines for physical in _fold_line(line)]
    Log.kv({"stage": "ics", "result": "success", "events": count})
    return '\r\n'.join(folded) + '\r\n'


def ics_filename(title: str) -> str:
    """Build a unique, filesystem-safe .ics filename from an event title."""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    safe_title = re.sub(r'[^\w\s-]', '', title)[:50]
    safe_title = re.sub(r'[-\s]+', '_', safe_title).strip('_') or "Event"
    return f"Kairos_{safe_title}_{timestamp}_{uuid.uuid4().hex[:6]}.ics"


def save_ics(events: Union[MaterializedEvent, Iterable[MaterializedEvent]], directory: Path) -> Path:
    """
    Write an ICS file for the given events into directory.

    Args:
        events: One MaterializedEvent or a sequence of them
        directory: Output directory (created if missing)

    Returns:
        Path of the written file
    """
    if isinstance(events, MaterializedEvent):
        events = [events]
    events = list(events)
    title = events[0].title if len(events) == 1 else f"{len(events)}_events"

    directory = Path(directory).expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    ics_path = directory / ics_filename(title)
    ics_path.write_text(generate_ics(events), encoding='utf-8', newline='')

    Log.info(f"ICS file generated: {ics_path}")
    Log.kv({"stage": "ics", "action": "saved", "ics_path": str(ics_path), "events": len(events)})
    return ics_path
