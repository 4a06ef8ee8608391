"""
iCalendar (.ics) export.

We convert aggregated timetable events into a calendar file that can be
imported into:
- Google Calendar
- Outlook
- Apple Calendar

Each Event becomes one VEVENT: the first occurrence gives DTSTART/DTEND,
the rest are covered by a weekly RRULE or by an RDATE list.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

from calhelper.model import Event

PRODID = "-//calendar-helper//CN"


def _ics_escape(text: str) -> str:
    """
    Escape text for ICS fields (backslash, newline, semicolon, comma).
    """
    return (
        text.replace("\\", "\\\\").replace("\r\n", "\\n").replace("\n", "\\n").replace(";", "\\;").replace(",", "\\,")
    )


def _dtstamp(now: Optional[datetime] = None) -> str:
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y%m%dT%H%M%SZ")


def _description(ev: Event) -> str:
    parts: List[str] = []
    if ev.course_type:
        parts.append(ev.course_type)
    if ev.teacher:
        parts.append(f"教师: {ev.teacher}")
    if ev.enrollment is not None:
        parts.append(f"人数: {ev.enrollment}")
    if ev.weeks_raw:
        parts.append(f"周次: {ev.weeks_raw}")
    return "\n".join(parts)


def build_ics(events: Sequence[Event], time_zone: str, now: Optional[datetime] = None) -> str:
    """
    Render events as iCalendar text (CRLF line endings).

    Events without occurrences are left out. now fixes DTSTAMP (defaults
    to the current UTC time, shared by every VEVENT).
    """
    dtstamp = _dtstamp(now)

    lines: List[str] = []
    lines.append("BEGIN:VCALENDAR")
    lines.append(f"PRODID:{PRODID}")
    lines.append("VERSION:2.0")
    lines.append("CALSCALE:GREGORIAN")
    lines.append("METHOD:PUBLISH")
    lines.append(f"X-WR-TIMEZONE:{time_zone}")

    for ev in events:
        if not ev.occurrences:
            continue

        first = ev.occurrences[0]
        summary = ev.course_name or ev.course_raw
        description = _description(ev)

        lines.append("BEGIN:VEVENT")
        lines.append(f"UID:{ev.uid}")
        lines.append(f"DTSTAMP:{dtstamp}")
        lines.append(f"SUMMARY:{_ics_escape(summary)}")
        if ev.location:
            lines.append(f"LOCATION:{_ics_escape(ev.location)}")
        if description:
            lines.append(f"DESCRIPTION:{_ics_escape(description)}")
        lines.append(f"DTSTART;TZID={time_zone}:{first.dt_start}")
        lines.append(f"DTEND;TZID={time_zone}:{first.dt_end}")
        if ev.rrule is not None:
            lines.append(f"RRULE:{ev.rrule.to_ics()}")
        elif len(ev.occurrences) > 1 and ev.rdates:
            lines.append(f"RDATE;TZID={time_zone}:{','.join(ev.rdates)}")
        lines.append("END:VEVENT")

    lines.append("END:VCALENDAR")

    # ICS standard uses CRLF
    return "\r\n".join(lines) + "\r\n"


def export_events_to_ics(events: Sequence[Event], time_zone: str, out_path: str | Path) -> int:
    """
    Write events to an .ics file. Returns number of exported events.
    """
    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)

    # newline="" keeps the CRLF endings untouched on every platform
    with out.open("w", encoding="utf-8", newline="") as fh:
        fh.write(build_ics(events, time_zone))

    return sum(1 for ev in events if ev.occurrences)
