"""
Central data model definitions used across the pipeline.

This module defines the canonical structure of every value that flows from the
document scanner to the ICS exporter, so that:
- all modules share the same field names
- the grid, the extractor and the aggregator agree on cell identity
- calling layers (CLI, JSON output) see one stable shape
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional


@dataclass(frozen=True)
class RawCell:
    """
    One table cell exactly as it appears in the document markup.

    vmerge is None (no vertical merge), "restart" or "continue".
    """

    text: str
    paragraphs: List[str]
    colspan: int = 1
    vmerge: Optional[str] = None


@dataclass(eq=False)
class GridCell:
    """
    A logical cell placed in the reconstructed grid.

    Compared by identity: every grid position covered by a merged cell holds
    the very same instance.
    """

    text: str
    paragraphs: List[str]
    colspan: int
    vmerge: Optional[str]
    row_start: int
    start_column: int


@dataclass
class Period:
    """A timetable row such as '第1节 08:00~08:45'."""

    number: int
    start: str
    end: str


@dataclass
class CourseRecord:
    """
    Parsed form of one 'weeks/course/teacher/location/size' cell entry.
    """

    weeks_raw: str
    weeks: List[int]
    course_raw: str
    course_type: Optional[str]
    course_name: str
    teacher: str
    location: str
    enrollment: Optional[int]


@dataclass
class Occurrence:
    """
    One concrete meeting. Timestamps are local 'YYYYMMDDTHHMMSS' strings;
    the zone travels with the owning Event.
    """

    week: int
    dt_start: str
    dt_end: str

    def to_dict(self) -> Dict[str, Any]:
        return {"week": self.week, "dtStart": self.dt_start, "dtEnd": self.dt_end}


@dataclass
class RecurrenceRule:
    interval: int
    count: int

    def to_ics(self) -> str:
        return f"FREQ=WEEKLY;INTERVAL={self.interval};COUNT={self.count}"


class EventKey(NamedTuple):
    """Identity of an aggregated event."""

    course_raw: str
    teacher: str
    location: str
    day_label: str
    start_period: Optional[int]
    end_period: Optional[int]


@dataclass
class Event:
    """
    All occurrences of one course at one weekday/period range.
    """

    course_raw: str
    course_type: Optional[str]
    course_name: str
    teacher: str
    location: str
    enrollment: Optional[int]
    day_label: str
    start_period: Optional[int]
    end_period: Optional[int]
    weeks_raw: str
    weeks: List[int]
    occurrences: List[Occurrence]
    rrule: Optional[RecurrenceRule]
    rdates: List[str]
    uid: str
    time_zone: str

    @property
    def key(self) -> EventKey:
        return EventKey(
            self.course_raw,
            self.teacher,
            self.location,
            self.day_label,
            self.start_period,
            self.end_period,
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        JSON-ready view with camelCase keys, like the ParseResult payload.
        """
        return {
            "courseRaw": self.course_raw,
            "courseType": self.course_type,
            "courseName": self.course_name,
            "teacher": self.teacher,
            "location": self.location,
            "enrollment": self.enrollment,
            "dayLabel": self.day_label,
            "startPeriod": self.start_period,
            "endPeriod": self.end_period,
            "weeksRaw": self.weeks_raw,
            "weeks": list(self.weeks),
            "occurrences": [occ.to_dict() for occ in self.occurrences],
            "rrule": {"interval": self.rrule.interval, "count": self.rrule.count} if self.rrule else None,
            "rdates": list(self.rdates),
            "uid": self.uid,
            "timeZone": self.time_zone,
        }


@dataclass
class ParseResult:
    """
    Everything one parse produces. Handed to the ICS exporter and callers.
    """

    title: str
    events: List[Event]
    periods: Dict[int, Period]
    column_day_map: List[Optional[str]]
    time_zone: str
    start_date: str

    @property
    def occurrence_count(self) -> int:
        return sum(len(ev.occurrences) for ev in self.events)

    def to_dict(self, ics: Optional[str] = None) -> Dict[str, Any]:
        """
        JSON-ready payload; every key, nested ones included, is camelCase.
        """
        payload: Dict[str, Any] = {
            "title": self.title,
            "startDate": self.start_date,
            "timeZone": self.time_zone,
            "eventCount": len(self.events),
            "occurrenceCount": self.occurrence_count,
            "events": [ev.to_dict() for ev in self.events],
        }
        if ics is not None:
            payload["ics"] = ics
        return payload


@dataclass
class SkippedEntry:
    row: int
    column: int
    text: str
    reason: str


@dataclass
class Diagnostics:
    """
    Optional collector for entries the extractor skipped.

    Passing one to parse_schedule() does not change the result, it only
    records why records were dropped.
    """

    skipped: List[SkippedEntry] = field(default_factory=list)

    def skip(self, row: int, column: int, text: str, reason: str) -> None:
        self.skipped.append(SkippedEntry(row, column, text, reason))

    def __len__(self) -> int:
        return len(self.skipped)
