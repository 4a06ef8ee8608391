"""
Timetable parsing (document -> structured events).

- Resolves document.xml from the uploaded file (archive.py)
- Scans the first table and rebuilds its merged-cell grid (markup.py, grid.py)
- Reads period rows ("第1节 08:00~08:45") and weekday headers ("星期一")
- Parses every "weeks/course/teacher/location/size" entry and expands it
  into dated occurrences over the semester
- Merges repeated entries into recurring events (aggregate.py)

Rules for broken input:
- container / table problems abort the parse (ScheduleError)
- a single unparsable entry, an unknown weekday column or a row without
  period times is skipped; pass a Diagnostics object to see what was skipped

The start date is expected to be the Monday of week 1. This is not checked.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from calhelper.aggregate import EventAggregator
from calhelper.archive import ArchiveReader, InputData
from calhelper.errors import CourseCellError, InvalidOptionError, TableStructureError
from calhelper.grid import Grid, build_grid, find_cell_end_row
from calhelper.markup import extract_tables, extract_title, parse_table
from calhelper.model import (
    CourseRecord,
    Diagnostics,
    Event,
    GridCell,
    Occurrence,
    ParseResult,
    Period,
)

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_START_DATE = "2025-09-08"
DEFAULT_TIME_ZONE = "Asia/Shanghai"

# Header label -> days after Monday
DAY_OFFSETS: Dict[str, int] = {
    "星期一": 0,
    "星期二": 1,
    "星期三": 2,
    "星期四": 3,
    "星期五": 4,
    "星期六": 5,
    "星期日": 6,
    "星期天": 6,
}

_PERIOD_RE = re.compile(r"第(\d+)节\s+(\d{2}:\d{2})~(\d{2}:\d{2})", re.ASCII)
_WHITESPACE_RE = re.compile(r"\s+")
_WEEK_SPLIT_RE = re.compile(r"[、,，]")
_WEEK_SEGMENT_RE = re.compile(r"(\d+)(?:-(\d+))?(.+)?", re.ASCII)
_COURSE_TYPE_RE = re.compile(r"(.*?[)）])(.*)")
_DIGITS_RE = re.compile(r"\d+", re.ASCII)
_START_DATE_RE = re.compile(r"(\d{1,4})-(\d{1,2})-(\d{1,2})", re.ASCII)
_ENTRY_SPLIT_RE = re.compile(r"\n|\s{2,}")

COURSE_FIELD_COUNT = 5


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


def parse_start_date(value: str) -> date:
    """
    Parse 'YYYY-MM-DD' (month/day may be one digit).
    """
    m = _START_DATE_RE.fullmatch((value or "").strip())
    if not m:
        raise InvalidOptionError(f"Invalid start date: {value!r}")
    try:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError:
        raise InvalidOptionError(f"Invalid start date: {value!r}") from None


def load_time_zone(name: str) -> tzinfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidOptionError(f"Unknown time zone: {name!r}") from None


# ---------------------------------------------------------------------------
# Grid interpretation
# ---------------------------------------------------------------------------


def parse_period_label(text: str) -> Optional[Period]:
    """
    Parse a first-column label like '第3节 09:55~10:40'; None if it is not one.
    """
    normalized = _WHITESPACE_RE.sub(" ", text or "").strip()
    m = _PERIOD_RE.fullmatch(normalized)
    if not m:
        return None
    start, end = m.group(2), m.group(3)
    try:
        datetime.strptime(start, "%H:%M")
        datetime.strptime(end, "%H:%M")
    except ValueError:
        return None
    return Period(number=int(m.group(1)), start=start, end=end)


def extract_periods(grid: Grid) -> Dict[int, Period]:
    """
    Map row index -> Period for every data row whose first column is a period label.
    """
    periods: Dict[int, Period] = {}
    for row_index in range(1, len(grid)):
        cell = grid[row_index][0] if grid[row_index] else None
        if cell is None or not cell.text:
            continue
        period = parse_period_label(cell.text)
        if period is not None:
            periods[row_index] = period
    return periods


def build_column_day_map(grid: Grid) -> List[Optional[str]]:
    """
    Header text per column (column 0 holds period labels and maps to None).
    """
    header = grid[0]
    day_map: List[Optional[str]] = [None] * len(header)
    for col in range(1, len(header)):
        cell = header[col]
        day_map[col] = cell.text.strip() if cell is not None and cell.text else ""
    return day_map


# ---------------------------------------------------------------------------
# Entry parsing
# ---------------------------------------------------------------------------


def parse_weeks(raw: str) -> List[int]:
    """
    Expand a week specification into sorted week numbers.

    Segments are separated by '、', ',' or '，'. Each segment is 'N' or 'N-M'
    with an optional suffix; a suffix containing 单周 keeps odd weeks, 双周
    keeps even weeks. Segments that do not start with a number are ignored.
    """
    weeks = set()
    for segment in _WEEK_SPLIT_RE.split(raw or ""):
        segment = segment.strip()
        if not segment:
            continue
        m = _WEEK_SEGMENT_RE.fullmatch(segment)
        if not m:
            continue
        start = int(m.group(1))
        end = int(m.group(2)) if m.group(2) else start
        tail = m.group(3) or ""

        parity: Optional[int] = None
        if "单周" in tail:
            parity = 1
        elif "双周" in tail:
            parity = 0

        for week in range(start, end + 1):
            if parity is not None and week % 2 != parity:
                continue
            weeks.add(week)
    return sorted(weeks)


def parse_course_cell(raw_text: str) -> CourseRecord:
    """
    Parse one 'weeks/course/teacher/location/size' entry.

    Raises CourseCellError unless there are exactly five '/' separated fields.
    """
    parts = [p.strip() for p in raw_text.split("/")]
    if len(parts) != COURSE_FIELD_COUNT:
        raise CourseCellError(
            f"Cannot parse course entry (expected {COURSE_FIELD_COUNT} fields, "
            f"got {len(parts)}): {raw_text}"
        )
    weeks_raw, course_raw, teacher, location, size_raw = parts

    # "(必修)高等数学" -> type "(必修)", name "高等数学"
    course_type: Optional[str] = None
    course_name = course_raw
    m = _COURSE_TYPE_RE.fullmatch(course_raw)
    if m:
        course_type = m.group(1).strip()
        course_name = m.group(2).strip() or course_raw

    size = _DIGITS_RE.search(size_raw)

    return CourseRecord(
        weeks_raw=weeks_raw,
        weeks=parse_weeks(weeks_raw),
        course_raw=course_raw,
        course_type=course_type,
        course_name=course_name,
        teacher=teacher,
        location=location or "",
        enrollment=int(size.group(0)) if size else None,
    )


def split_course_entries(cell: GridCell) -> List[str]:
    """
    Candidate entries of a cell: paragraphs (or the whole text) split on
    newlines and runs of 2+ spaces, keeping pieces that contain '/'.
    """
    entries: List[str] = []
    sources = cell.paragraphs if cell.paragraphs else [cell.text or ""]
    for paragraph in sources:
        if not paragraph:
            continue
        for part in _ENTRY_SPLIT_RE.split(paragraph):
            part = part.strip()
            if part and "/" in part:
                entries.append(part)
    return entries


# ---------------------------------------------------------------------------
# Occurrences
# ---------------------------------------------------------------------------


def format_local_timestamp(day: date, hh_mm: str, tz: tzinfo) -> str:
    """
    Wall-clock time on day in tz, as 'YYYYMMDDTHHMM00'.
    """
    moment = datetime.combine(day, time.fromisoformat(hh_mm), tzinfo=tz)
    return moment.strftime("%Y%m%dT%H%M00")


def compute_occurrences(
    weeks: Sequence[int],
    base_date: date,
    day_offset: int,
    start_row: int,
    end_row: int,
    periods: Dict[int, Period],
    tz: tzinfo,
) -> List[Occurrence]:
    """
    One Occurrence per week, from the start row's start time to the end row's
    end time. Empty if either row has no period; InvalidOptionError if a
    date falls outside the supported range.
    """
    start_period = periods.get(start_row)
    end_period = periods.get(end_row)
    if not weeks or start_period is None or end_period is None:
        return []

    occurrences: List[Occurrence] = []
    for week in weeks:
        try:
            day = base_date + timedelta(weeks=week - 1, days=day_offset)
        except OverflowError:
            raise InvalidOptionError(
                f"Week {week} from start date {base_date.isoformat()} is outside the supported date range"
            ) from None
        occurrences.append(
            Occurrence(
                week=week,
                dt_start=format_local_timestamp(day, start_period.start, tz),
                dt_end=format_local_timestamp(day, end_period.end, tz),
            )
        )
    return occurrences


def collect_events(
    grid: Grid,
    column_day_map: Sequence[Optional[str]],
    periods: Dict[int, Period],
    base_date: date,
    tz: tzinfo,
    time_zone: str,
    diagnostics: Optional[Diagnostics] = None,
) -> List[Event]:
    """
    Visit every logical cell once (at its top-left anchor) and aggregate its entries.
    """
    aggregator = EventAggregator(time_zone)

    def skip(row: int, col: int, text: str, reason: str) -> None:
        log.debug("Skipping entry at row %d, column %d (%s): %s", row, col, reason, text)
        if diagnostics is not None:
            diagnostics.skip(row, col, text, reason)

    for row_index in range(1, len(grid)):
        row = grid[row_index]
        for col in range(1, len(row)):
            cell = row[col]
            if cell is None or cell.row_start != row_index or cell.start_column != col:
                continue

            entries = split_course_entries(cell)
            if not entries:
                continue

            day_label = column_day_map[col] if col < len(column_day_map) else None
            day_offset = DAY_OFFSETS.get(day_label or "")
            if day_offset is None:
                for entry in entries:
                    skip(row_index, col, entry, f"unknown weekday column {day_label!r}")
                continue

            end_row = find_cell_end_row(grid, row_index, col, cell)
            start_period = periods.get(row_index)
            end_period = periods.get(end_row)

            for entry in entries:
                try:
                    record = parse_course_cell(entry)
                except CourseCellError as exc:
                    skip(row_index, col, entry, str(exc))
                    continue

                occurrences = compute_occurrences(
                    record.weeks, base_date, day_offset, row_index, end_row, periods, tz
                )
                if not occurrences:
                    reason = "no weeks" if not record.weeks else f"no period time for rows {row_index}-{end_row}"
                    skip(row_index, col, entry, reason)
                    continue

                aggregator.add(
                    record,
                    day_label,
                    start_period.number if start_period else None,
                    end_period.number if end_period else None,
                    occurrences,
                )

    return aggregator.events()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_schedule(
    data: InputData,
    start_date: str = DEFAULT_START_DATE,
    time_zone: str = DEFAULT_TIME_ZONE,
    *,
    reader: Optional[ArchiveReader] = None,
    diagnostics: Optional[Diagnostics] = None,
) -> ParseResult:
    """
    Parse an exported timetable (.docx bytes, Flat OPC XML or document.xml).

    start_date is the Monday of week 1 ('YYYY-MM-DD'); time_zone an IANA
    zone name. Raises ScheduleError on any fatal problem; no partial result
    is returned.
    """
    # validate options before touching the document
    base_date = parse_start_date(start_date)
    tz = load_time_zone(time_zone)

    document_xml = (reader or ArchiveReader()).read_document(data)
    title = extract_title(document_xml)

    tables = extract_tables(document_xml)
    if not tables:
        raise TableStructureError("No timetable table found in the document")

    rows = parse_table(tables[0])
    grid = build_grid(rows)
    periods = extract_periods(grid)
    column_day_map = build_column_day_map(grid)

    events = collect_events(grid, column_day_map, periods, base_date, tz, time_zone, diagnostics)
    log.debug("Parsed %d events from %d rows", len(events), len(grid))

    return ParseResult(
        title=title,
        events=events,
        periods=periods,
        column_day_map=column_day_map,
        time_zone=time_zone,
        start_date=start_date,
    )
