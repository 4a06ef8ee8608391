"""
Event aggregation.

The same course often shows up in several cells or entries (for example
"1-8周" and "10-16周" written separately). Everything that shares course,
teacher, location, weekday and period range is merged into one Event with
a weekly RRULE when the weeks are evenly spaced, or an explicit RDATE list
otherwise.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from calhelper.model import CourseRecord, Event, EventKey, Occurrence, RecurrenceRule

UID_PREFIX = "cal-"
WEEKS_RAW_SEPARATOR = "、"


def derive_rrule(weeks: Sequence[int]) -> Optional[RecurrenceRule]:
    """
    Weekly rule for a sorted, de-duplicated week list.

    Returns None for fewer than two weeks or when the gaps between weeks differ.
    """
    if len(weeks) <= 1:
        return None
    deltas = {b - a for a, b in zip(weeks, weeks[1:])}
    if len(deltas) != 1:
        return None
    interval = deltas.pop()
    if interval <= 0:
        return None
    return RecurrenceRule(interval=interval, count=len(weeks))


def event_uid(key: EventKey) -> str:
    """
    Stable calendar UID for an aggregation key.

    The key is JSON encoded before hashing, so field contents can never run
    into each other.
    """
    payload = json.dumps(list(key), ensure_ascii=False).encode("utf-8")
    return UID_PREFIX + hashlib.blake2s(payload, digest_size=4).hexdigest()


@dataclass
class _Bucket:
    record: CourseRecord
    day_label: str
    start_period: Optional[int]
    end_period: Optional[int]
    enrollment: Optional[int]
    weeks_raw: List[str] = field(default_factory=list)
    weeks: set = field(default_factory=set)
    occurrences: List[Occurrence] = field(default_factory=list)


class EventAggregator:
    """
    Collects (record, occurrences) pairs and folds them into Events.

    Event order follows the order in which keys were first added.
    """

    def __init__(self, time_zone: str) -> None:
        self.time_zone = time_zone
        self._buckets: Dict[EventKey, _Bucket] = {}

    def __len__(self) -> int:
        return len(self._buckets)

    def add(
        self,
        record: CourseRecord,
        day_label: str,
        start_period: Optional[int],
        end_period: Optional[int],
        occurrences: Sequence[Occurrence],
    ) -> EventKey:
        key = EventKey(
            record.course_raw,
            record.teacher,
            record.location,
            day_label,
            start_period,
            end_period,
        )
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = _Bucket(
                record=record,
                day_label=day_label,
                start_period=start_period,
                end_period=end_period,
                enrollment=record.enrollment,
            )
            self._buckets[key] = bucket

        if record.weeks_raw not in bucket.weeks_raw:
            bucket.weeks_raw.append(record.weeks_raw)
        bucket.weeks.update(record.weeks)
        bucket.occurrences.extend(occurrences)
        if record.enrollment and not bucket.enrollment:
            bucket.enrollment = record.enrollment
        return key

    def events(self) -> List[Event]:
        out: List[Event] = []
        for key, bucket in self._buckets.items():
            # one occurrence per start timestamp (first one wins)
            unique: Dict[str, Occurrence] = {}
            for occ in bucket.occurrences:
                unique.setdefault(occ.dt_start, occ)
            occurrences = sorted(unique.values(), key=lambda o: o.dt_start)

            weeks = sorted(bucket.weeks)
            rrule = derive_rrule(weeks)
            rdates: List[str] = []
            if rrule is None and len(occurrences) > 1:
                rdates = [occ.dt_start for occ in occurrences[1:]]

            record = bucket.record
            out.append(
                Event(
                    course_raw=record.course_raw,
                    course_type=record.course_type,
                    course_name=record.course_name,
                    teacher=record.teacher,
                    location=record.location,
                    enrollment=bucket.enrollment,
                    day_label=bucket.day_label,
                    start_period=bucket.start_period,
                    end_period=bucket.end_period,
                    weeks_raw=WEEKS_RAW_SEPARATOR.join(bucket.weeks_raw),
                    weeks=weeks,
                    occurrences=occurrences,
                    rrule=rrule,
                    rdates=rdates,
                    uid=event_uid(key),
                    time_zone=self.time_zone,
                )
            )
        return out
