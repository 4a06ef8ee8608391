"""
calhelper - Word timetable (.docx / Flat OPC) to ICS calendar.

    from calhelper import parse_schedule, build_ics

    result = parse_schedule(data, start_date="2025-09-08", time_zone="Asia/Shanghai")
    text = build_ics(result.events, result.time_zone)
"""

from calhelper.errors import ScheduleError
from calhelper.export_ics import build_ics
from calhelper.schedule import parse_schedule

__all__ = ["ScheduleError", "build_ics", "parse_schedule"]
