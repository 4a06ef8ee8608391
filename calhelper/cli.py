"""
CLI (Command Line Interface).

Thin wrapper around the two pipeline functions, e.g.:

    calhelper ics timetable.docx --start 2025-09-08 -o timetable.ics
    calhelper json timetable.xml --with-ics
    calhelper show timetable.docx --skipped

Note:
- All parsing lives in calhelper/schedule.py; this module only reads the
  input file, picks the output format and reports errors
- Pipeline errors are shown verbatim as "Error: <message>" with exit code 1
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from calhelper.errors import ScheduleError
from calhelper.export_ics import build_ics, export_events_to_ics
from calhelper.model import Diagnostics, ParseResult
from calhelper.schedule import DEFAULT_START_DATE, DEFAULT_TIME_ZONE, parse_schedule

console = Console()


def _read_input(path: str) -> bytes:
    """
    Read the uploaded timetable file as raw bytes.
    """
    return Path(path).read_bytes()


def _parse(args: argparse.Namespace, diagnostics: Diagnostics | None = None) -> ParseResult:
    data = _read_input(args.input)
    return parse_schedule(data, start_date=args.start, time_zone=args.tz, diagnostics=diagnostics)


def _cmd_ics(args: argparse.Namespace) -> int:
    """
    Print the calendar, or write it to --out.
    """
    result = _parse(args)

    if args.out:
        n = export_events_to_ics(result.events, result.time_zone, args.out)
        print(f"Exported {n} events to: {args.out}")
        return 0

    sys.stdout.write(build_ics(result.events, result.time_zone))
    return 0


def _cmd_json(args: argparse.Namespace) -> int:
    """
    Print the parse result as JSON.
    """
    result = _parse(args)
    ics = build_ics(result.events, result.time_zone) if args.with_ics else None
    print(json.dumps(result.to_dict(ics=ics), ensure_ascii=False, indent=2))
    return 0


def _cmd_show(args: argparse.Namespace) -> int:
    """
    Render the events as a table in the terminal.
    """
    diagnostics = Diagnostics()
    result = _parse(args, diagnostics)

    title = result.title or Path(args.input).name
    console.print(f"[bold]{escape(title)}[/bold]")
    console.print(f"Time zone {result.time_zone} · starts {result.start_date}")

    if not result.events:
        console.print("No events found.")
    else:
        table = Table(box=box.SIMPLE_HEAVY, show_lines=False)
        table.add_column("Course", overflow="fold")
        table.add_column("Day", no_wrap=True)
        table.add_column("Periods", no_wrap=True)
        table.add_column("Teacher")
        table.add_column("Location")
        table.add_column("Weeks", overflow="fold")
        table.add_column("#", justify="right")
        table.add_column("First", no_wrap=True)

        for ev in result.events:
            periods = f"{ev.start_period}-{ev.end_period}" if ev.start_period != ev.end_period else str(ev.start_period)
            first = ev.occurrences[0].dt_start if ev.occurrences else ""
            # cell text comes from the document; never interpret it as markup
            table.add_row(
                escape(ev.course_name or ev.course_raw),
                escape(ev.day_label),
                periods,
                escape(ev.teacher),
                escape(ev.location),
                escape(ev.weeks_raw),
                str(len(ev.occurrences)),
                first,
            )
        console.print(table)
        console.print(f"{len(result.events)} events, {result.occurrence_count} occurrences")

    if args.skipped and len(diagnostics):
        console.print(f"\n[yellow]Skipped entries: {len(diagnostics)}[/yellow]")
        for s in diagnostics.skipped:
            console.print(f"- row {s.row}, column {s.column}: {s.text}  ({s.reason})", markup=False)

    return 0


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument("input", type=str, help="Timetable file (.docx or Flat OPC .xml)")
    p.add_argument(
        "--start",
        type=str,
        default=DEFAULT_START_DATE,
        help=f"Monday of week 1, YYYY-MM-DD (default: {DEFAULT_START_DATE})",
    )
    p.add_argument(
        "--tz",
        type=str,
        default=DEFAULT_TIME_ZONE,
        help=f"IANA time zone (default: {DEFAULT_TIME_ZONE})",
    )


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="calhelper", description="Word timetable to ICS calendar")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    p_ics = sub.add_parser("ics", help="Convert a timetable to an .ics calendar")
    _add_common(p_ics)
    p_ics.add_argument("-o", "--out", type=str, default=None, help="Output file path (default: stdout)")

    p_json = sub.add_parser("json", help="Print parsed events as JSON")
    _add_common(p_json)
    p_json.add_argument("--with-ics", action="store_true", help="Include the calendar text in the payload")

    p_show = sub.add_parser("show", help="Show parsed events as a table")
    _add_common(p_show)
    p_show.add_argument("--skipped", action="store_true", help="Also list entries that were skipped")

    return parser


def main(argv: list[str] | None = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s - %(name)s - %(message)s")

    handlers = {"ics": _cmd_ics, "json": _cmd_json, "show": _cmd_show}
    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(2)

    try:
        raise SystemExit(handler(args))
    except OSError as exc:
        print(f"Error: {exc.strerror or exc}: {exc.filename or args.input}", file=sys.stderr)
        raise SystemExit(1)
    except ScheduleError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1)
