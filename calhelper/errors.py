"""
Exception hierarchy.

Every failure that aborts a parse derives from ScheduleError, so calling
layers can catch one type and show str(error) to the user as-is.
"""

from __future__ import annotations

from typing import Optional


class ScheduleError(Exception):
    """Base exception for all fatal pipeline errors."""


class InputFormatError(ScheduleError):
    """Input is too short, of the wrong type or not a Word export at all."""


class InvalidOptionError(ScheduleError):
    """Start date or time zone cannot be used."""


class ArchiveError(ScheduleError):
    """Base for problems inside the ZIP container."""


class CorruptArchiveError(ArchiveError):
    pass


class MissingDocumentPartError(ArchiveError):
    pass


class UnsupportedCompressionError(ArchiveError):
    def __init__(self, method: int):
        super().__init__(f"Unsupported ZIP compression method: {method}")
        self.method = method


class DecoderUnavailableError(ArchiveError):
    """No deflate implementation and no fallback decoder are available."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message
            or "ZIP/deflate decompression is not available here; "
            "please upload the timetable as a Flat OPC XML file"
        )


class TableStructureError(ScheduleError):
    """The timetable table is missing or its merged cells cannot be resolved."""

    def __init__(self, message: str, row: Optional[int] = None, column: Optional[int] = None):
        super().__init__(message)
        self.row = row
        self.column = column


class CourseCellError(ValueError):
    """
    A single course entry could not be parsed.

    Not a ScheduleError: the extractor catches it and skips the entry.
    """
