"""
Module entry point, equivalent to the calhelper console script:

    python -m calhelper ics timetable.docx -o timetable.ics
"""

from calhelper.cli import main

if __name__ == "__main__":
    main()
