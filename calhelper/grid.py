"""
Grid reconstruction.

Word stores merged cells sparsely: a horizontal merge is one <w:tc> with a
gridSpan, a vertical merge is a "restart" cell followed by "continue" cells
in the rows below. build_grid() expands that into a dense rows x columns
matrix where every covered position points at the same GridCell instance.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from calhelper.errors import TableStructureError
from calhelper.model import GridCell, RawCell

log = logging.getLogger(__name__)

Grid = List[List[Optional[GridCell]]]


def build_grid(rows: Sequence[Sequence[RawCell]]) -> Grid:
    """
    Expand row/column spans into a dense grid.

    The header row's span sum fixes the column count. Per row, cells are laid
    out left to right:
    - "continue" cells reuse the active cell of each covered column
      (error if a column has none)
    - any other cell creates a new GridCell; a "restart" cell becomes the
      active cell of its columns, a plain cell clears them
    Columns a row leaves unfilled take over their active cell, if any;
    otherwise they stay empty and lose it.
    """
    if not rows or not rows[0]:
        raise TableStructureError("The timetable table has no header row")

    total_cols = sum(cell.colspan for cell in rows[0])
    active: List[Optional[GridCell]] = [None] * total_cols
    grid: Grid = []

    for row_index, row in enumerate(rows):
        expanded: List[Optional[GridCell]] = [None] * total_cols
        col = 0

        for cell in row:
            span = cell.colspan or 1

            if cell.vmerge == "continue":
                for _ in range(span):
                    source = active[col] if col < total_cols else None
                    if source is None:
                        raise TableStructureError(
                            f"Broken cell merge in table at row {row_index}, column {col}",
                            row=row_index,
                            column=col,
                        )
                    expanded[col] = source
                    col += 1
                continue

            if col >= total_cols:
                log.debug("Row %d has cells beyond column %d; ignored", row_index, total_cols)
                break

            new_cell = GridCell(
                text=cell.text,
                paragraphs=list(cell.paragraphs),
                colspan=span,
                vmerge=cell.vmerge,
                row_start=row_index,
                start_column=col,
            )
            for _ in range(span):
                if col >= total_cols:
                    break
                expanded[col] = new_cell
                active[col] = new_cell if cell.vmerge == "restart" else None
                col += 1

        # carry vertical merges the export did not mark on every row
        for c in range(total_cols):
            if expanded[c] is None and active[c] is not None:
                expanded[c] = active[c]
            if expanded[c] is None:
                active[c] = None

        grid.append(expanded)

    return grid


def find_cell_end_row(grid: Grid, start_row: int, col: int, target: GridCell) -> int:
    """
    Last row (inclusive) whose column col still holds target, starting at start_row.
    """
    end_row = start_row
    for r in range(start_row + 1, len(grid)):
        if grid[r][col] is not target:
            break
        end_row = r
    return end_row
