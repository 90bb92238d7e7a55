import logging
from collections.abc import Mapping
from typing import Any, Iterable, List

from .models import Grid, RawCell

logger = logging.getLogger(__name__)


def _read(obj: Any, *names: str, default=None):
    """Reads the first present key/attribute; service payloads come as dicts or SDK objects."""
    for name in names:
        if isinstance(obj, Mapping):
            if name in obj and obj[name] is not None:
                return obj[name]
        elif getattr(obj, name, None) is not None:
            return getattr(obj, name)
    return default


def cells_from_table(table: Any) -> List[RawCell]:
    """
    Converts one service table (REST camelCase, SDK snake_case or SDK object)
    into RawCell values. Cells without a usable row/column index are dropped.
    """
    cells = []
    for cell in _read(table, "cells", default=[]) or []:
        row = _read(cell, "rowIndex", "row_index")
        col = _read(cell, "columnIndex", "column_index")
        try:
            row, col = int(row), int(col)
        except (TypeError, ValueError):
            logger.warning(f"Skipping cell without a valid position: row={row!r} col={col!r}")
            continue
        if row < 0 or col < 0:
            logger.warning(f"Skipping cell with negative position ({row}, {col})")
            continue
        content = _read(cell, "content", default="")
        cells.append(RawCell(row, col, "" if content is None else str(content)))
    return cells


def extract_grid(cells: Iterable[RawCell]) -> Grid:
    """
    Builds a dense rows x cols grid from sparse cells.

    Dimensions are max observed row/column + 1; positions never filled by a
    cell stay "". An empty cell list gives an empty grid.
    """
    cells = list(cells)
    if not cells:
        logger.warning("Table has no cells; returning an empty grid.")
        return []

    row_count = max(c.row_index for c in cells) + 1
    col_count = max(c.column_index for c in cells) + 1

    grid = [["" for _ in range(col_count)] for _ in range(row_count)]
    for cell in cells:
        grid[cell.row_index][cell.column_index] = cell.content
    return grid
