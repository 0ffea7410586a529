"""Merge-span helpers and a display-layout projection of workbook sheets.

The projection is a plain dict that a spreadsheet editing widget can load
directly: cell text keyed by 0-based row and column, merge anchors carrying
their extra span, and pixel sizes for rows and columns that set them.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, Optional, Sequence

from openpyxl.utils import column_index_from_string, get_column_letter
from openpyxl.workbook import Workbook

from .boxstats import format_value
from .ingest import get_sheet, sheet_merges
from .models import MergeRange

logger = logging.getLogger(__name__)

POINTS_TO_PIXELS = 96 / 72
CHAR_WIDTH_PX = 7
CELL_PADDING_PX = 5


def _find_merge(merges: Sequence[MergeRange], row: int, col: int) -> Optional[MergeRange]:
    for merge in merges:
        if merge.contains(row, col):
            return merge
    return None


def is_cell_merged(merges: Sequence[MergeRange], row: int, col: int) -> bool:
    """True when (*row*, *col*) is hidden under another cell's merge."""
    merge = _find_merge(merges, row, col)
    return merge is not None and not merge.is_anchor(row, col)


def get_row_span(merges: Sequence[MergeRange], row: int, col: int) -> int:
    merge = _find_merge(merges, row, col)
    if merge is None or not merge.is_anchor(row, col):
        return 1
    return merge.row_span


def get_col_span(merges: Sequence[MergeRange], row: int, col: int) -> int:
    merge = _find_merge(merges, row, col)
    if merge is None or not merge.is_anchor(row, col):
        return 1
    return merge.col_span


def merge_ref(merge: MergeRange) -> str:
    """A1-style reference for *merge*, e.g. ``A1:B1``."""
    start = f"{get_column_letter(merge.start_col + 1)}{merge.start_row + 1}"
    end = f"{get_column_letter(merge.end_col + 1)}{merge.end_row + 1}"
    return f"{start}:{end}"


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat()
    if isinstance(value, (int, float)):
        return format_value(value)
    return str(value)


def load_raw_sheet_data(workbook: Workbook, sheet_name: Optional[str] = None) -> Dict[str, Any]:
    sheet = get_sheet(workbook, sheet_name)
    merges = sheet_merges(sheet)

    rows: Dict[int, Dict[str, Any]] = {}
    for row_cells in sheet.iter_rows():
        for cell in row_cells:
            row = cell.row - 1
            col = cell.column - 1
            if is_cell_merged(merges, row, col):
                continue
            text = cell_text(cell.value)
            row_span = get_row_span(merges, row, col)
            col_span = get_col_span(merges, row, col)
            if not text and row_span == 1 and col_span == 1:
                continue
            entry: Dict[str, Any] = {"text": text}
            if row_span > 1 or col_span > 1:
                entry["merge"] = [row_span - 1, col_span - 1]
            rows.setdefault(row, {"cells": {}})["cells"][col] = entry

    for index, dimension in sheet.row_dimensions.items():
        if dimension.height:
            rows.setdefault(index - 1, {"cells": {}})["height"] = round(dimension.height * POINTS_TO_PIXELS)

    cols: Dict[int, Dict[str, int]] = {}
    for letter, dimension in sheet.column_dimensions.items():
        if not dimension.customWidth or not dimension.width:
            continue
        width_px = round(dimension.width * CHAR_WIDTH_PX + CELL_PADDING_PX)
        # A dimension may cover a run of columns.
        first = dimension.min or column_index_from_string(letter)
        last = dimension.max or first
        for col in range(first - 1, last):
            cols[col] = {"width": width_px}

    logger.debug("Projected layout for sheet '%s': %d row(s), %d merge(s)", sheet.title, len(rows), len(merges))
    return {
        "name": sheet.title,
        "freeze": "A1",
        "styles": [],
        "merges": [merge_ref(merge) for merge in merges],
        "rows": rows,
        "cols": cols,
    }


def load_raw_workbook_data(workbook: Workbook) -> list[Dict[str, Any]]:
    return [load_raw_sheet_data(workbook, name) for name in workbook.sheetnames]
