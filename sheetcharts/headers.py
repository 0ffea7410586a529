"""Header detection and flattening of multi-level spreadsheet headers."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

from .models import HeaderLevelAnalysis, RowData

logger = logging.getLogger(__name__)

DEFAULT_SEPARATOR = "-"
ALL_DATA_GROUP = "All Data"


def _is_empty_cell(value: Any) -> bool:
    return value is None or value == ""


def _is_numeric_cell(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def detect_header_row_count(grid: Sequence[Sequence[Any]]) -> int:
    """Return how many leading rows of *grid* are header rows.

    Scanning stops at the first entirely empty row or at the first row holding a
    numeric cell; that row is not counted. At least one header row is assumed.
    """
    header_row_count = 1
    width = max((len(row) for row in grid), default=0)
    for index, row in enumerate(grid):
        cells = list(row) + [None] * (width - len(row))
        if all(_is_empty_cell(cell) for cell in cells):
            break
        if any(_is_numeric_cell(cell) for cell in cells):
            break
        header_row_count = index + 1
    return header_row_count


def _cell_text(row: Sequence[Any], index: int) -> str:
    if index >= len(row):
        return ""
    value = row[index]
    if value is None:
        return ""
    return str(value).strip()


def generate_columns(header_rows: Sequence[Sequence[Any]], separator: str = DEFAULT_SEPARATOR) -> List[str]:
    """Flatten *header_rows* into one unique column name per column index.

    An empty header cell borrows the nearest non-empty value to its left in the
    same row, which is how horizontally merged header cells arrive.
    """
    if not header_rows:
        return []
    col_count = max(len(row) for row in header_rows)
    columns: List[str] = []
    seen: set[str] = set()

    for col in range(col_count):
        parts: List[str] = []
        for row in header_rows:
            text = _cell_text(row, col)
            if text:
                parts.append(text)
                continue
            found = ""
            for left in range(col - 1, -1, -1):
                left_text = _cell_text(row, left)
                if left_text:
                    found = left_text
                    break
            if found and found not in parts:
                parts.append(found)

        name = separator.join(parts) or f"Column{col + 1}"
        candidate = name
        counter = 1
        while candidate in seen:
            candidate = f"{name}_{counter}"
            counter += 1
        seen.add(candidate)
        columns.append(candidate)

    logger.debug("Generated columns: %s", columns)
    return columns


def group_columns_by_last_level(columns: Sequence[str], separator: str = DEFAULT_SEPARATOR) -> Dict[str, List[str]]:
    """Bucket columns by the text after their last separator, e.g. ``X`` for ``Arm-X``."""
    groups: Dict[str, List[str]] = {}
    for column in columns:
        last_level = column.split(separator)[-1]
        groups.setdefault(last_level, []).append(column)
    return groups


def analyze_header_level(header_rows: Sequence[Sequence[Any]]) -> HeaderLevelAnalysis:
    if not header_rows:
        return HeaderLevelAnalysis(is_multi_level=False, level_count=0, description="No header rows")
    level_count = len(header_rows)
    is_multi_level = level_count > 1
    description = f"{level_count}-level header" if is_multi_level else "Single-level header"
    return HeaderLevelAnalysis(is_multi_level=is_multi_level, level_count=level_count, description=description)


def generate_groups_by_header_level(
    columns: Sequence[str],
    rows: Sequence[RowData],
    is_multi_level: bool,
    separator: str = DEFAULT_SEPARATOR,
) -> Dict[str, List[Any]]:
    if not is_multi_level:
        return {ALL_DATA_GROUP: [{column: row.get(column) for column in columns} for row in rows]}
    return dict(group_columns_by_last_level(columns, separator))
