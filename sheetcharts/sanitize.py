"""Removal of summary rows, empty rows and the sequence-number column."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence

from .models import ChartOptions, RowData

logger = logging.getLogger(__name__)

_NUMBER_PATTERN = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")


@dataclass
class SanitizedRows:
    rows: List[RowData]
    columns: List[str]
    source_indices: List[int] = field(default_factory=list)
    removed_column: Optional[str] = None


def parse_finite_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    text = str(value).strip()
    if not text or not _NUMBER_PATTERN.match(text):
        return None
    try:
        number = float(text)
    except (OverflowError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _is_blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def is_stat_row(row: RowData, keywords: Iterable[str]) -> bool:
    lowered = [keyword.lower() for keyword in keywords]
    for value in row.values():
        if value is None:
            continue
        text = str(value).strip().lower()
        if not text:
            continue
        if any(keyword == text or keyword in text for keyword in lowered):
            return True
    return False


def is_empty_row(row: RowData) -> bool:
    return all(_is_blank(value) for value in row.values())


def has_valid_numbers(row: RowData, columns: Sequence[str]) -> bool:
    return any(parse_finite_number(row.get(column)) is not None for column in columns)


def find_sequence_column(columns: Sequence[str], label: str) -> Optional[str]:
    for column in columns:
        if column.strip() == label:
            return column
    return None


def remove_sequence_column(
    rows: Sequence[RowData],
    columns: Sequence[str],
    label: str,
) -> tuple[List[RowData], List[str], Optional[str]]:
    """Drop the column named exactly *label* from *columns* and every row; no-op when absent."""
    target = find_sequence_column(columns, label)
    if target is None:
        return [dict(row) for row in rows], list(columns), None
    kept_columns = [column for column in columns if column != target]
    kept_rows = [{key: value for key, value in row.items() if key != target} for row in rows]
    return kept_rows, kept_columns, target


def filter_data_rows(
    rows: Sequence[RowData],
    columns: Sequence[str],
    options: ChartOptions | None = None,
) -> SanitizedRows:
    """Keep only chartable data rows and strip the sequence-number column."""
    options = options or ChartOptions()
    sequence_column = find_sequence_column(columns, options.sequence_label)
    target_columns = [column for column in columns if column != sequence_column]
    retained: List[RowData] = []
    source_indices: List[int] = []
    for index, row in enumerate(rows):
        if is_stat_row(row, options.stat_keywords):
            logger.debug("Dropping statistics row %d", index)
            continue
        if is_empty_row(row):
            continue
        if not has_valid_numbers(row, target_columns):
            logger.debug("Dropping row %d without numeric values", index)
            continue
        retained.append(row)
        source_indices.append(index)

    final_rows, final_columns, removed = remove_sequence_column(retained, columns, options.sequence_label)
    return SanitizedRows(
        rows=final_rows,
        columns=final_columns,
        source_indices=source_indices,
        removed_column=removed,
    )
