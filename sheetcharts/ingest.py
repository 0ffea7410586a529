"""Load spreadsheet workbooks into :class:`WorksheetData`."""

from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path
from typing import Any, BinaryIO, List, Optional, Sequence, Union
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from .errors import WorkbookLoadError
from .headers import detect_header_row_count, generate_columns, group_columns_by_last_level
from .models import ChartOptions, MergeRange, RowData, WorksheetData

logger = logging.getLogger(__name__)

WorkbookSource = Union[str, Path, bytes, bytearray, BinaryIO]


def _describe(source: WorkbookSource) -> str:
    if isinstance(source, (str, Path)):
        return str(source)
    return "<in-memory workbook>"


def open_workbook(source: WorkbookSource) -> Workbook:
    """Open *source* (path, bytes or binary file object) with cached formula values."""
    if isinstance(source, (bytes, bytearray)):
        handle: Any = BytesIO(bytes(source))
    elif isinstance(source, (str, Path)):
        handle = Path(source).expanduser().resolve()
    else:
        handle = source
    try:
        return load_workbook(handle, data_only=True, read_only=False)
    except (OSError, BadZipFile, InvalidFileException, KeyError, ValueError) as exc:
        raise WorkbookLoadError(f"Failed to open workbook: {_describe(source)}") from exc


def sheet_names(workbook: Workbook) -> List[str]:
    return list(workbook.sheetnames)


def get_sheet(workbook: Workbook, sheet_name: Optional[str] = None) -> Worksheet:
    if sheet_name is None:
        if not workbook.sheetnames:
            raise WorkbookLoadError("Workbook contains no sheets.")
        return workbook[workbook.sheetnames[0]]
    if sheet_name not in workbook.sheetnames:
        raise WorkbookLoadError(
            f"Sheet '{sheet_name}' not found; available sheets: {', '.join(workbook.sheetnames)}"
        )
    return workbook[sheet_name]


def sheet_grid(sheet: Worksheet) -> List[List[Any]]:
    """Return the sheet's used range as rows of cell values."""
    return [
        list(row)
        for row in sheet.iter_rows(
            min_row=sheet.min_row,
            max_row=sheet.max_row,
            min_col=sheet.min_column,
            max_col=sheet.max_column,
            values_only=True,
        )
    ]


def sheet_merges(sheet: Worksheet) -> List[MergeRange]:
    """Merged ranges as 0-based sheet coordinates, top-left first."""
    merges = [
        MergeRange(
            start_row=cell_range.min_row - 1,
            start_col=cell_range.min_col - 1,
            end_row=cell_range.max_row - 1,
            end_col=cell_range.max_col - 1,
        )
        for cell_range in sheet.merged_cells.ranges
    ]
    return sorted(merges, key=lambda merge: (merge.start_row, merge.start_col))


def _header_text(value: Any) -> str:
    return "" if value is None else str(value)


def _build_rows(data_rows: Sequence[Sequence[Any]], columns: Sequence[str]) -> List[RowData]:
    rows: List[RowData] = []
    for values in data_rows:
        rows.append({column: values[index] if index < len(values) else None for index, column in enumerate(columns)})
    return rows


def load_sheet_data(
    workbook: Workbook,
    sheet_name: Optional[str] = None,
    *,
    options: ChartOptions | None = None,
) -> WorksheetData:
    """Detect headers, flatten them to column names and key every data row by column.

    Blank rows are kept so that row ``i`` always sits at sheet row
    ``header_row_count + i``.
    """
    options = options or ChartOptions()
    sheet = get_sheet(workbook, sheet_name)
    grid = sheet_grid(sheet)
    header_row_count = detect_header_row_count(grid)

    header_rows = [[_header_text(value) for value in row] for row in grid[:header_row_count]]
    if not header_rows:
        header_rows = [[]]
    columns = generate_columns(header_rows, options.header_separator)
    rows = _build_rows(grid[header_row_count:], columns)
    logger.debug(
        "Loaded sheet '%s': %d header row(s), %d column(s), %d data row(s)",
        sheet.title,
        header_row_count,
        len(columns),
        len(rows),
    )
    return WorksheetData(
        header_rows=header_rows,
        columns=columns,
        rows=rows,
        merges=sheet_merges(sheet),
        column_groups=group_columns_by_last_level(columns, options.header_separator),
        header_row_count=header_row_count,
    )


def load_workbook_data(
    source: WorkbookSource,
    sheet_name: Optional[str] = None,
    *,
    options: ChartOptions | None = None,
) -> WorksheetData:
    workbook = open_workbook(source)
    try:
        return load_sheet_data(workbook, sheet_name, options=options)
    finally:
        workbook.close()
