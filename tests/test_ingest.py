from __future__ import annotations

import sys
from pathlib import Path

import pytest
from openpyxl import Workbook

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from sheetcharts.descriptor import build_chart_descriptor
from sheetcharts.errors import WorkbookLoadError
from sheetcharts.ingest import load_sheet_data, load_workbook_data, open_workbook, sheet_names
from sheetcharts.models import MergeRange


def _write_robot_workbook(path: Path) -> Path:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Robot"
    sheet["A1"] = "序号"
    sheet["B1"] = "机械手"
    sheet["B2"] = "X"
    sheet["C2"] = "Y"
    sheet.merge_cells("B1:C1")
    data = [
        (1, 1, 2),
        (2, 3, 4),
        (None, None, None),
        (3, 5, 6),
        ("平均值", 3, 4),
    ]
    for offset, values in enumerate(data):
        for column, value in enumerate(values, start=1):
            if value is not None:
                sheet.cell(row=3 + offset, column=column, value=value)
    extra = workbook.create_sheet("Notes")
    extra["A1"] = "free text"
    workbook.save(path)
    return path


def test_load_workbook_data_flattens_multi_level_headers(tmp_path: Path) -> None:
    path = _write_robot_workbook(tmp_path / "robot.xlsx")
    worksheet = load_workbook_data(path)

    assert worksheet.header_row_count == 2
    assert worksheet.columns == ["序号", "机械手-X", "机械手-Y"]
    assert worksheet.header_rows[0] == ["序号", "机械手", ""]
    assert len(worksheet.rows) == 5
    assert worksheet.rows[2] == {"序号": None, "机械手-X": None, "机械手-Y": None}
    assert worksheet.merges == [MergeRange(start_row=0, start_col=1, end_row=0, end_col=2)]
    assert worksheet.column_groups["X"] == ["机械手-X"]
    assert worksheet.column_groups["Y"] == ["机械手-Y"]


def test_loaded_sheet_charts_end_to_end(tmp_path: Path) -> None:
    worksheet = load_workbook_data(_write_robot_workbook(tmp_path / "robot.xlsx"))
    descriptor = build_chart_descriptor(worksheet.rows, worksheet.columns, worksheet.header_row_count)
    assert descriptor is not None

    assert descriptor.columns == ("机械手-X", "机械手-Y")
    assert [entry.median for entry in descriptor.box_plot.entries] == [3.0, 4.0]
    # Sheet rows 3, 4 and 6 (0-based 2, 3, 5) survive; the blank row and the average row do not.
    assert descriptor.row_index_map == {2: 0, 3: 1, 5: 2}


def test_load_workbook_data_accepts_bytes(tmp_path: Path) -> None:
    path = _write_robot_workbook(tmp_path / "robot.xlsx")
    worksheet = load_workbook_data(path.read_bytes(), "Robot")
    assert worksheet.columns == ["序号", "机械手-X", "机械手-Y"]


def test_sheet_names_and_named_sheet(tmp_path: Path) -> None:
    path = _write_robot_workbook(tmp_path / "robot.xlsx")
    workbook = open_workbook(path)
    try:
        assert sheet_names(workbook) == ["Robot", "Notes"]
        notes = load_sheet_data(workbook, "Notes")
    finally:
        workbook.close()
    assert notes.columns == ["free text"]
    assert notes.rows == []


def test_unknown_sheet_raises(tmp_path: Path) -> None:
    path = _write_robot_workbook(tmp_path / "robot.xlsx")
    with pytest.raises(WorkbookLoadError, match="Missing"):
        load_workbook_data(path, "Missing")


def test_unreadable_workbooks_raise_workbook_load_error(tmp_path: Path) -> None:
    bogus = tmp_path / "bogus.xlsx"
    bogus.write_text("not a workbook")
    with pytest.raises(WorkbookLoadError):
        load_workbook_data(bogus)
    with pytest.raises(WorkbookLoadError):
        load_workbook_data(tmp_path / "missing.xlsx")
    with pytest.raises(WorkbookLoadError):
        load_workbook_data(b"garbage")
