from __future__ import annotations

import argparse
import json
import logging
import os
import re
from pathlib import Path
from typing import List, Optional, Sequence

from .descriptor import build_chart_descriptor, build_grouped_chart_descriptors
from .errors import WorkbookLoadError
from .ingest import load_sheet_data, open_workbook, sheet_names
from .layout import load_raw_sheet_data, load_raw_workbook_data
from .models import ChartDescriptor, ChartOptions, SEQUENCE_COLUMN_LABEL
from .mpl_charts import render_png
from .report import summary_frame, write_summary
from .surface import PlotlyRenderSurface

LOG_LEVEL_ENV = "SHEETCHARTS_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "WARNING"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_UNSAFE_FILENAME = re.compile(r"[^\w.-]+")


def _resolve_log_level(cli_value: Optional[str]) -> str:
    if cli_value:
        return cli_value.upper()
    env_value = os.environ.get(LOG_LEVEL_ENV)
    if env_value and env_value.strip().upper() in LOG_LEVELS:
        return env_value.strip().upper()
    return DEFAULT_LOG_LEVEL


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _options_from_args(args: argparse.Namespace) -> ChartOptions:
    return ChartOptions(sequence_label=args.sequence_label, padding_ratio=args.padding)


def _workbook_path(path: Path) -> Path:
    path = path.expanduser().resolve()
    if path.is_dir():
        raise SystemExit(f"Workbook path must be a file: {path}")
    if not path.exists():
        raise SystemExit(f"Workbook not found: {path}")
    return path


def _safe_name(name: str) -> str:
    return _UNSAFE_FILENAME.sub("_", name).strip("_") or "group"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sheetcharts",
        description="Box plot and scatter charts for spreadsheet columns.",
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        type=str.upper,
        default=None,
        help=f"Logging level (default: ${LOG_LEVEL_ENV} or {DEFAULT_LOG_LEVEL}).",
    )
    parser.add_argument(
        "--sequence-label",
        default=SEQUENCE_COLUMN_LABEL,
        help=f"Header of the row-number column excluded from charts (default: {SEQUENCE_COLUMN_LABEL}).",
    )
    parser.add_argument(
        "--padding",
        type=float,
        default=0.1,
        help="Fraction of the value range added above and below the y axis (default: 0.1).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sheets_parser = subparsers.add_parser("sheets", help="List the sheets of a workbook.")
    sheets_parser.add_argument("workbook", type=Path)

    render_parser = subparsers.add_parser("render", help="Render a sheet as a box plot with scatter overlay.")
    render_parser.add_argument("workbook", type=Path)
    render_parser.add_argument("--sheet", help="Sheet name (default: first sheet).")
    render_parser.add_argument(
        "--output",
        type=Path,
        help="Output file, or directory when --grouped (default: next to the workbook).",
    )
    render_parser.add_argument("--format", choices=["html", "png"], default="html")
    render_parser.add_argument(
        "--grouped",
        action="store_true",
        help="Write one chart per last-level header group instead of a single chart.",
    )

    summary_parser = subparsers.add_parser("summary", help="Write per-column statistics to .xlsx or .csv.")
    summary_parser.add_argument("workbook", type=Path)
    summary_parser.add_argument("--sheet", help="Sheet name (default: first sheet).")
    summary_parser.add_argument("--output", type=Path, help="Destination .xlsx or .csv path.")

    layout_parser = subparsers.add_parser("layout", help="Dump the display layout of sheets as JSON.")
    layout_parser.add_argument("workbook", type=Path)
    layout_parser.add_argument("--sheet", help="Only this sheet (default: every sheet).")
    layout_parser.add_argument("--output", type=Path, help="Write JSON here instead of standard output.")
    return parser


def _write_chart(descriptor: ChartDescriptor, path: Path, fmt: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if fmt == "png":
        path.write_bytes(render_png(descriptor))
        return path
    surface = PlotlyRenderSurface()
    surface.apply_descriptor(descriptor, animate=False)
    return surface.write_html(path)


def _render(args: argparse.Namespace, options: ChartOptions) -> List[Path]:
    workbook_path = _workbook_path(args.workbook)
    workbook = open_workbook(workbook_path)
    try:
        worksheet = load_sheet_data(workbook, args.sheet, options=options)
    finally:
        workbook.close()

    suffix = f".{args.format}"
    if args.grouped:
        grouped = build_grouped_chart_descriptors(
            worksheet.rows,
            worksheet.column_groups,
            worksheet.header_row_count,
            options=options,
        )
        if not grouped:
            raise SystemExit(f"No chartable data in {workbook_path.name}")
        directory = (args.output or workbook_path.parent).expanduser().resolve()
        written: List[Path] = []
        for group_name, descriptor in grouped.items():
            target = directory / f"{workbook_path.stem}_{_safe_name(group_name)}{suffix}"
            written.append(_write_chart(descriptor, target, args.format))
        return written

    descriptor = build_chart_descriptor(
        worksheet.rows,
        worksheet.columns,
        worksheet.header_row_count,
        options=options,
        title=args.sheet,
    )
    if descriptor is None:
        raise SystemExit(f"No chartable data in {workbook_path.name}")
    output = args.output or workbook_path.with_suffix(suffix)
    output = output.expanduser().resolve()
    if output.suffix.lower() != suffix:
        print(f"Warning: Output should use '{suffix}'; replacing extension for {output}.")
        output = output.with_suffix(suffix)
    return [_write_chart(descriptor, output, args.format)]


def _summary(args: argparse.Namespace, options: ChartOptions) -> Path:
    workbook_path = _workbook_path(args.workbook)
    workbook = open_workbook(workbook_path)
    try:
        worksheet = load_sheet_data(workbook, args.sheet, options=options)
    finally:
        workbook.close()
    descriptor = build_chart_descriptor(
        worksheet.rows,
        worksheet.columns,
        worksheet.header_row_count,
        options=options,
    )
    if descriptor is None:
        raise SystemExit(f"No chartable data in {workbook_path.name}")
    output = args.output or workbook_path.with_name(f"{workbook_path.stem}_summary.xlsx")
    try:
        return write_summary(summary_frame(descriptor), output)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc


def _layout(args: argparse.Namespace) -> Optional[Path]:
    workbook_path = _workbook_path(args.workbook)
    workbook = open_workbook(workbook_path)
    try:
        if args.sheet:
            payload: object = load_raw_sheet_data(workbook, args.sheet)
        else:
            payload = load_raw_workbook_data(workbook)
    finally:
        workbook.close()
    text = json.dumps(payload, ensure_ascii=False, indent=2)
    if args.output is None:
        print(text)
        return None
    output = args.output.expanduser().resolve()
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding="utf-8")
    return output


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(_resolve_log_level(args.log_level))
    options = _options_from_args(args)

    try:
        if args.command == "sheets":
            workbook = open_workbook(_workbook_path(args.workbook))
            try:
                names = sheet_names(workbook)
            finally:
                workbook.close()
            for name in names:
                print(name)
            return 0

        if args.command == "render":
            for path in _render(args, options):
                print(f"Chart written to {path}")
            return 0

        if args.command == "summary":
            print(f"Summary written to {_summary(args, options)}")
            return 0

        if args.command == "layout":
            output = _layout(args)
            if output is not None:
                print(f"Layout written to {output}")
            return 0
    except WorkbookLoadError as exc:
        cause = f" ({exc.__cause__})" if exc.__cause__ else ""
        raise SystemExit(f"{exc}{cause}") from exc

    parser.error(f"Unknown command: {args.command}")
    return 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
