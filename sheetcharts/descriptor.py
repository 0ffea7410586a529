"""Assembly of chart descriptors from worksheet rows."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from .boxstats import calculate_statistics, five_number_summary, format_value
from .models import (
    AxisConfig,
    BoxPlotEntry,
    BoxPlotSeries,
    ChartDescriptor,
    ChartOptions,
    DeviceDataMap,
    DisplayStatistics,
    LegendConfig,
    RowData,
    ScatterSeries,
)
from .sanitize import filter_data_rows
from .series import create_scatter_series, extract_coordinate_data

logger = logging.getLogger(__name__)

LABEL_ROTATE_THRESHOLD = 4
LABEL_ROTATE_DEGREES = 15


def compute_axis_bounds(data_map: DeviceDataMap, padding_ratio: float = 0.1) -> tuple[float, float]:
    arrays = [np.asarray(column_values, dtype=float) for column_values in data_map.values()]
    values = np.concatenate(arrays) if arrays else np.empty(0)
    finite = values[np.isfinite(values)]
    if finite.size == 0:
        return -1.0, 1.0
    data_min = float(finite.min())
    data_max = float(finite.max())
    if data_min == data_max:
        delta = abs(data_min) * 0.05 or 1.0
        return data_min - delta, data_max + delta
    padding = (data_max - data_min) * padding_ratio
    return data_min - padding, data_max + padding


def box_tooltip(column: str, stats: Optional[DisplayStatistics], q1: float, q3: float) -> str:
    if stats is None:
        return f"<strong>{column}</strong><br/>No numeric data"
    lines = [
        f"<strong>{column}</strong>",
        f"Max: {format_value(stats.max)}",
        f"Min: {format_value(stats.min)}",
        f"Median: {format_value(stats.median)}",
        f"Mean: {format_value(stats.mean)}",
        f"Q1: {format_value(q1)}",
        f"Q3: {format_value(q3)}",
        f"Samples: {stats.count}",
    ]
    return "<br/>".join(lines)


def _box_plot_series(columns: Sequence[str], data_map: DeviceDataMap, options: ChartOptions) -> BoxPlotSeries:
    # Arrays are passed in column order so summary i belongs to column i.
    box_values = [data_map.get(column, []) for column in columns]
    summary = five_number_summary(box_values)
    entries: List[BoxPlotEntry] = []
    for index, column in enumerate(columns):
        low, q1, median, q3, high = summary.quartiles[index]
        stats = calculate_statistics(box_values[index])
        entries.append(
            BoxPlotEntry(
                category_index=index,
                column=column,
                low=low,
                q1=q1,
                median=median,
                q3=q3,
                high=high,
                outliers=tuple(value for _, value in summary.outliers[index]),
                display_stats=stats,
                tooltip=box_tooltip(column, stats, q1, q3),
            )
        )
    return BoxPlotSeries(name=options.box_name, entries=tuple(entries))


def create_chart_option(
    columns: Sequence[str],
    data_map: DeviceDataMap,
    scatter_series: Sequence[ScatterSeries],
    *,
    options: ChartOptions | None = None,
    title: str | None = None,
    header_row_count: int = 1,
    row_index_map: Optional[Dict[int, int]] = None,
    generation: int = 0,
) -> ChartDescriptor:
    options = options or ChartOptions()
    y_min, y_max = compute_axis_bounds(data_map, options.padding_ratio)
    box_plot = _box_plot_series(columns, data_map, options)
    scatter = tuple(scatter_series)
    legend = LegendConfig(entries=(box_plot.name, *(series.name for series in scatter)))
    x_axis = AxisConfig(
        min=-1.0,
        max=float(len(columns)),
        interval=1.0,
        labels=tuple(columns),
        label_rotate=LABEL_ROTATE_DEGREES if len(columns) > LABEL_ROTATE_THRESHOLD else 0,
    )
    y_axis = AxisConfig(min=y_min, max=y_max)
    return ChartDescriptor(
        columns=tuple(columns),
        box_plot=box_plot,
        scatter=scatter,
        x_axis=x_axis,
        y_axis=y_axis,
        legend=legend,
        title=title,
        header_row_count=header_row_count,
        row_index_map=dict(row_index_map or {}),
        generation=generation,
    )


def build_chart_descriptor(
    rows: Sequence[RowData],
    columns: Sequence[str],
    header_row_count: int = 1,
    *,
    options: ChartOptions | None = None,
    title: str | None = None,
    generation: int = 0,
    source_indices: Optional[Sequence[int]] = None,
) -> Optional[ChartDescriptor]:
    """Run sanitization, series construction and assembly over worksheet rows.

    *source_indices* gives, for each entry of *rows*, its position among the
    sheet's data rows when *rows* was already filtered; it defaults to the
    identity. Returns ``None`` when nothing chartable remains.
    """
    if not rows or not columns:
        return None
    options = options or ChartOptions()
    sanitized = filter_data_rows(rows, columns, options)
    if not sanitized.rows:
        logger.info("No chartable rows remain after filtering %d row(s)", len(rows))
        return None

    positions = list(source_indices) if source_indices is not None else list(range(len(rows)))
    row_index_map = {
        header_row_count + positions[input_index]: filtered_index
        for filtered_index, input_index in enumerate(sanitized.source_indices)
    }

    data_map = extract_coordinate_data(sanitized.rows, sanitized.columns)
    scatter = create_scatter_series(sanitized.rows, sanitized.columns, header_row_count, options)
    return create_chart_option(
        sanitized.columns,
        data_map,
        scatter,
        options=options,
        title=title,
        header_row_count=header_row_count,
        row_index_map=row_index_map,
        generation=generation,
    )


def _unique(columns: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(columns))


def build_grouped_chart_descriptors(
    rows: Sequence[RowData],
    column_groups: Dict[str, List[str]],
    header_row_count: int = 1,
    *,
    options: ChartOptions | None = None,
    generation: int = 0,
) -> Optional[Dict[str, ChartDescriptor]]:
    """Build one independent descriptor per column group over shared filtered rows."""
    if not rows or not column_groups:
        return None
    options = options or ChartOptions()
    all_columns = _unique(column for group in column_groups.values() for column in group)
    sanitized = filter_data_rows(rows, all_columns, options)
    if not sanitized.rows:
        return None

    grouped: Dict[str, ChartDescriptor] = {}
    for group_name, group_columns in column_groups.items():
        valid_columns = [column for column in group_columns if column in sanitized.columns]
        if not valid_columns:
            logger.debug("Skipping group '%s' with no valid columns", group_name)
            continue
        descriptor = build_chart_descriptor(
            sanitized.rows,
            valid_columns,
            header_row_count,
            options=options,
            title=f"{group_name} analysis",
            generation=generation,
            source_indices=sanitized.source_indices,
        )
        if descriptor is not None:
            grouped[group_name] = descriptor
    return grouped or None
