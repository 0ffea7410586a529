"""Per-column numeric extraction and deterministic scatter layout."""

from __future__ import annotations

import logging
import math
from typing import List, Sequence

from .models import ChartOptions, ChartSeriesPoint, DeviceDataMap, RowData, ScatterSeries
from .sanitize import parse_finite_number

logger = logging.getLogger(__name__)

JITTER_WIDTH = 0.4
_COLUMN_SEED = 12345
_ROW_SEED = 6789


def extract_coordinate_data(rows: Sequence[RowData], columns: Sequence[str]) -> DeviceDataMap:
    data_map: DeviceDataMap = {}
    for column in columns:
        values = [number for number in (parse_finite_number(row.get(column)) for row in rows) if number is not None]
        if values:
            data_map[column] = values
        else:
            logger.warning("Column '%s' has no valid numeric data", column)
    return data_map


def fixed_jitter(column_index: int, row_index: int, width: float = JITTER_WIDTH) -> float:
    """Horizontal offset for the point at (*column_index*, *row_index*).

    Depends on nothing but its arguments so an edited point can keep its
    position without re-running the layout.
    """
    seed = column_index * _COLUMN_SEED + row_index * _ROW_SEED
    pseudo = math.sin(seed) * 10000
    fraction = pseudo - math.floor(pseudo) - 0.5
    return fraction * width


def fixed_x(column_index: int, row_index: int, width: float = JITTER_WIDTH) -> float:
    return column_index + fixed_jitter(column_index, row_index, width)


def symbol_size_for(sample_count: int) -> int:
    if sample_count > 100:
        return 2
    if sample_count > 50:
        return 4
    return 8


def create_scatter_series(
    rows: Sequence[RowData],
    columns: Sequence[str],
    header_row_count: int = 1,
    options: ChartOptions | None = None,
) -> List[ScatterSeries]:
    options = options or ChartOptions()
    palette = options.palette
    series: List[ScatterSeries] = []

    for column_index, column in enumerate(columns):
        points: List[ChartSeriesPoint] = []
        for row_index, row in enumerate(rows):
            raw_value = row.get(column)
            number = parse_finite_number(raw_value)
            if number is None:
                continue
            x = fixed_x(column_index, row_index, options.jitter_width)
            points.append(
                ChartSeriesPoint(
                    coordinates=(x, number),
                    column_label=column,
                    raw_value=raw_value,
                    numeric_value=number,
                    fixed_x=x,
                    filtered_row_index=row_index,
                    original_row_index=row_index + header_row_count,
                    column_index=column_index,
                )
            )

        series.append(
            ScatterSeries(
                name=options.scatter_name(column),
                column_label=column,
                column_index=column_index,
                points=tuple(points),
                symbol_size=symbol_size_for(len(points)),
                color=palette[column_index % len(palette)],
            )
        )
    return series
