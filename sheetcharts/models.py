from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

CellValue = Union[str, int, float, None]
RowData = Dict[str, Any]
DeviceDataMap = Dict[str, List[float]]

SeriesKind = Literal["boxplot", "scatter"]

DEFAULT_PALETTE: tuple[str, ...] = (
    "#FF5722",
    "#2196F3",
    "#4CAF50",
    "#FF9800",
    "#9C27B0",
    "#F44336",
    "#00BCD4",
    "#795548",
)

SEQUENCE_COLUMN_LABEL = "序号"

STAT_KEYWORDS: tuple[str, ...] = (
    "最大值",
    "最小值",
    "误差",
    "平均值",
    "标准差",
    "方差",
    "中位数",
    "众数",
    "四分位数",
    "极差",
    "偏差",
    "总计",
    "合计",
    "汇总",
    "统计",
    "小计",
    "max",
    "min",
    "mean",
    "avg",
    "average",
    "std",
    "variance",
    "median",
    "mode",
    "range",
    "error",
    "total",
    "subtotal",
)


@dataclass(frozen=True)
class MergeRange:
    """Rectangular merged block, 0-based and inclusive on both ends."""

    start_row: int
    start_col: int
    end_row: int
    end_col: int

    def contains(self, row: int, col: int) -> bool:
        return self.start_row <= row <= self.end_row and self.start_col <= col <= self.end_col

    def is_anchor(self, row: int, col: int) -> bool:
        return row == self.start_row and col == self.start_col

    @property
    def row_span(self) -> int:
        return self.end_row - self.start_row + 1

    @property
    def col_span(self) -> int:
        return self.end_col - self.start_col + 1


@dataclass
class WorksheetData:
    """One sheet reduced to header rows, unique column names and keyed data rows."""

    header_rows: list[list[str]]
    columns: list[str]
    rows: list[RowData]
    merges: list[MergeRange] = field(default_factory=list)
    column_groups: dict[str, list[str]] = field(default_factory=dict)
    header_row_count: int = 1

    def __post_init__(self) -> None:
        if len(set(self.columns)) != len(self.columns):
            raise ValueError("Worksheet columns must be unique.")
        known = set(self.columns)
        for index, row in enumerate(self.rows):
            unknown = set(row) - known
            if unknown:
                raise ValueError(f"Row {index} references unknown column(s): {sorted(unknown)}")
        try:
            count = int(self.header_row_count)
        except (TypeError, ValueError):
            count = 1
        self.header_row_count = max(count, 1)


@dataclass(frozen=True)
class HeaderLevelAnalysis:
    is_multi_level: bool
    level_count: int
    description: str


@dataclass(frozen=True)
class CellEditEvent:
    """A committed single-cell edit, in raw spreadsheet coordinates."""

    row_index: int
    column_index: int
    new_value: str
    resolved_column_name: str
    timestamp: float = field(default_factory=time.time)
    old_column_name: Optional[str] = None

    @property
    def is_header_edit(self) -> bool:
        return self.row_index == 0


@dataclass(frozen=True)
class ChartSeriesPoint:
    coordinates: Tuple[float, float]
    column_label: str
    raw_value: Union[str, int, float]
    numeric_value: float
    fixed_x: float
    filtered_row_index: int
    original_row_index: int
    column_index: int

    def __post_init__(self) -> None:
        # A point may only ever move vertically.
        if self.coordinates[0] != self.fixed_x:
            raise ValueError(
                f"Point x-coordinate {self.coordinates[0]!r} does not match fixed_x {self.fixed_x!r}."
            )

    @property
    def tooltip(self) -> str:
        return f"Type: {self.column_label}<br/>Value: {self.raw_value}"


@dataclass(frozen=True)
class DisplayStatistics:
    min: float
    max: float
    mean: float
    median: float
    count: int


@dataclass(frozen=True)
class BoxPlotEntry:
    category_index: int
    column: str
    low: float
    q1: float
    median: float
    q3: float
    high: float
    outliers: tuple[float, ...]
    display_stats: Optional[DisplayStatistics]
    tooltip: str = ""


@dataclass(frozen=True)
class BoxPlotSeries:
    name: str
    entries: tuple[BoxPlotEntry, ...]
    box_width: tuple[str, str] = ("5%", "60%")
    z: int = 1
    kind: Literal["boxplot"] = "boxplot"


@dataclass(frozen=True)
class ScatterSeries:
    name: str
    column_label: str
    column_index: int
    points: tuple[ChartSeriesPoint, ...]
    symbol_size: int
    color: str
    opacity: float = 0.7
    z: int = 2
    emphasis_z: int = 10
    kind: Literal["scatter"] = "scatter"


Series = Union[BoxPlotSeries, ScatterSeries]


@dataclass(frozen=True)
class AxisConfig:
    min: float
    max: float
    interval: Optional[float] = None
    labels: tuple[str, ...] = ()
    label_rotate: int = 0


@dataclass(frozen=True)
class LegendConfig:
    entries: tuple[str, ...]
    type: str = "scroll"
    position: str = "bottom"


@dataclass(frozen=True)
class ZoomConfig:
    x_inside: bool = True
    y_inside: bool = True
    start: float = 0.0
    end: float = 100.0


@dataclass(frozen=True)
class ToolboxConfig:
    features: tuple[str, ...] = ("restore", "saveAsImage")
    pixel_ratio: int = 2
    background_color: str = "#ffffff"


@dataclass(frozen=True)
class ChartDescriptor:
    """Box plot plus one scatter overlay per column, ready for a render surface."""

    columns: tuple[str, ...]
    box_plot: BoxPlotSeries
    scatter: tuple[ScatterSeries, ...]
    x_axis: AxisConfig
    y_axis: AxisConfig
    legend: LegendConfig
    zoom: ZoomConfig = field(default_factory=ZoomConfig)
    toolbox: ToolboxConfig = field(default_factory=ToolboxConfig)
    title: Optional[str] = None
    header_row_count: int = 1
    row_index_map: dict[int, int] = field(default_factory=dict)
    generation: int = 0

    def __post_init__(self) -> None:
        scatter_columns = tuple(series.column_label for series in self.scatter)
        if scatter_columns != self.columns:
            raise ValueError("Scatter series order must match the column order.")
        box_columns = tuple(entry.column for entry in self.box_plot.entries)
        if box_columns != self.columns:
            raise ValueError("Box plot entries must be index-aligned with the columns.")

    @property
    def series(self) -> tuple[Series, ...]:
        return (self.box_plot, *self.scatter)

    def scatter_series_index(self, position: int) -> int:
        """Return the descriptor series index for scatter series *position*."""
        return position + 1


@dataclass
class ChartOptions:
    """User-controlled chart construction settings."""

    palette: tuple[str, ...] = DEFAULT_PALETTE
    padding_ratio: float = 0.1
    jitter_width: float = 0.4
    sequence_label: str = SEQUENCE_COLUMN_LABEL
    stat_keywords: tuple[str, ...] = STAT_KEYWORDS
    header_separator: str = "-"
    scatter_suffix: str = " scatter"
    box_name: str = "Box plot"

    def __post_init__(self) -> None:
        palette = tuple(str(color) for color in (self.palette or ()) if color)
        self.palette = palette or DEFAULT_PALETTE
        try:
            padding = float(self.padding_ratio)
        except (TypeError, ValueError):
            padding = 0.1
        if not math.isfinite(padding) or padding < 0:
            padding = 0.1
        self.padding_ratio = padding
        try:
            width = float(self.jitter_width)
        except (TypeError, ValueError):
            width = 0.4
        if not math.isfinite(width) or width < 0:
            width = 0.4
        if width > 1:
            width = 1.0
        self.jitter_width = width
        self.sequence_label = (self.sequence_label or SEQUENCE_COLUMN_LABEL).strip() or SEQUENCE_COLUMN_LABEL
        self.stat_keywords = tuple(keyword for keyword in self.stat_keywords if keyword)
        if not self.header_separator:
            self.header_separator = "-"

    def scatter_name(self, column: str) -> str:
        return f"{column}{self.scatter_suffix}"
