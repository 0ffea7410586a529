"""Tabular per-column statistics for a chart descriptor."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from .models import ChartDescriptor

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = ["column", "count", "min", "Q1", "median", "Q3", "max", "mean", "outliers"]


def summary_frame(descriptor: ChartDescriptor) -> pd.DataFrame:
    """One row per charted column, in chart order.

    Quartiles come from the box plot; min, max, mean and median from the raw
    display statistics. Columns without numeric data have NaN statistics and a
    count of zero.
    """
    records: List[Dict[str, Any]] = []
    for entry in descriptor.box_plot.entries:
        stats = entry.display_stats
        records.append(
            {
                "column": entry.column,
                "count": stats.count if stats else 0,
                "min": stats.min if stats else float("nan"),
                "Q1": entry.q1,
                "median": stats.median if stats else float("nan"),
                "Q3": entry.q3,
                "max": stats.max if stats else float("nan"),
                "mean": stats.mean if stats else float("nan"),
                "outliers": len(entry.outliers),
            }
        )
    frame = pd.DataFrame.from_records(records, columns=SUMMARY_COLUMNS)
    return frame.astype({"count": "int64", "outliers": "int64"})


def write_summary(frame: pd.DataFrame, path: Path, *, sheet_name: str = "Summary") -> Path:
    path = Path(path).expanduser().resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    suffix = path.suffix.lower()
    if suffix == ".csv":
        frame.to_csv(path, index=False)
    elif suffix == ".xlsx":
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            frame.to_excel(writer, sheet_name=sheet_name, index=False)
    else:
        raise ValueError(f"Unsupported summary format '{path.suffix}'; use .xlsx or .csv")
    logger.info("Wrote summary for %d column(s) to %s", len(frame), path)
    return path
