"""Box-plot summaries and tooltip statistics for per-column numeric arrays."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .models import DisplayStatistics

BOUND_IQR = 1.5


@dataclass(frozen=True)
class BoxplotSummary:
    """Index-aligned with the input columns.

    ``quartiles[i]`` is ``[low, Q1, median, Q3, high]`` and ``outliers[i]`` lists
    ``(i, value)`` pairs for values beyond the whiskers.
    """

    quartiles: List[List[float]]
    outliers: List[List[Tuple[int, float]]]


def five_number_summary(columns: Sequence[Sequence[float]], bound_iqr: float = BOUND_IQR) -> BoxplotSummary:
    quartiles: List[List[float]] = []
    outliers: List[List[Tuple[int, float]]] = []
    for category, raw in enumerate(columns):
        values = np.sort(np.asarray(list(raw), dtype=float))
        values = values[np.isfinite(values)]
        if values.size == 0:
            quartiles.append([math.nan] * 5)
            outliers.append([])
            continue
        q1, median, q3 = (float(v) for v in np.percentile(values, [25, 50, 75]))
        bound = bound_iqr * (q3 - q1)
        low = max(float(values[0]), q1 - bound)
        high = min(float(values[-1]), q3 + bound)
        quartiles.append([low, q1, median, q3, high])
        outliers.append([(category, float(v)) for v in values if v < low or v > high])
    return BoxplotSummary(quartiles=quartiles, outliers=outliers)


def calculate_statistics(values: Sequence[float]) -> Optional[DisplayStatistics]:
    """Min, max, mean and median of the raw values, for display."""
    arr = np.asarray(list(values), dtype=float)
    if arr.size == 0:
        return None
    return DisplayStatistics(
        min=float(arr.min()),
        max=float(arr.max()),
        mean=float(arr.mean()),
        median=float(np.median(arr)),
        count=int(arr.size),
    )


def format_value(value: Optional[float]) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return "-"
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e16:
        return str(int(value))
    return repr(value) if isinstance(value, float) else str(value)
