"""Matplotlib rendering of chart descriptors to PNG.

The box plot is drawn from the descriptor's precomputed statistics rather than
recomputed, so the image matches what an interactive surface shows. Requires
Matplotlib's Agg backend.
"""

from __future__ import annotations

import math
from io import BytesIO
from typing import Any, Dict

import matplotlib

matplotlib.use("Agg", force=True)
import matplotlib.pyplot as plt  # type: ignore  # noqa: E402

from .models import BoxPlotEntry, ChartDescriptor  # noqa: E402

DEFAULT_FIGSIZE = (10, 5)
DEFAULT_DPI = 96
BOX_COLOR = "#555555"
LEGEND_MAX_COLUMNS = 4


def _has_summary(entry: BoxPlotEntry) -> bool:
    return all(math.isfinite(value) for value in (entry.low, entry.q1, entry.median, entry.q3, entry.high))


def _bxp_stats(entry: BoxPlotEntry) -> Dict[str, Any]:
    return {
        "label": entry.column,
        "med": entry.median,
        "q1": entry.q1,
        "q3": entry.q3,
        "whislo": entry.low,
        "whishi": entry.high,
        "fliers": list(entry.outliers),
    }


def render_png(descriptor: ChartDescriptor, *, figsize: tuple[float, float] = DEFAULT_FIGSIZE, dpi: int = DEFAULT_DPI) -> bytes:
    """Render *descriptor* as PNG bytes."""
    fig, ax = plt.subplots(figsize=figsize)

    entries = [entry for entry in descriptor.box_plot.entries if _has_summary(entry)]
    if entries:
        line_props = {"color": BOX_COLOR, "linewidth": 1.2}
        ax.bxp(
            [_bxp_stats(entry) for entry in entries],
            positions=[entry.category_index for entry in entries],
            widths=0.6,
            showfliers=False,
            manage_ticks=False,
            boxprops=line_props,
            whiskerprops=line_props,
            capprops=line_props,
            medianprops={"color": BOX_COLOR, "linewidth": 2.0},
            zorder=1,
        )

    for series in descriptor.scatter:
        if not series.points:
            continue
        ax.scatter(
            [point.coordinates[0] for point in series.points],
            [point.coordinates[1] for point in series.points],
            s=series.symbol_size ** 2,
            color=series.color,
            alpha=series.opacity,
            zorder=series.z + 1,
            label=series.name,
        )

    x_axis = descriptor.x_axis
    ax.set_xlim(x_axis.min, x_axis.max)
    ax.set_xticks(list(range(len(x_axis.labels))))
    ax.set_xticklabels(list(x_axis.labels), rotation=x_axis.label_rotate, ha="right" if x_axis.label_rotate else "center")
    ax.set_ylim(descriptor.y_axis.min, descriptor.y_axis.max)
    ax.grid(False)
    if descriptor.title:
        ax.set_title(descriptor.title, fontsize=12, fontweight="bold")

    handles, labels = ax.get_legend_handles_labels()
    if handles:
        ax.legend(
            handles,
            labels,
            loc="upper center",
            bbox_to_anchor=(0.5, -0.12),
            ncol=min(LEGEND_MAX_COLUMNS, len(handles)),
            fontsize=8,
            frameon=False,
        )
    return _figure_to_png(fig, dpi)


def _figure_to_png(fig, dpi: int) -> bytes:
    buffer = BytesIO()
    fig.savefig(buffer, format="png", dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    buffer.seek(0)
    return buffer.getvalue()
