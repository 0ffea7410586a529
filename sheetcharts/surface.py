"""Render-surface contract and a Plotly-backed implementation."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import plotly.graph_objects as go

from .models import ChartDescriptor, ChartSeriesPoint, ScatterSeries

logger = logging.getLogger(__name__)

DEFAULT_WIDTH = 1280
DEFAULT_HEIGHT = 720
TRANSITION_MS = 300


@dataclass(frozen=True)
class SeriesPatch:
    """Partial update for one series; unset fields are left alone."""

    name: Optional[str] = None
    points: Optional[tuple[ChartSeriesPoint, ...]] = None

    def is_empty(self) -> bool:
        return self.name is None and self.points is None


class RenderSurface(Protocol):
    """What the reconciler needs from a chart engine."""

    def apply_descriptor(
        self,
        descriptor: ChartDescriptor,
        *,
        animate: bool = True,
        merge: bool = False,
        silent: bool = False,
    ) -> None:
        """Replace the rendered chart with *descriptor*."""

    def get_current_state(self) -> Optional[ChartDescriptor]:
        """Return the live descriptor, including any patches applied since."""

    def patch_series(self, series_index: int, patch: SeriesPatch) -> bool:
        """Apply *patch* to one series; ``False`` means the surface rejected it."""


def _finite(value: float) -> bool:
    return value is not None and math.isfinite(value)


def _box_trace(descriptor: ChartDescriptor) -> go.Box:
    entries = [
        entry
        for entry in descriptor.box_plot.entries
        if all(_finite(v) for v in (entry.low, entry.q1, entry.median, entry.q3, entry.high))
    ]
    return go.Box(
        name=descriptor.box_plot.name,
        x=[entry.category_index for entry in entries],
        q1=[entry.q1 for entry in entries],
        median=[entry.median for entry in entries],
        q3=[entry.q3 for entry in entries],
        lowerfence=[entry.low for entry in entries],
        upperfence=[entry.high for entry in entries],
        hovertext=[entry.tooltip for entry in entries],
        hoverinfo="text",
        boxpoints=False,
        fillcolor="rgba(255,255,255,0)",
        line={"color": "#555555", "width": 1.5},
    )


def _scatter_trace(series: ScatterSeries) -> go.Scatter:
    return go.Scatter(
        name=series.name,
        x=[point.coordinates[0] for point in series.points],
        y=[point.coordinates[1] for point in series.points],
        mode="markers",
        marker={"size": series.symbol_size, "color": series.color, "opacity": series.opacity},
        hovertext=[point.tooltip for point in series.points],
        hoverinfo="text",
    )


def build_figure(
    descriptor: ChartDescriptor,
    *,
    animate: bool = False,
    width: int = DEFAULT_WIDTH,
    height: int = DEFAULT_HEIGHT,
) -> go.Figure:
    fig = go.Figure()
    fig.add_trace(_box_trace(descriptor))
    for series in descriptor.scatter:
        fig.add_trace(_scatter_trace(series))

    x_axis = descriptor.x_axis
    fig.update_layout(
        template="plotly_white",
        width=width,
        height=height,
        margin={"l": 60, "r": 30, "t": 60 if descriptor.title else 40, "b": 90},
        showlegend=True,
        legend={"orientation": "h", "x": 0.5, "xanchor": "center", "y": -0.15},
        hovermode="closest",
        dragmode="zoom",
        transition={"duration": TRANSITION_MS if animate else 0},
    )
    if descriptor.title:
        fig.update_layout(title={"text": descriptor.title, "x": 0.5, "xanchor": "center"})
    fig.update_xaxes(
        range=[x_axis.min, x_axis.max],
        tickmode="array",
        tickvals=list(range(len(x_axis.labels))),
        ticktext=list(x_axis.labels),
        tickangle=-x_axis.label_rotate,
        showgrid=False,
        zeroline=False,
    )
    fig.update_yaxes(range=[descriptor.y_axis.min, descriptor.y_axis.max], showgrid=False)
    return fig


class PlotlyRenderSurface:
    def __init__(self, *, width: int = DEFAULT_WIDTH, height: int = DEFAULT_HEIGHT) -> None:
        self.width = width
        self.height = height
        self.figure = go.Figure()
        self._state: Optional[ChartDescriptor] = None
        self.last_apply: Dict[str, Any] = {}

    def apply_descriptor(
        self,
        descriptor: ChartDescriptor,
        *,
        animate: bool = True,
        merge: bool = False,
        silent: bool = False,
    ) -> None:
        # Plotly traces are replaced wholesale whether or not merge is requested.
        new_figure = build_figure(descriptor, animate=animate, width=self.width, height=self.height)
        self.figure.data = ()
        self.figure.add_traces(list(new_figure.data))
        self.figure.layout = new_figure.layout
        self._state = descriptor
        self.last_apply = {"animate": animate, "merge": merge, "silent": silent}
        if not silent:
            logger.debug("Applied descriptor generation %d", descriptor.generation)

    def get_current_state(self) -> Optional[ChartDescriptor]:
        return self._state

    def patch_series(self, series_index: int, patch: SeriesPatch) -> bool:
        state = self._state
        if state is None or patch.is_empty():
            return False
        # Index 0 is the box plot, which only ever changes through a full apply.
        position = series_index - 1
        if position < 0 or position >= len(state.scatter) or series_index >= len(self.figure.data):
            return False
        series = state.scatter[position]
        trace = self.figure.data[series_index]

        if patch.points is not None:
            new_x = tuple(point.coordinates[0] for point in patch.points)
            if new_x != tuple(trace.x or ()):
                logger.debug("Rejected patch for series %d: x positions changed", series_index)
                return False

        with self.figure.batch_update():
            if patch.points is not None:
                trace.y = [point.coordinates[1] for point in patch.points]
                trace.hovertext = [point.tooltip for point in patch.points]
                series = replace(series, points=patch.points)
            if patch.name is not None:
                trace.name = patch.name
                series = replace(series, name=patch.name)

        scatter = list(state.scatter)
        scatter[position] = series
        self._state = replace(state, scatter=tuple(scatter))
        return True

    def to_html(self) -> str:
        return self.figure.to_html(include_plotlyjs="cdn", full_html=True)

    def write_html(self, path: Path) -> Path:
        path = path.expanduser().resolve()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_html(), encoding="utf-8")
        return path
