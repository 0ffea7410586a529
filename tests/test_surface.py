from __future__ import annotations

import sys
from dataclasses import replace
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from sheetcharts.descriptor import build_chart_descriptor
from sheetcharts.models import ChartDescriptor
from sheetcharts.surface import PlotlyRenderSurface, SeriesPatch, build_figure


def _descriptor(title: str | None = None) -> ChartDescriptor:
    rows = [
        {"A": 1, "B": 10},
        {"A": 2, "B": 20},
        {"A": 3, "B": None},
    ]
    descriptor = build_chart_descriptor(rows, ["A", "B"], title=title)
    assert descriptor is not None
    return descriptor


def test_build_figure_box_first_then_one_scatter_per_column() -> None:
    descriptor = _descriptor(title="Sheet1")
    fig = build_figure(descriptor)

    assert [trace.type for trace in fig.data] == ["box", "scatter", "scatter"]
    box = fig.data[0]
    assert list(box.median) == [entry.median for entry in descriptor.box_plot.entries]
    assert list(box.x) == [0, 1]
    scatter = fig.data[1]
    assert scatter.name == "A scatter"
    assert scatter.mode == "markers"
    assert list(scatter.x) == [point.coordinates[0] for point in descriptor.scatter[0].points]
    assert list(scatter.y) == [1.0, 2.0, 3.0]
    assert list(fig.layout.xaxis.ticktext) == ["A", "B"]
    assert fig.layout.title.text == "Sheet1"


def test_apply_descriptor_replaces_traces_and_records_flags() -> None:
    surface = PlotlyRenderSurface()
    first = _descriptor()
    surface.apply_descriptor(first)
    surface.apply_descriptor(first, animate=False, merge=True, silent=True)

    assert len(surface.figure.data) == 3
    assert surface.get_current_state() is first
    assert surface.last_apply == {"animate": False, "merge": True, "silent": True}


def test_patch_series_updates_trace_and_state() -> None:
    surface = PlotlyRenderSurface()
    descriptor = _descriptor()
    surface.apply_descriptor(descriptor)

    points = list(descriptor.scatter[0].points)
    old = points[1]
    points[1] = replace(old, coordinates=(old.coordinates[0], 99.0), raw_value="99", numeric_value=99.0)

    assert surface.patch_series(1, SeriesPatch(points=tuple(points)))
    assert list(surface.figure.data[1].y) == [1.0, 99.0, 3.0]
    assert surface.figure.data[1].hovertext[1] == "Type: A<br/>Value: 99"
    state = surface.get_current_state()
    assert state is not None
    assert state.scatter[0].points[1].numeric_value == 99.0
    assert state.box_plot == descriptor.box_plot


def test_patch_series_rejects_box_plot_bad_index_and_moved_points() -> None:
    surface = PlotlyRenderSurface()
    assert not surface.patch_series(1, SeriesPatch(points=()))

    descriptor = _descriptor()
    surface.apply_descriptor(descriptor)
    points = descriptor.scatter[0].points

    assert not surface.patch_series(0, SeriesPatch(points=points))
    assert not surface.patch_series(5, SeriesPatch(points=points))
    assert not surface.patch_series(1, SeriesPatch())
    assert not surface.patch_series(1, SeriesPatch(points=points[:1]))
    assert surface.get_current_state() is descriptor


def test_patch_series_can_rename() -> None:
    surface = PlotlyRenderSurface()
    surface.apply_descriptor(_descriptor())
    assert surface.patch_series(2, SeriesPatch(name="Renamed"))
    assert surface.figure.data[2].name == "Renamed"


def test_write_html(tmp_path: Path) -> None:
    surface = PlotlyRenderSurface()
    surface.apply_descriptor(_descriptor())
    path = surface.write_html(tmp_path / "out" / "chart.html")
    assert path.exists()
    assert "plotly" in path.read_text(encoding="utf-8").lower()
