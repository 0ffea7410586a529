from __future__ import annotations

import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from sheetcharts.descriptor import build_chart_descriptor
from sheetcharts.errors import NoMatchingDataPoint, NoMatchingSeries, ReconcileOutcome
from sheetcharts.models import CellEditEvent, ChartDescriptor
from sheetcharts.reconcile import (
    EditKind,
    PointPatch,
    ReconcilerState,
    RenamePatch,
    UpdateReconciler,
    apply_patch,
    classify_edit,
    find_affected_points,
)
from sheetcharts.series import fixed_x
from sheetcharts.surface import SeriesPatch

COLUMNS = ["序号", "机械手-X", "机械手-Y"]


class FakeSurface:
    def __init__(self, *, reject_patches: bool = False, patch_error: bool = False, apply_error: bool = False) -> None:
        self.reject_patches = reject_patches
        self.patch_error = patch_error
        self.apply_error = apply_error
        self.state: Optional[ChartDescriptor] = None
        self.applied: list[dict[str, Any]] = []
        self.patches: list[tuple[int, SeriesPatch]] = []

    def apply_descriptor(
        self,
        descriptor: ChartDescriptor,
        *,
        animate: bool = True,
        merge: bool = False,
        silent: bool = False,
    ) -> None:
        if self.apply_error:
            raise RuntimeError("apply failed")
        self.state = descriptor
        self.applied.append({"descriptor": descriptor, "animate": animate, "merge": merge, "silent": silent})

    def get_current_state(self) -> Optional[ChartDescriptor]:
        return self.state

    def patch_series(self, series_index: int, patch: SeriesPatch) -> bool:
        self.patches.append((series_index, patch))
        if self.patch_error:
            raise RuntimeError("patch failed")
        if self.reject_patches or self.state is None:
            return False
        position = series_index - 1
        scatter = list(self.state.scatter)
        scatter[position] = replace(scatter[position], points=patch.points)
        self.state = replace(self.state, scatter=tuple(scatter))
        return True


def _rows() -> list[dict[str, object]]:
    return [
        {"序号": 1, "机械手-X": 1, "机械手-Y": 2},
        {"序号": 2, "机械手-X": None, "机械手-Y": 4},
        {"序号": 3, "机械手-X": 5, "机械手-Y": 6},
        {"序号": "平均值", "机械手-X": 3, "机械手-Y": 4},
    ]


def _rendered(surface: FakeSurface, generation: int = 1) -> tuple[ChartDescriptor, UpdateReconciler]:
    descriptor = build_chart_descriptor(_rows(), COLUMNS, header_row_count=1, generation=generation)
    assert descriptor is not None
    surface.apply_descriptor(descriptor)
    return descriptor, UpdateReconciler(surface, descriptor)


def _edit(row: int, column: int, value: str, name: str, old: str | None = None) -> CellEditEvent:
    return CellEditEvent(row_index=row, column_index=column, new_value=value, resolved_column_name=name, old_column_name=old)


def test_classify_edit() -> None:
    assert classify_edit(_edit(0, 1, "new", "机械手-X")) is EditKind.HEADER
    assert classify_edit(_edit(2, 0, "9", "序号")) is EditKind.SEQUENCE
    assert classify_edit(_edit(2, 0, "9", "序号A"), columns=("序号A", "B")) is EditKind.NUMERIC
    assert classify_edit(_edit(2, 0, "9", "序号A"), columns=("B",)) is EditKind.SEQUENCE
    assert classify_edit(_edit(2, 1, "abc", "机械手-X")) is EditKind.NON_NUMERIC
    assert classify_edit(_edit(2, 1, " 4.5 ", "机械手-X")) is EditKind.NUMERIC


def test_find_affected_points_maps_raw_row_to_filtered_point() -> None:
    descriptor = build_chart_descriptor(_rows(), COLUMNS)
    assert descriptor is not None
    patches = find_affected_points(_edit(3, 1, "42", "机械手-X"), descriptor)
    # Row 2 has no X value, so the third filtered row is the second X point.
    assert patches == [PointPatch(series_index=1, data_index=1, numeric_value=42.0, raw_value="42")]


def test_find_affected_points_failures() -> None:
    descriptor = build_chart_descriptor(_rows(), COLUMNS)
    assert descriptor is not None
    with pytest.raises(NoMatchingSeries):
        find_affected_points(_edit(1, 5, "1", "Unknown"), descriptor)
    with pytest.raises(NoMatchingDataPoint):
        find_affected_points(_edit(2, 1, "1", "机械手-X"), descriptor)
    with pytest.raises(NoMatchingDataPoint):
        find_affected_points(_edit(4, 1, "1", "机械手-X"), descriptor)


def test_apply_patch_is_pure_and_keeps_x() -> None:
    descriptor = build_chart_descriptor(_rows(), COLUMNS)
    assert descriptor is not None
    original_point = descriptor.scatter[0].points[1]

    updated = apply_patch(descriptor, PointPatch(1, 1, 42.0, "42"))

    assert descriptor.scatter[0].points[1] == original_point
    new_point = updated.scatter[0].points[1]
    assert new_point.coordinates == (original_point.coordinates[0], 42.0)
    assert new_point.fixed_x == original_point.fixed_x
    assert new_point.raw_value == "42"
    assert updated.box_plot == descriptor.box_plot
    assert updated.scatter[1] == descriptor.scatter[1]


def test_apply_patch_rename_updates_every_reference() -> None:
    descriptor = build_chart_descriptor(_rows(), COLUMNS)
    assert descriptor is not None
    renamed = apply_patch(descriptor, RenamePatch("机械手-X", "夹爪-X"))

    assert renamed.columns == ("夹爪-X", "机械手-Y")
    assert renamed.scatter[0].name == "夹爪-X scatter"
    assert all(point.column_label == "夹爪-X" for point in renamed.scatter[0].points)
    assert renamed.box_plot.entries[0].column == "夹爪-X"
    assert "<strong>夹爪-X</strong>" in renamed.box_plot.entries[0].tooltip
    assert renamed.legend.entries == ("Box plot", "夹爪-X scatter", "机械手-Y scatter")
    assert renamed.x_axis.labels == ("夹爪-X", "机械手-Y")


def test_numeric_edit_patches_single_series_in_place() -> None:
    surface = FakeSurface()
    descriptor, reconciler = _rendered(surface)

    result = reconciler.reconcile(_edit(3, 1, "3.5", "机械手-X"))

    assert result
    assert result.outcome is ReconcileOutcome.PATCHED
    assert result.strategy == "series"
    assert [index for index, _ in surface.patches] == [1]
    assert len(surface.applied) == 1
    point = surface.state.scatter[0].points[1]
    assert point.coordinates == (fixed_x(0, 2), 3.5)
    assert point.coordinates[0] == descriptor.scatter[0].points[1].coordinates[0]
    assert surface.state.box_plot == descriptor.box_plot
    assert reconciler.descriptor is result.descriptor
    assert reconciler.state is ReconcilerState.RENDERED


def test_non_numeric_edit_leaves_surface_untouched() -> None:
    surface = FakeSurface()
    descriptor, reconciler = _rendered(surface)

    result = reconciler.reconcile(_edit(3, 1, "abc", "机械手-X"))

    assert not result
    assert result.outcome is ReconcileOutcome.INVALID_NUMERIC_VALUE
    assert surface.state is descriptor
    assert surface.patches == []
    assert len(surface.applied) == 1
    assert reconciler.state is ReconcilerState.NEEDS_FULL_REBUILD


def test_sequence_edit_is_skipped() -> None:
    surface = FakeSurface()
    descriptor, reconciler = _rendered(surface)
    result = reconciler.reconcile(_edit(1, 0, "99", "序号"))
    assert result
    assert result.outcome is ReconcileOutcome.SKIPPED_SEQUENCE
    assert surface.state is descriptor


def test_charted_column_named_like_sequence_is_patched() -> None:
    surface = FakeSurface()
    rows = [{"序号A": 1, "B": 2}, {"序号A": 3, "B": 4}]
    descriptor = build_chart_descriptor(rows, ["序号A", "B"], generation=1)
    assert descriptor is not None
    assert descriptor.columns == ("序号A", "B")
    surface.apply_descriptor(descriptor)
    reconciler = UpdateReconciler(surface, descriptor)

    result = reconciler.reconcile(_edit(1, 0, "2.5", "序号A"))

    assert result.outcome is ReconcileOutcome.PATCHED
    assert surface.state.scatter[0].points[0].numeric_value == 2.5


def test_value_outside_y_axis_requests_rebuild() -> None:
    surface = FakeSurface()
    descriptor, reconciler = _rendered(surface)
    assert descriptor.y_axis.max < 42.0

    result = reconciler.reconcile(_edit(3, 1, "42", "机械手-X"))

    assert not result
    assert result.outcome is ReconcileOutcome.VALUE_OUTSIDE_AXIS
    assert surface.state is descriptor
    assert surface.patches == []
    assert reconciler.state is ReconcilerState.NEEDS_FULL_REBUILD

    below = reconciler.reconcile(_edit(3, 1, "-10", "机械手-X"))
    assert below.outcome is ReconcileOutcome.VALUE_OUTSIDE_AXIS


def test_rejected_series_patch_falls_back_to_silent_full_apply() -> None:
    surface = FakeSurface(reject_patches=True)
    _, reconciler = _rendered(surface)

    result = reconciler.reconcile(_edit(1, 2, "5.5", "机械手-Y"))

    assert result.outcome is ReconcileOutcome.PATCHED
    assert result.strategy == "full"
    last = surface.applied[-1]
    assert (last["animate"], last["merge"], last["silent"]) == (False, False, True)
    assert surface.state.scatter[1].points[0].numeric_value == 5.5


def test_all_strategies_failing_keeps_previous_chart(caplog: pytest.LogCaptureFixture) -> None:
    surface = FakeSurface(patch_error=True)
    descriptor, reconciler = _rendered(surface)
    surface.apply_error = True

    with caplog.at_level(logging.WARNING, logger="sheetcharts.reconcile"):
        result = reconciler.reconcile(_edit(1, 2, "5.5", "机械手-Y"))

    assert result.outcome is ReconcileOutcome.PATCH_APPLICATION_ERROR
    assert surface.state is descriptor
    assert reconciler.state is ReconcilerState.NEEDS_FULL_REBUILD
    assert any("raised" in record.getMessage() for record in caplog.records)


def test_unmatched_edits_request_rebuild() -> None:
    surface = FakeSurface()
    descriptor, reconciler = _rendered(surface)

    assert reconciler.reconcile(_edit(1, 9, "1", "Unknown")).outcome is ReconcileOutcome.NO_MATCHING_SERIES
    assert reconciler.reconcile(_edit(4, 1, "1", "机械手-X")).outcome is ReconcileOutcome.NO_MATCHING_DATA_POINT
    assert surface.state is descriptor


def test_stale_descriptor_is_not_patched() -> None:
    surface = FakeSurface()
    _, reconciler = _rendered(surface, generation=1)
    newer = build_chart_descriptor(_rows(), COLUMNS, generation=2)
    assert newer is not None
    surface.apply_descriptor(newer)

    result = reconciler.reconcile(_edit(1, 1, "3", "机械手-X"))

    assert result.outcome is ReconcileOutcome.STALE_DESCRIPTOR
    assert surface.state is newer
    assert surface.patches == []

    reconciler.mark_rendered(newer)
    assert reconciler.reconcile(_edit(1, 1, "3", "机械手-X")).outcome is ReconcileOutcome.PATCHED


def test_missing_surface_state_is_reported() -> None:
    surface = FakeSurface()
    descriptor = build_chart_descriptor(_rows(), COLUMNS)
    assert descriptor is not None
    reconciler = UpdateReconciler(surface, descriptor)
    result = reconciler.reconcile(_edit(1, 1, "3", "机械手-X"))
    assert result.outcome is ReconcileOutcome.PATCH_APPLICATION_ERROR


def test_header_edit_renames_series() -> None:
    surface = FakeSurface()
    _, reconciler = _rendered(surface)

    result = reconciler.reconcile(_edit(0, 1, "夹爪-X", "夹爪-X", old="机械手-X"))

    assert result.outcome is ReconcileOutcome.RENAMED
    assert result.strategy == "full"
    assert surface.state.columns == ("夹爪-X", "机械手-Y")
    assert surface.state.scatter[0].name == "夹爪-X scatter"


def test_header_edit_failures() -> None:
    surface = FakeSurface()
    descriptor, reconciler = _rendered(surface)

    clash = reconciler.reconcile(_edit(0, 1, "机械手-Y", "机械手-Y", old="机械手-X"))
    assert clash.outcome is ReconcileOutcome.AMBIGUOUS_HEADER_RENAME

    unknown_old = reconciler.reconcile(_edit(0, 1, "夹爪-X", "夹爪-X"))
    assert unknown_old.outcome is ReconcileOutcome.AMBIGUOUS_HEADER_RENAME

    missing = reconciler.reconcile(_edit(0, 1, "夹爪-X", "夹爪-X", old="Nope"))
    assert missing.outcome is ReconcileOutcome.NO_MATCHING_SERIES
    assert surface.state is descriptor
