"""Incremental reconciliation of single-cell edits against a rendered chart.

Each edit is classified and then either patched into the live chart or
reported as needing a full rebuild. Reconciliation never raises: every failure
comes back as a falsy :class:`ReconcileResult` and leaves the surface showing
the descriptor it had before the call.

The box-plot series is never patched here. A numeric edit does move its
column's quartiles, but recomputing the summary on every keystroke is too
slow for interactive editing, so the box plot lags until the next full
rebuild while the scatter points update immediately. The y axis is not
widened either: a value outside the current axis range is reported as
needing a full rebuild instead of being drawn off-chart.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional, Sequence, Union

from .boxstats import format_value
from .descriptor import box_tooltip
from .errors import (
    AmbiguousHeaderRename,
    InvalidNumericValue,
    NoMatchingDataPoint,
    NoMatchingSeries,
    PatchApplicationError,
    ReconcileError,
    ReconcileOutcome,
    StaleDescriptor,
    ValueOutsideAxis,
)
from .models import CellEditEvent, ChartDescriptor, ChartOptions, ScatterSeries
from .sanitize import parse_finite_number
from .surface import RenderSurface, SeriesPatch

logger = logging.getLogger(__name__)


class EditKind(str, Enum):
    HEADER = "header"
    SEQUENCE = "sequence"
    NON_NUMERIC = "non_numeric"
    NUMERIC = "numeric"


class ReconcilerState(str, Enum):
    RENDERED = "rendered"
    PATCHING = "patching"
    NEEDS_FULL_REBUILD = "needs_full_rebuild"


@dataclass(frozen=True)
class PointPatch:
    series_index: int
    data_index: int
    numeric_value: float
    raw_value: Union[str, int, float]


@dataclass(frozen=True)
class RenamePatch:
    old_label: str
    new_label: str


DescriptorPatch = Union[PointPatch, RenamePatch]


@dataclass(frozen=True)
class ReconcileResult:
    outcome: ReconcileOutcome
    descriptor: Optional[ChartDescriptor] = None
    strategy: Optional[str] = None
    message: str = ""

    @property
    def success(self) -> bool:
        return self.outcome.succeeded

    def __bool__(self) -> bool:
        return self.success


def _is_sequence_column(name: str, label: str) -> bool:
    return name.strip() == label or label in name


def classify_edit(
    event: CellEditEvent,
    options: ChartOptions | None = None,
    columns: Optional[Sequence[str]] = None,
) -> EditKind:
    """Sort *event* into one of the reconciler's branches.

    A column named like the sequence column only counts as one when it is not
    among the charted *columns*.
    """
    options = options or ChartOptions()
    if event.is_header_edit:
        return EditKind.HEADER
    name = event.resolved_column_name
    if _is_sequence_column(name, options.sequence_label) and (columns is None or name not in columns):
        return EditKind.SEQUENCE
    if parse_finite_number(event.new_value) is None:
        return EditKind.NON_NUMERIC
    return EditKind.NUMERIC


def find_affected_points(event: CellEditEvent, descriptor: ChartDescriptor) -> List[PointPatch]:
    value = parse_finite_number(event.new_value)
    if value is None:
        raise InvalidNumericValue(f"'{event.new_value}' is not a finite number")

    matching = [
        (descriptor.scatter_series_index(position), series)
        for position, series in enumerate(descriptor.scatter)
        if series.column_label == event.resolved_column_name
    ]
    if not matching:
        raise NoMatchingSeries(f"No scatter series for column '{event.resolved_column_name}'")

    target_row = descriptor.row_index_map.get(event.row_index)
    if target_row is None:
        raise NoMatchingDataPoint(f"Row {event.row_index} is not part of the charted data")

    patches: List[PointPatch] = []
    for series_index, series in matching:
        for data_index, point in enumerate(series.points):
            if point.filtered_row_index == target_row:
                patches.append(PointPatch(series_index, data_index, value, event.new_value))
                break
    if not patches:
        raise NoMatchingDataPoint(
            f"Column '{event.resolved_column_name}' has no point for row {event.row_index}"
        )
    return patches


def _patch_point(descriptor: ChartDescriptor, patch: PointPatch) -> ChartDescriptor:
    position = patch.series_index - 1
    if position < 0 or position >= len(descriptor.scatter):
        raise PatchApplicationError(f"Series {patch.series_index} is not a scatter series")
    series = descriptor.scatter[position]
    if patch.data_index < 0 or patch.data_index >= len(series.points):
        raise NoMatchingDataPoint(f"Series {patch.series_index} has no point {patch.data_index}")
    old_point = series.points[patch.data_index]
    new_point = replace(
        old_point,
        coordinates=(old_point.coordinates[0], patch.numeric_value),
        raw_value=patch.raw_value,
        numeric_value=patch.numeric_value,
    )
    points = list(series.points)
    points[patch.data_index] = new_point
    scatter = list(descriptor.scatter)
    scatter[position] = replace(series, points=tuple(points))
    return replace(descriptor, scatter=tuple(scatter))


def _renamed_series(series: ScatterSeries, old: str, new: str) -> ScatterSeries:
    suffix = series.name[len(old):] if series.name.startswith(old) else ""
    points = tuple(replace(point, column_label=new) for point in series.points)
    return replace(series, name=f"{new}{suffix}", column_label=new, points=points)


def _rename_column(descriptor: ChartDescriptor, patch: RenamePatch) -> ChartDescriptor:
    old, new = patch.old_label, patch.new_label
    if old not in descriptor.columns:
        raise NoMatchingSeries(f"No scatter series for column '{old}'")
    if new in descriptor.columns:
        raise AmbiguousHeaderRename(f"Column '{new}' already exists")

    renamed_names = {}
    scatter = []
    for series in descriptor.scatter:
        if series.column_label == old:
            updated = _renamed_series(series, old, new)
            renamed_names[series.name] = updated.name
            scatter.append(updated)
        else:
            scatter.append(series)

    entries = []
    for entry in descriptor.box_plot.entries:
        if entry.column == old:
            entry = replace(entry, column=new, tooltip=box_tooltip(new, entry.display_stats, entry.q1, entry.q3))
        entries.append(entry)

    columns = tuple(new if column == old else column for column in descriptor.columns)
    legend = replace(
        descriptor.legend,
        entries=tuple(renamed_names.get(name, name) for name in descriptor.legend.entries),
    )
    x_axis = replace(descriptor.x_axis, labels=tuple(new if label == old else label for label in descriptor.x_axis.labels))
    return replace(
        descriptor,
        columns=columns,
        box_plot=replace(descriptor.box_plot, entries=tuple(entries)),
        scatter=tuple(scatter),
        legend=legend,
        x_axis=x_axis,
    )


def apply_patch(descriptor: ChartDescriptor, patch: DescriptorPatch) -> ChartDescriptor:
    """Return a copy of *descriptor* with *patch* applied; the input is untouched.

    Point patches keep each point's x-coordinate exactly as it was.
    """
    if isinstance(patch, PointPatch):
        return _patch_point(descriptor, patch)
    if isinstance(patch, RenamePatch):
        return _rename_column(descriptor, patch)
    raise TypeError(f"Unsupported patch type: {type(patch)!r}")


class UpdateReconciler:
    """Keeps one render surface in step with cell edits where it can."""

    def __init__(
        self,
        surface: RenderSurface,
        descriptor: ChartDescriptor,
        *,
        options: ChartOptions | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.surface = surface
        self.descriptor = descriptor
        self.options = options or ChartOptions()
        self.log = log or logger
        self.state = ReconcilerState.RENDERED

    def mark_rendered(self, descriptor: ChartDescriptor) -> None:
        """Adopt *descriptor* after the caller has rebuilt and applied it."""
        self.descriptor = descriptor
        self.state = ReconcilerState.RENDERED

    def reconcile(self, event: CellEditEvent, old_column_name: str | None = None) -> ReconcileResult:
        self.state = ReconcilerState.PATCHING
        try:
            result = self._reconcile(event, old_column_name)
        except ReconcileError as exc:
            self.log.info(
                "Edit at row %d, column %d needs a full rebuild (%s): %s",
                event.row_index,
                event.column_index,
                exc.outcome.value,
                exc,
            )
            result = ReconcileResult(outcome=exc.outcome, message=str(exc))

        if result.success:
            if result.descriptor is not None:
                self.descriptor = result.descriptor
            self.state = ReconcilerState.RENDERED
        else:
            self.state = ReconcilerState.NEEDS_FULL_REBUILD
        return result

    # Classification branches -------------------------------------------

    def _reconcile(self, event: CellEditEvent, old_column_name: str | None) -> ReconcileResult:
        kind = classify_edit(event, self.options, self.descriptor.columns)
        self.log.debug("Classified edit %s as %s", event, kind.value)
        if kind is EditKind.HEADER:
            return self._rename(event, old_column_name or event.old_column_name)
        if kind is EditKind.SEQUENCE:
            return ReconcileResult(outcome=ReconcileOutcome.SKIPPED_SEQUENCE, descriptor=self.descriptor)
        if kind is EditKind.NON_NUMERIC:
            raise InvalidNumericValue(f"'{event.new_value}' is not a finite number")
        return self._patch_value(event)

    def _rename(self, event: CellEditEvent, old_name: str | None) -> ReconcileResult:
        new_name = event.new_value.strip()
        if not old_name or old_name == new_name:
            raise AmbiguousHeaderRename("Header edit without a usable previous column name")
        live = self._live_state()
        if not any(series.column_label == old_name for series in live.scatter):
            raise NoMatchingSeries(f"No scatter series for column '{old_name}'")
        updated = apply_patch(live, RenamePatch(old_name, new_name))
        if not self._try_full_apply(live, updated):
            raise PatchApplicationError("Render surface rejected the renamed descriptor")
        self.log.debug("Renamed column '%s' to '%s'", old_name, new_name)
        return ReconcileResult(outcome=ReconcileOutcome.RENAMED, descriptor=updated, strategy="full")

    def _patch_value(self, event: CellEditEvent) -> ReconcileResult:
        live = self._live_state()
        patches = find_affected_points(event, live)
        for patch in patches:
            if not live.y_axis.min <= patch.numeric_value <= live.y_axis.max:
                raise ValueOutsideAxis(
                    f"{format_value(patch.numeric_value)} lies outside the y axis "
                    f"[{format_value(live.y_axis.min)}, {format_value(live.y_axis.max)}]"
                )
        updated = live
        for patch in patches:
            updated = apply_patch(updated, patch)
        series_indices = sorted({patch.series_index for patch in patches})

        if self._try_series_patches(live, updated, series_indices):
            strategy = "series"
        elif self._try_full_apply(live, updated):
            strategy = "full"
        else:
            raise PatchApplicationError("All patch strategies failed")

        self.log.debug(
            "Patched %s = %s via %s update",
            event.resolved_column_name,
            format_value(patches[0].numeric_value),
            strategy,
        )
        return ReconcileResult(outcome=ReconcileOutcome.PATCHED, descriptor=updated, strategy=strategy)

    # Surface helpers ---------------------------------------------------

    def _live_state(self) -> ChartDescriptor:
        live = self.surface.get_current_state()
        if live is None:
            raise PatchApplicationError("Render surface has no chart applied")
        if live.generation != self.descriptor.generation:
            raise StaleDescriptor(
                f"Surface shows generation {live.generation}, expected {self.descriptor.generation}"
            )
        return live

    def _try_series_patches(
        self,
        previous: ChartDescriptor,
        updated: ChartDescriptor,
        series_indices: Sequence[int],
    ) -> bool:
        applied = 0
        try:
            for series_index in series_indices:
                series = updated.series[series_index]
                if not isinstance(series, ScatterSeries):
                    return False
                if not self.surface.patch_series(series_index, SeriesPatch(points=series.points)):
                    self.log.debug("Surface rejected localized patch for series %d", series_index)
                    break
                applied += 1
            else:
                return True
        except Exception:
            self.log.warning("Localized series patch raised", exc_info=True)
        if applied:
            self._restore(previous)
        return False

    def _try_full_apply(self, previous: ChartDescriptor, updated: ChartDescriptor) -> bool:
        try:
            self.surface.apply_descriptor(updated, animate=False, merge=False, silent=True)
        except Exception:
            self.log.warning("Full descriptor apply raised", exc_info=True)
            self._restore(previous)
            return False
        return True

    def _restore(self, previous: ChartDescriptor) -> None:
        try:
            self.surface.apply_descriptor(previous, animate=False, merge=False, silent=True)
        except Exception:
            self.log.error("Failed to restore the previous chart state", exc_info=True)
