"""Live editing session: keeps a worksheet, its chart and the render surface in step."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, List, Optional

from .descriptor import build_chart_descriptor
from .headers import generate_columns, group_columns_by_last_level
from .models import CellEditEvent, ChartDescriptor, ChartOptions, RowData, WorksheetData
from .reconcile import ReconcileResult, UpdateReconciler
from .surface import RenderSurface

logger = logging.getLogger(__name__)

CellEditListener = Callable[[CellEditEvent], Any]


@dataclass(order=True)
class _RegisteredListener:
    priority: int
    order: int
    listener: CellEditListener = field(compare=False)


class CellEditBus:
    """Delivers committed cell edits to listeners, highest priority first."""

    def __init__(self) -> None:
        self._listeners: List[_RegisteredListener] = []
        self._order_counter = itertools.count()

    def register(self, listener: CellEditListener, *, priority: int = 0) -> None:
        self._listeners.append(_RegisteredListener(priority=-priority, order=next(self._order_counter), listener=listener))
        self._listeners.sort()

    def unregister(self, listener: CellEditListener) -> None:
        self._listeners = [entry for entry in self._listeners if entry.listener != listener]

    def emit(self, event: CellEditEvent) -> List[Any]:
        return [registration.listener(event) for registration in list(self._listeners)]

    def __len__(self) -> int:
        return len(self._listeners)


@dataclass(frozen=True)
class EditReport:
    event: CellEditEvent
    result: Optional[ReconcileResult]
    rebuilt: bool
    descriptor: Optional[ChartDescriptor]

    @property
    def patched(self) -> bool:
        return self.result is not None and self.result.success and not self.rebuilt


def _rekey_rows(rows: List[RowData], old_columns: List[str], new_columns: List[str]) -> List[RowData]:
    rekeyed: List[RowData] = []
    for row in rows:
        rekeyed.append(
            {
                column: row.get(old_columns[index]) if index < len(old_columns) else None
                for index, column in enumerate(new_columns)
            }
        )
    return rekeyed


def apply_cell_edit(
    worksheet: WorksheetData,
    event: CellEditEvent,
    options: ChartOptions | None = None,
) -> Optional[str]:
    """Write *event* into *worksheet* in place.

    Header edits regenerate the column names and re-key every row by position.
    Returns the column name at the edited index before the edit, or ``None``
    when the index was outside the known columns.
    """
    options = options or ChartOptions()
    old_columns = list(worksheet.columns)
    old_name = old_columns[event.column_index] if 0 <= event.column_index < len(old_columns) else None

    if event.row_index < worksheet.header_row_count:
        while len(worksheet.header_rows) <= event.row_index:
            worksheet.header_rows.append([])
        header_row = worksheet.header_rows[event.row_index]
        if len(header_row) <= event.column_index:
            header_row.extend([""] * (event.column_index + 1 - len(header_row)))
        header_row[event.column_index] = event.new_value.strip()
        new_columns = generate_columns(worksheet.header_rows, options.header_separator)
        worksheet.rows = _rekey_rows(worksheet.rows, old_columns, new_columns)
        worksheet.columns = new_columns
        worksheet.column_groups = group_columns_by_last_level(new_columns, options.header_separator)
        return old_name

    if old_name is None:
        logger.debug("Ignoring edit outside the known columns at column %d", event.column_index)
        return None
    data_index = event.row_index - worksheet.header_row_count
    while len(worksheet.rows) <= data_index:
        worksheet.rows.append({column: None for column in old_columns})
    text = event.new_value.strip()
    worksheet.rows[data_index][old_name] = text if text else None
    return old_name


class ChartSession:
    """Owns the worksheet and descriptor for one chart and routes edits to the reconciler.

    Every rebuild bumps the generation, so a reconciler still holding an older
    descriptor reports it stale instead of patching over the new chart.
    """

    def __init__(
        self,
        worksheet: WorksheetData,
        surface: RenderSurface,
        *,
        options: ChartOptions | None = None,
        title: str | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.worksheet = worksheet
        self.surface = surface
        self.options = options or ChartOptions()
        self.title = title
        self.log = log or logger
        self.generation = 0
        self.descriptor: Optional[ChartDescriptor] = None
        self.reconciler: Optional[UpdateReconciler] = None

    def render(self) -> Optional[ChartDescriptor]:
        """Rebuild the descriptor from the worksheet and apply it to the surface."""
        self.generation += 1
        descriptor = build_chart_descriptor(
            self.worksheet.rows,
            self.worksheet.columns,
            self.worksheet.header_row_count,
            options=self.options,
            title=self.title,
            generation=self.generation,
        )
        self.descriptor = descriptor
        if descriptor is None:
            self.log.info("Nothing to chart after rebuild (generation %d)", self.generation)
            return None
        self.surface.apply_descriptor(descriptor, animate=True)
        if self.reconciler is None:
            self.reconciler = UpdateReconciler(self.surface, descriptor, options=self.options, log=self.log)
        else:
            self.reconciler.mark_rendered(descriptor)
        return descriptor

    def handle(self, event: CellEditEvent) -> EditReport:
        old_columns = list(self.worksheet.columns)
        old_name = apply_cell_edit(self.worksheet, event, self.options)

        result: Optional[ReconcileResult] = None
        if self.reconciler is not None and self.descriptor is not None:
            routed = self._route(event, old_name, old_columns)
            if routed is not None:
                result = self.reconciler.reconcile(routed, routed.old_column_name)

        if result is not None and result.success:
            if result.descriptor is not None:
                self.descriptor = result.descriptor
            return EditReport(event=event, result=result, rebuilt=False, descriptor=self.descriptor)

        descriptor = self.render()
        return EditReport(event=event, result=result, rebuilt=True, descriptor=descriptor)

    def attach(self, bus: CellEditBus, *, priority: int = 0) -> None:
        bus.register(self.handle, priority=priority)

    def _route(self, event: CellEditEvent, old_name: Optional[str], old_columns: List[str]) -> Optional[CellEditEvent]:
        """Rewrite *event* for the reconciler, or return ``None`` when only a rebuild will do."""
        if old_name is None:
            return None
        if event.row_index >= self.worksheet.header_row_count:
            return replace(event, resolved_column_name=old_name)

        columns = self.worksheet.columns
        if event.row_index != 0 or len(columns) != len(old_columns):
            return None
        new_name = columns[event.column_index]
        others_unchanged = all(
            new == old for index, (new, old) in enumerate(zip(columns, old_columns)) if index != event.column_index
        )
        # Multi-level or de-duplicated names differ from the typed text.
        if new_name != event.new_value.strip() or not others_unchanged:
            return None
        if new_name == self.options.sequence_label:
            return None
        return replace(event, resolved_column_name=new_name, old_column_name=old_name)
