"""Box plot and scatter charts for spreadsheet columns, with in-place updates on cell edits."""

from .descriptor import build_chart_descriptor, build_grouped_chart_descriptors
from .errors import ReconcileOutcome, WorkbookLoadError
from .ingest import load_workbook_data
from .models import CellEditEvent, ChartDescriptor, ChartOptions, WorksheetData
from .reconcile import ReconcileResult, UpdateReconciler
from .session import CellEditBus, ChartSession
from .surface import PlotlyRenderSurface, RenderSurface, SeriesPatch

__all__ = [
    "__version__",
    "build_chart_descriptor",
    "build_grouped_chart_descriptors",
    "load_workbook_data",
    "CellEditEvent",
    "ChartDescriptor",
    "ChartOptions",
    "WorksheetData",
    "ReconcileOutcome",
    "ReconcileResult",
    "UpdateReconciler",
    "CellEditBus",
    "ChartSession",
    "PlotlyRenderSurface",
    "RenderSurface",
    "SeriesPatch",
    "WorkbookLoadError",
]

__version__ = "0.1.0"
