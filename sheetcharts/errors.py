"""Error taxonomy for chart reconciliation and workbook ingestion."""

from __future__ import annotations

from enum import Enum


class ReconcileOutcome(str, Enum):
    PATCHED = "patched"
    RENAMED = "renamed"
    SKIPPED_SEQUENCE = "skipped_sequence"
    INVALID_NUMERIC_VALUE = "invalid_numeric_value"
    NO_MATCHING_SERIES = "no_matching_series"
    NO_MATCHING_DATA_POINT = "no_matching_data_point"
    PATCH_APPLICATION_ERROR = "patch_application_error"
    AMBIGUOUS_HEADER_RENAME = "ambiguous_header_rename"
    STALE_DESCRIPTOR = "stale_descriptor"
    VALUE_OUTSIDE_AXIS = "value_outside_axis"

    @property
    def succeeded(self) -> bool:
        return self in (ReconcileOutcome.PATCHED, ReconcileOutcome.RENAMED, ReconcileOutcome.SKIPPED_SEQUENCE)


class ReconcileError(Exception):
    """Raised inside the reconciler when an edit cannot be patched in place."""

    outcome: ReconcileOutcome = ReconcileOutcome.PATCH_APPLICATION_ERROR


class InvalidNumericValue(ReconcileError):
    outcome = ReconcileOutcome.INVALID_NUMERIC_VALUE


class NoMatchingSeries(ReconcileError):
    outcome = ReconcileOutcome.NO_MATCHING_SERIES


class NoMatchingDataPoint(ReconcileError):
    outcome = ReconcileOutcome.NO_MATCHING_DATA_POINT


class PatchApplicationError(ReconcileError):
    outcome = ReconcileOutcome.PATCH_APPLICATION_ERROR


class AmbiguousHeaderRename(ReconcileError):
    outcome = ReconcileOutcome.AMBIGUOUS_HEADER_RENAME


class StaleDescriptor(ReconcileError):
    outcome = ReconcileOutcome.STALE_DESCRIPTOR


class ValueOutsideAxis(ReconcileError):
    outcome = ReconcileOutcome.VALUE_OUTSIDE_AXIS


class WorkbookLoadError(Exception):
    """Raised when a workbook cannot be opened or a sheet cannot be read."""
