"""
FitSync Core

Statistics and reconciliation engine for weight and body-fat time series
coming from a remote fitness API and a local health-data store.
"""

from .exceptions import SourceError, SyncError
from .orchestrator import MetricReport, SyncOrchestrator, SyncReport
from .reconcile import find_missing, high_watermark
from .schema import (
    DatedValue,
    DateRange,
    Entry,
    MetricType,
    SourceSide,
    StatisticsSummary,
)
from .sources import MeasurementSource
from .statistics import compute_statistics

__version__ = "0.1.0"

__all__ = [
    "Entry",
    "DatedValue",
    "DateRange",
    "MetricType",
    "SourceSide",
    "StatisticsSummary",
    "compute_statistics",
    "find_missing",
    "high_watermark",
    "MeasurementSource",
    "SyncOrchestrator",
    "SyncReport",
    "MetricReport",
    "SourceError",
    "SyncError",
]
