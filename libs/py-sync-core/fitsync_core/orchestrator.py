"""
Sync orchestration.

Fetches weight and body-fat entries from a remote and a local source
concurrently, then summarizes each side and reconciles remote against local.

Usage:
    orchestrator = SyncOrchestrator(remote=fitbit, local=health_export)
    report = await orchestrator.sync_all()

    report.weight.missing        # remote weight entries absent locally
    report.body_fat.remote       # StatisticsSummary of remote body fat
"""

import asyncio
import logging
from collections.abc import Sequence
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import SyncError
from .reconcile import find_missing, high_watermark
from .schema import DateRange, Entry, MetricType, SourceSide, StatisticsSummary
from .sources import MeasurementSource
from .statistics import compute_statistics

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_YEARS = 2


class MetricReport(BaseModel):
    """Statistics and reconciliation result for one metric."""

    model_config = ConfigDict(frozen=True)

    metric: MetricType
    remote: StatisticsSummary
    local: StatisticsSummary
    missing: tuple[Entry, ...] = ()
    watermark: datetime | None = None
    remote_count: int = 0
    local_count: int = 0

    @classmethod
    def build(
        cls,
        metric: MetricType,
        remote_entries: Sequence[Entry],
        local_entries: Sequence[Entry],
    ) -> "MetricReport":
        """Summarize both sides of a metric and compute its missing entries."""
        return cls(
            metric=metric,
            remote=compute_statistics(remote_entries),
            local=compute_statistics(local_entries),
            missing=tuple(find_missing(remote_entries, local_entries)),
            watermark=high_watermark(local_entries),
            remote_count=len(remote_entries),
            local_count=len(local_entries),
        )


class SyncReport(BaseModel):
    """Combined result of a successful sync run."""

    model_config = ConfigDict(frozen=True)

    date_range: DateRange
    weight: MetricReport
    body_fat: MetricReport
    generated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def remote_weight(self) -> StatisticsSummary:
        return self.weight.remote

    @property
    def local_weight(self) -> StatisticsSummary:
        return self.weight.local

    @property
    def remote_body_fat(self) -> StatisticsSummary:
        return self.body_fat.remote

    @property
    def local_body_fat(self) -> StatisticsSummary:
        return self.body_fat.local

    @property
    def missing_weight(self) -> tuple[Entry, ...]:
        return self.weight.missing

    @property
    def missing_body_fat(self) -> tuple[Entry, ...]:
        return self.body_fat.missing

    def metrics(self) -> list[MetricReport]:
        return [self.weight, self.body_fat]

    def to_dict(self) -> dict:
        """Convert to a JSON-compatible dictionary."""
        return self.model_dump(mode="json")


class SyncOrchestrator:
    """
    Runs the four fetches of a sync and bundles the results.

    All-or-nothing: if any fetch fails the run raises SyncError and no
    partial report is produced. The orchestrator keeps no state between
    runs, so overlapping sync_all() calls are independent.
    """

    def __init__(
        self,
        remote: MeasurementSource,
        local: MeasurementSource,
        date_range: DateRange | None = None,
        history_years: int = DEFAULT_HISTORY_YEARS,
    ):
        """
        Initialize orchestrator.

        Args:
            remote: Third-party provider source
            local: Local health-data store source
            date_range: Fixed range to fetch (defaults to the last
                `history_years` years, evaluated on every run)
            history_years: Years of history used when no range is given
        """
        self.remote = remote
        self.local = local
        self.date_range = date_range
        self.history_years = history_years

    def _source(self, side: SourceSide) -> MeasurementSource:
        return self.remote if side is SourceSide.REMOTE else self.local

    async def _fetch(
        self,
        side: SourceSide,
        metric: MetricType,
        date_range: DateRange,
    ) -> list[Entry]:
        source = self._source(side)
        logger.debug("Fetching %s %s from %s", side.value, metric.value, source.name)

        try:
            entries = await source.fetch(metric, date_range)
        except Exception as e:
            logger.warning(
                "Fetching %s %s from %s failed: %s", side.value, metric.value, source.name, e
            )
            raise SyncError(side, metric, e) from e

        logger.info("Fetched %d %s entries from %s", len(entries), metric.value, source.name)
        return list(entries)

    async def sync_all(self) -> SyncReport:
        """
        Fetch both metrics from both sources and build the report.

        Returns:
            SyncReport with per-source statistics and missing entries

        Raises:
            SyncError: On the first failed fetch; the others are cancelled
        """
        date_range = self.date_range or DateRange.last_years(self.history_years)
        jobs = [(side, metric) for metric in MetricType for side in SourceSide]

        tasks = {
            job: asyncio.create_task(
                self._fetch(*job, date_range),
                name=f"fetch-{job[0].value}-{job[1].value}",
            )
            for job in jobs
        }

        try:
            await asyncio.gather(*tasks.values())
        except (SyncError, asyncio.CancelledError):
            for task in tasks.values():
                task.cancel()
            # Let cancelled fetches unwind before propagating
            await asyncio.gather(*tasks.values(), return_exceptions=True)
            raise

        results = {job: task.result() for job, task in tasks.items()}

        reports = {
            metric: MetricReport.build(
                metric,
                results[(SourceSide.REMOTE, metric)],
                results[(SourceSide.LOCAL, metric)],
            )
            for metric in MetricType
        }

        for report in reports.values():
            logger.info(
                "%s: %d remote, %d local, %d missing",
                report.metric.value,
                report.remote_count,
                report.local_count,
                len(report.missing),
            )

        return SyncReport(
            date_range=date_range,
            weight=reports[MetricType.WEIGHT],
            body_fat=reports[MetricType.BODY_FAT],
        )
