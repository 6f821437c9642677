"""Interface every measurement source implements."""

from abc import ABC, abstractmethod

from .schema import DateRange, Entry, MetricType


class MeasurementSource(ABC):
    """
    Abstract base class for weight/body-fat providers.

    A remote API connector and a local health store both implement this, so
    the orchestrator can treat them the same way.

    Required implementations:
    - name - label used in logs and errors
    - fetch_weight() - weight entries in kilograms
    - fetch_body_fat() - body-fat entries in percentage points
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the source label."""
        ...

    @abstractmethod
    async def fetch_weight(self, date_range: DateRange) -> list[Entry]:
        """
        Fetch weight entries within a date range.

        Args:
            date_range: Inclusive calendar-day range

        Returns:
            Entries in any order

        Raises:
            SourceError: If the fetch fails
        """
        ...

    @abstractmethod
    async def fetch_body_fat(self, date_range: DateRange) -> list[Entry]:
        """Fetch body-fat entries within a date range."""
        ...

    async def fetch(self, metric: MetricType, date_range: DateRange) -> list[Entry]:
        """Fetch entries for the given metric."""
        if metric is MetricType.WEIGHT:
            return await self.fetch_weight(date_range)
        if metric is MetricType.BODY_FAT:
            return await self.fetch_body_fat(date_range)
        raise ValueError(f"Unsupported metric: {metric}")
