"""Canonical schema for weight and body-fat measurements."""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class MetricType(str, Enum):
    """Supported measurement streams."""

    WEIGHT = "weight"
    BODY_FAT = "body_fat"

    @property
    def label(self) -> str:
        """Human readable name."""
        return "Weight" if self is MetricType.WEIGHT else "Body Fat"

    @property
    def unit(self) -> str:
        """Unit the values of this metric are stored in."""
        return "kg" if self is MetricType.WEIGHT else "%"


class SourceSide(str, Enum):
    """Which side of a reconciliation a collection came from."""

    REMOTE = "remote"
    LOCAL = "local"


class Entry(BaseModel):
    """
    One dated measurement.

    This is the canonical model every source is normalized to. Weight values
    are kilograms, body-fat values are percentage points (0-100), never a raw
    fraction. Entries are immutable and compare by value.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(
        ...,
        description="Time of the measurement (timezone-aware)",
    )
    value: float = Field(
        ...,
        description="Measured value in the metric's unit",
        ge=0,
        allow_inf_nan=False,
    )
    provenance: str | None = Field(
        None,
        description="Label of the originating source (e.g. 'Fitbit' or a device name)",
    )

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_timestamp(cls, v: Any) -> datetime:
        """Parse timestamp from datetimes, dates or strings."""
        if isinstance(v, datetime):
            dt = v
        elif isinstance(v, date):
            dt = datetime(v.year, v.month, v.day)
        elif isinstance(v, str):
            from dateutil import parser

            dt = parser.parse(v)
        else:
            raise ValueError(f"Invalid timestamp format: {v}")

        # Naive timestamps are taken as UTC so every entry is comparable
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt

    @property
    def day(self) -> date:
        """Calendar day of the measurement, in the timestamp's own timezone."""
        return self.timestamp.date()


class DatedValue(BaseModel):
    """A (value, timestamp) pair taken from a single entry."""

    model_config = ConfigDict(frozen=True)

    value: float
    timestamp: datetime

    @classmethod
    def from_entry(cls, entry: Entry) -> "DatedValue":
        return cls(value=entry.value, timestamp=entry.timestamp)


class StatisticsSummary(BaseModel):
    """
    First/last/average over a collection of entries.

    Derived data, never persisted. All three fields are either present or
    absent together; they are absent exactly when the input was empty.
    """

    model_config = ConfigDict(frozen=True)

    first: DatedValue | None = None
    last: DatedValue | None = None
    average: float | None = None

    @model_validator(mode="after")
    def check_all_or_nothing(self) -> "StatisticsSummary":
        present = [f is not None for f in (self.first, self.last, self.average)]
        if any(present) and not all(present):
            raise ValueError("first, last and average must be all set or all unset")
        return self

    @property
    def is_empty(self) -> bool:
        return self.first is None


class DateRange(BaseModel):
    """Inclusive range of calendar days to fetch."""

    model_config = ConfigDict(frozen=True)

    start: date
    end: date

    @model_validator(mode="after")
    def check_order(self) -> "DateRange":
        if self.start > self.end:
            raise ValueError(f"start {self.start} is after end {self.end}")
        return self

    @classmethod
    def last_years(cls, years: int = 2, today: date | None = None) -> "DateRange":
        """
        Range ending today and starting the same calendar day `years` back.

        Args:
            years: Number of years of history
            today: Override for the end date (defaults to date.today())

        Returns:
            DateRange
        """
        end = today or date.today()
        try:
            start = end.replace(year=end.year - years)
        except ValueError:
            # Feb 29 in a non-leap target year
            start = end.replace(year=end.year - years, day=28)
        return cls(start=start, end=end)

    def contains(self, day: date) -> bool:
        """Check whether a calendar day falls inside the range."""
        return self.start <= day <= self.end
