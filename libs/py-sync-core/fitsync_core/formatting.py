"""Display formatting for measurement values and dates."""

from datetime import date, datetime

from .schema import MetricType


def format_weight(weight: float) -> str:
    return f"{weight:.1f}"


def format_body_fat(fat: float) -> str:
    return f"{fat:.1f}%"


def format_value(metric: MetricType, value: float) -> str:
    """Format a value the way its metric is displayed."""
    if metric is MetricType.BODY_FAT:
        return format_body_fat(value)
    return format_weight(value)


def format_date(value: date | datetime) -> str:
    """Medium date style, e.g. 'Jan 5, 2024'."""
    return f"{value:%b} {value.day}, {value.year}"
