"""Summary statistics over entry collections."""

from collections.abc import Iterable

from .schema import DatedValue, Entry, StatisticsSummary


def compute_statistics(entries: Iterable[Entry]) -> StatisticsSummary:
    """
    Compute first, last and average over a collection of entries.

    Input order does not matter. `first` and `last` come from a stable sort
    by timestamp, so among entries sharing the earliest (or latest) timestamp
    the one appearing first (or last) in the input wins. The average is an
    unweighted mean summed in input order.

    Args:
        entries: Any finite collection of entries, possibly empty or unsorted

    Returns:
        StatisticsSummary, all-None for empty input
    """
    items = list(entries)
    if not items:
        return StatisticsSummary()

    ordered = sorted(items, key=lambda e: e.timestamp)
    total = sum(e.value for e in items)

    return StatisticsSummary(
        first=DatedValue.from_entry(ordered[0]),
        last=DatedValue.from_entry(ordered[-1]),
        average=total / len(items),
    )
