"""Apple Health export reader.

Apple does not expose HealthKit off-device, so the local health store is read
from the `export.xml` file produced by Health > Export All Health Data.

Relevant records look like:

    <Record type="HKQuantityTypeIdentifierBodyMass" sourceName="Withings"
            unit="kg" startDate="2024-01-05 07:30:00 -0500" value="80.2"/>
    <Record type="HKQuantityTypeIdentifierBodyFatPercentage" sourceName="Withings"
            unit="%" startDate="2024-01-05 07:30:00 -0500" value="0.215"/>

Body fat is exported as a fraction and converted to percentage points here.
"""

import asyncio
import logging
from pathlib import Path
from xml.etree import ElementTree as ET

from dateutil import parser as date_parser

from fitsync_core.schema import DateRange, Entry, MetricType
from fitsync_core.sources import MeasurementSource

from .exceptions import HealthStoreError

logger = logging.getLogger(__name__)

_HK_BODY_MASS = "HKQuantityTypeIdentifierBodyMass"
_HK_BODY_FAT = "HKQuantityTypeIdentifierBodyFatPercentage"

_RECORD_TYPES: dict[MetricType, str] = {
    MetricType.WEIGHT: _HK_BODY_MASS,
    MetricType.BODY_FAT: _HK_BODY_FAT,
}

# Multipliers to kilograms
_MASS_UNITS: dict[str, float] = {
    "kg": 1.0,
    "g": 0.001,
    "lb": 0.45359237,
    "st": 6.35029318,
}


class AppleHealthExportSource(MeasurementSource):
    """
    Local health store backed by an Apple Health XML export.

    Weight and body fat are read in a single pass over the file; the result
    is reused by the other metric's fetch as long as the file and the date
    range are unchanged.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()
        self._lock = asyncio.Lock()
        self._cache: tuple[tuple[DateRange, int], dict[MetricType, list[Entry]]] | None = None

    @property
    def name(self) -> str:
        return "apple_health"

    async def fetch_weight(self, date_range: DateRange) -> list[Entry]:
        return await self._fetch_cached(MetricType.WEIGHT, date_range)

    async def fetch_body_fat(self, date_range: DateRange) -> list[Entry]:
        return await self._fetch_cached(MetricType.BODY_FAT, date_range)

    async def _fetch_cached(self, metric: MetricType, date_range: DateRange) -> list[Entry]:
        async with self._lock:
            key = (date_range, self._mtime_ns())
            if self._cache is None or self._cache[0] != key:
                entries = await asyncio.to_thread(self.read_all, date_range)
                self._cache = (key, entries)
            return list(self._cache[1][metric])

    def _mtime_ns(self) -> int:
        try:
            return self.path.stat().st_mtime_ns
        except OSError:
            # read_all reports the missing file
            return -1

    def read(self, metric: MetricType, date_range: DateRange) -> list[Entry]:
        """Read entries of one metric from the export, synchronously."""
        return self.read_all(date_range)[metric]

    def read_all(self, date_range: DateRange) -> dict[MetricType, list[Entry]]:
        """
        Read weight and body-fat entries from the export in one pass.

        Finished top-level elements are cleared from the tree as parsing
        goes, so memory stays flat regardless of the export size.

        Args:
            date_range: Only records whose calendar day falls inside are kept

        Returns:
            Entries per metric, in file order

        Raises:
            HealthStoreError: If the file is missing or not valid XML
        """
        metrics = {record_type: metric for metric, record_type in _RECORD_TYPES.items()}
        entries: dict[MetricType, list[Entry]] = {metric: [] for metric in MetricType}
        skipped = 0

        try:
            root = None
            depth = 0
            for event, elem in ET.iterparse(self.path, events=("start", "end")):
                if event == "start":
                    if root is None:
                        root = elem
                    depth += 1
                    continue

                depth -= 1
                if elem.tag == "Record" and elem.get("type") in metrics:
                    metric = metrics[elem.get("type")]
                    entry = self._parse_record(metric, elem)
                    if entry is None:
                        skipped += 1
                    elif date_range.contains(entry.day):
                        entries[metric].append(entry)

                if depth == 1:
                    root.clear()
        except FileNotFoundError as e:
            raise HealthStoreError(
                f"Apple Health export not found: {self.path}",
                source=self.name,
            ) from e
        except ET.ParseError as e:
            raise HealthStoreError(
                f"Failed to parse Apple Health export {self.path}: {e}",
                source=self.name,
            ) from e
        except OSError as e:
            raise HealthStoreError(
                f"Failed to read Apple Health export {self.path}: {e}",
                source=self.name,
            ) from e

        if skipped:
            logger.warning("Skipped %d malformed records in %s", skipped, self.path)
        for metric, metric_entries in entries.items():
            logger.info("Fetched %d %s entries from Apple Health export", len(metric_entries), metric.value)
        return entries

    def _parse_record(self, metric: MetricType, elem: ET.Element) -> Entry | None:
        """Convert one <Record> into an Entry, or None if it is malformed."""
        try:
            timestamp = date_parser.parse(elem.get("startDate", ""))
            value = float(elem.get("value", ""))
            unit = elem.get("unit", "")

            if metric is MetricType.WEIGHT:
                if unit not in _MASS_UNITS:
                    logger.debug("Unsupported body mass unit %r", unit)
                    return None
                value *= _MASS_UNITS[unit]
            else:
                # Stored as a fraction (0.0 to 1.0)
                value *= 100

            return Entry(
                timestamp=timestamp,
                value=value,
                provenance=elem.get("sourceName"),
            )
        except (TypeError, ValueError, OverflowError):
            return None
