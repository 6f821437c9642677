"""Tests for the Apple Health export reader."""

import asyncio
import os
from datetime import date, timedelta
from unittest.mock import patch

import pytest

from fitsync_cloud_connector.exceptions import HealthStoreError
from fitsync_cloud_connector.health_export import AppleHealthExportSource
from fitsync_core.schema import DateRange, MetricType

RANGE = DateRange(start=date(2024, 1, 1), end=date(2024, 12, 31))

EXPORT = """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE HealthData>
<HealthData locale="en_US">
 <ExportDate value="2024-06-01 09:00:00 -0500"/>
 <Me HKCharacteristicTypeIdentifierBiologicalSex="HKBiologicalSexNotSet"/>
 <Record type="HKQuantityTypeIdentifierBodyMass" sourceName="Withings" unit="kg" startDate="2024-01-05 07:30:00 -0500" endDate="2024-01-05 07:30:00 -0500" value="80.2"/>
 <Record type="HKQuantityTypeIdentifierBodyMass" sourceName="Health" unit="lb" startDate="2024-02-01 08:00:00 -0500" endDate="2024-02-01 08:00:00 -0500" value="176"/>
 <Record type="HKQuantityTypeIdentifierBodyMass" sourceName="Scale" unit="g" startDate="2024-03-01 08:00:00 -0500" endDate="2024-03-01 08:00:00 -0500" value="79500"/>
 <Record type="HKQuantityTypeIdentifierBodyMass" sourceName="Health" unit="st" startDate="2024-04-01 08:00:00 -0500" endDate="2024-04-01 08:00:00 -0500" value="12"/>
 <Record type="HKQuantityTypeIdentifierBodyMass" sourceName="Health" unit="kg" startDate="2023-12-31 08:00:00 -0500" endDate="2023-12-31 08:00:00 -0500" value="81.0"/>
 <Record type="HKQuantityTypeIdentifierBodyFatPercentage" sourceName="Withings" unit="%" startDate="2024-01-05 07:30:00 -0500" endDate="2024-01-05 07:30:00 -0500" value="0.215"/>
 <Record type="HKQuantityTypeIdentifierStepCount" sourceName="iPhone" unit="count" startDate="2024-01-05 07:30:00 -0500" endDate="2024-01-05 08:30:00 -0500" value="1200"/>
</HealthData>
"""


@pytest.fixture
def export_file(tmp_path):
    path = tmp_path / "export.xml"
    path.write_text(EXPORT, encoding="utf-8")
    return path


class TestAppleHealthExportSource:
    """Tests for AppleHealthExportSource."""

    def test_weight_units_converted_to_kg(self, export_file):
        entries = AppleHealthExportSource(export_file).read(MetricType.WEIGHT, RANGE)

        values = [round(e.value, 2) for e in entries]
        assert values == [80.2, 79.83, 79.5, 76.2]

    def test_body_fat_fraction_to_percent(self, export_file):
        entries = AppleHealthExportSource(export_file).read(MetricType.BODY_FAT, RANGE)

        assert len(entries) == 1
        assert entries[0].value == pytest.approx(21.5)

    def test_timestamps_and_provenance(self, export_file):
        entry = AppleHealthExportSource(export_file).read(MetricType.WEIGHT, RANGE)[0]

        assert entry.day == date(2024, 1, 5)
        assert entry.timestamp.hour == 7
        assert entry.timestamp.utcoffset() == timedelta(hours=-5)
        assert entry.provenance == "Withings"

    def test_range_filter(self, export_file):
        narrow = DateRange(start=date(2024, 1, 1), end=date(2024, 1, 31))

        entries = AppleHealthExportSource(export_file).read(MetricType.WEIGHT, narrow)

        assert [e.day for e in entries] == [date(2024, 1, 5)]

    def test_malformed_records_skipped(self, tmp_path):
        path = tmp_path / "export.xml"
        path.write_text(
            """<HealthData>
 <Record type="HKQuantityTypeIdentifierBodyMass" unit="kg" startDate="2024-01-05 07:30:00 -0500" value="80.2"/>
 <Record type="HKQuantityTypeIdentifierBodyMass" unit="kg" startDate="yesterday-ish" value="80.0"/>
 <Record type="HKQuantityTypeIdentifierBodyMass" unit="kg" startDate="2024-01-06 07:30:00 -0500" value="heavy"/>
 <Record type="HKQuantityTypeIdentifierBodyMass" unit="oz" startDate="2024-01-07 07:30:00 -0500" value="2800"/>
 <Record type="HKQuantityTypeIdentifierBodyMass" unit="kg" value="79.0"/>
</HealthData>""",
            encoding="utf-8",
        )

        entries = AppleHealthExportSource(path).read(MetricType.WEIGHT, RANGE)

        assert [e.value for e in entries] == [80.2]
        assert entries[0].provenance is None

    def test_missing_file(self, tmp_path):
        source = AppleHealthExportSource(tmp_path / "nope.xml")

        with pytest.raises(HealthStoreError) as exc_info:
            source.read(MetricType.WEIGHT, RANGE)

        assert exc_info.value.source == "apple_health"
        assert not exc_info.value.requires_reauthentication

    def test_invalid_xml(self, tmp_path):
        path = tmp_path / "export.xml"
        path.write_text("<HealthData><Record", encoding="utf-8")

        with pytest.raises(HealthStoreError):
            AppleHealthExportSource(path).read(MetricType.WEIGHT, RANGE)

    @pytest.mark.asyncio
    async def test_async_fetch(self, export_file):
        source = AppleHealthExportSource(export_file)

        weight = await source.fetch_weight(RANGE)
        body_fat = await source.fetch(MetricType.BODY_FAT, RANGE)

        assert len(weight) == 4
        assert len(body_fat) == 1
        assert source.name == "apple_health"


class TestSinglePass:
    """Tests for reading both metrics from one pass over the export."""

    @pytest.mark.asyncio
    async def test_concurrent_fetches_parse_once(self, export_file):
        source = AppleHealthExportSource(export_file)

        with patch.object(source, "read_all", wraps=source.read_all) as mock_read:
            weight, body_fat = await asyncio.gather(
                source.fetch_weight(RANGE),
                source.fetch_body_fat(RANGE),
            )

        assert mock_read.call_count == 1
        assert len(weight) == 4
        assert len(body_fat) == 1

    @pytest.mark.asyncio
    async def test_changed_range_reparses(self, export_file):
        source = AppleHealthExportSource(export_file)
        narrow = DateRange(start=date(2024, 1, 1), end=date(2024, 1, 31))

        with patch.object(source, "read_all", wraps=source.read_all) as mock_read:
            await source.fetch_weight(RANGE)
            narrowed = await source.fetch_weight(narrow)

        assert mock_read.call_count == 2
        assert len(narrowed) == 1

    @pytest.mark.asyncio
    async def test_rewritten_file_reparses(self, export_file):
        source = AppleHealthExportSource(export_file)
        assert len(await source.fetch_weight(RANGE)) == 4

        export_file.write_text("<HealthData></HealthData>", encoding="utf-8")
        stat = export_file.stat()
        os.utime(export_file, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))

        assert await source.fetch_weight(RANGE) == []

    @pytest.mark.asyncio
    async def test_returned_lists_are_independent(self, export_file):
        source = AppleHealthExportSource(export_file)

        first = await source.fetch_weight(RANGE)
        first.clear()

        assert len(await source.fetch_weight(RANGE)) == 4

    def test_records_after_large_unrelated_elements(self, tmp_path):
        workouts = "\n".join(
            f' <Workout workoutActivityType="HKWorkoutActivityTypeRunning" duration="{i}">'
            f'<WorkoutEvent type="HKWorkoutEventTypeSegment"/></Workout>'
            for i in range(500)
        )
        path = tmp_path / "export.xml"
        path.write_text(
            f"""<HealthData>
{workouts}
 <Correlation type="HKCorrelationTypeIdentifierBloodPressure">
  <Record type="HKQuantityTypeIdentifierBloodPressureSystolic" unit="mmHg" startDate="2024-01-04 07:30:00 -0500" value="120"/>
 </Correlation>
 <Record type="HKQuantityTypeIdentifierBodyMass" sourceName="Withings" unit="kg" startDate="2024-01-05 07:30:00 -0500" value="80.2">
  <MetadataEntry key="HKWasUserEntered" value="1"/>
 </Record>
 <ActivitySummary dateComponents="2024-01-05" activeEnergyBurned="400"/>
 <Record type="HKQuantityTypeIdentifierBodyFatPercentage" unit="%" startDate="2024-01-06 07:30:00 -0500" value="0.2"/>
</HealthData>""",
            encoding="utf-8",
        )

        entries = AppleHealthExportSource(path).read_all(RANGE)

        assert [e.value for e in entries[MetricType.WEIGHT]] == [80.2]
        assert [e.value for e in entries[MetricType.BODY_FAT]] == [pytest.approx(20.0)]
