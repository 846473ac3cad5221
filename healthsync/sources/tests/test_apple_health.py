"""Tests for the Apple Health export source."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from healthsync.sources.apple_health import AppleHealthExportSource, parse_export_datetime
from healthsync.sources.tests.conftest import T0
from healthsync.sync.catalog import MeasurementCatalog


class TestParseExportDatetime:
    def test_apple_format(self) -> None:
        parsed = parse_export_datetime("2024-01-15 08:30:00 -0800")
        assert parsed == datetime(2024, 1, 15, 16, 30, tzinfo=timezone.utc)

    def test_iso_format_with_z(self) -> None:
        parsed = parse_export_datetime("2024-01-15T10:00:00Z")
        assert parsed == T0

    def test_garbage_is_none(self) -> None:
        assert parse_export_datetime("last tuesday") is None
        assert parse_export_datetime(None) is None
        assert parse_export_datetime("") is None


class TestXmlExport:
    def test_loads_known_records(
        self, export_xml_bytes: bytes, measurement_catalog: MeasurementCatalog
    ) -> None:
        source = AppleHealthExportSource.from_xml(export_xml_bytes, measurement_catalog)
        # 2 step counts, 1 heart rate, 1 body mass; bad value and sleep skipped
        assert source.sample_count == 4
        assert source.fields() == ["step_count", "heart_rate", "weight"]

    @pytest.mark.asyncio
    async def test_snapshot_uses_end_date(
        self, export_xml_bytes: bytes, measurement_catalog: MeasurementCatalog
    ) -> None:
        source = AppleHealthExportSource.from_xml(export_xml_bytes, measurement_catalog)

        at_ten = await source.snapshot(T0)
        assert at_ten.step_count == 112
        assert at_ten.heart_rate is None  # 20 minutes old, beyond the 15-minute bound
        assert at_ten.weight == pytest.approx(68.4)

        later = await source.snapshot(T0 + timedelta(minutes=2))
        assert later.step_count == 87

    def test_malformed_xml_raises(self, measurement_catalog: MeasurementCatalog) -> None:
        with pytest.raises(ValueError, match="Invalid Apple Health XML"):
            AppleHealthExportSource.from_xml(b"<HealthData><Record", measurement_catalog)


class TestJsonExport:
    def test_loads_known_metrics(
        self, export_json_path: Path, measurement_catalog: MeasurementCatalog
    ) -> None:
        source = AppleHealthExportSource.from_json(
            json.loads(export_json_path.read_text()), measurement_catalog
        )
        assert source.sample_count == 3
        assert source.fields() == ["step_count", "heart_rate"]

    @pytest.mark.asyncio
    async def test_snapshot_from_json(
        self, export_json_path: Path, measurement_catalog: MeasurementCatalog
    ) -> None:
        source = AppleHealthExportSource.from_file(export_json_path, measurement_catalog)
        snap = await source.snapshot(T0)
        assert snap.heart_rate == 61
        assert snap.step_count == 40

    def test_rejects_non_object(self, measurement_catalog: MeasurementCatalog) -> None:
        with pytest.raises(ValueError):
            AppleHealthExportSource(measurement_catalog).load_json([1, 2, 3])  # type: ignore[arg-type]


class TestFromFile:
    def test_xml_by_extension(self, tmp_path: Path, export_xml_bytes: bytes) -> None:
        path = tmp_path / "export.xml"
        path.write_bytes(export_xml_bytes)
        assert AppleHealthExportSource.from_file(path).sample_count == 4
