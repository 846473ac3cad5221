"""Shared fixtures for measurement source tests."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from healthsync.sync.catalog import MeasurementCatalog, load_measurement_catalog

# Fixtures directory
FIXTURES_DIR = Path(__file__).parent / "fixtures"

T0 = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def measurement_catalog() -> MeasurementCatalog:
    return load_measurement_catalog()


@pytest.fixture
def export_xml_bytes() -> bytes:
    return (FIXTURES_DIR / "export_small.xml").read_bytes()


@pytest.fixture
def export_json_path() -> Path:
    return FIXTURES_DIR / "export_small.json"
