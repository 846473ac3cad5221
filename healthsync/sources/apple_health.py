"""Apple Health export source for HealthSync.

Builds a measurement source from data exported out of the platform health
store:

1. **XML export**: Apple Health's native ``export.xml`` (``<Record>`` elements)
2. **JSON export**: the per-metric format written by apps such as Health Auto
   Export (``{"heartRate": [{"date": "...", "qty": 61}], ...}``)

Record types are mapped to snapshot fields through the measurement catalog;
anything the catalog does not know is ignored.  A sample becomes visible at
its end date, which is when the health store itself would report it.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from xml.etree import ElementTree as ET

from healthsync.sources.base import SampleSeriesSource
from healthsync.sync.catalog import MeasurementCatalog

logger = logging.getLogger("healthsync.sources.apple_health")

# Apple writes dates as "2024-01-15 08:30:00 -0800"
_EXPORT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S %z"


def parse_export_datetime(value: str | None) -> datetime | None:
    """Parse an Apple Health export date, falling back to ISO-8601.

    Returns None for empty or unparseable values.
    """
    if not value:
        return None
    value = value.strip()
    try:
        return datetime.strptime(value, _EXPORT_DATE_FORMAT)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Could not parse export date: %r", value)
        return None


def _safe_float(value: object) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class AppleHealthExportSource(SampleSeriesSource):
    """Measurement source populated from an Apple Health export."""

    SOURCE_ID = "apple_health"

    # ------------------------------------------------------------------
    # XML export
    # ------------------------------------------------------------------

    def load_xml(self, xml_bytes: bytes) -> int:
        """Parse an Apple Health ``export.xml`` and add its samples.

        Args:
            xml_bytes: Contents of export.xml.

        Returns:
            Number of samples added.

        Raises:
            ValueError: If the document is not well-formed XML.
        """
        try:
            root = ET.fromstring(xml_bytes)
        except ET.ParseError as exc:
            logger.error("Apple Health XML parse error: %s", exc)
            raise ValueError(f"Invalid Apple Health XML: {exc}") from exc

        added = 0
        skipped = 0
        for record in root.findall("Record"):
            field_name = self._catalog.field_for_hk_type(record.get("type", ""))
            if field_name is None:
                continue
            at = parse_export_datetime(record.get("endDate") or record.get("startDate"))
            value = _safe_float(record.get("value"))
            if at is None or value is None:
                skipped += 1
                continue
            self.add_sample(field_name, at, value)
            added += 1

        logger.info(
            "Apple Health XML: loaded %d samples across %d kinds (%d skipped)",
            added, len(self.fields()), skipped,
        )
        return added

    @classmethod
    def from_xml(
        cls, xml_bytes: bytes, catalog: MeasurementCatalog | None = None
    ) -> "AppleHealthExportSource":
        source = cls(catalog)
        source.load_xml(xml_bytes)
        return source

    # ------------------------------------------------------------------
    # JSON export
    # ------------------------------------------------------------------

    def load_json(self, json_data: dict) -> int:
        """Add samples from a per-metric JSON export.

        The expected format is::

            {
                "heartRate": [{"date": "2024-01-15 08:30:00 -0800", "qty": 61}],
                "stepCount": [{"endDate": "...", "value": 120}],
                ...
            }

        Keys are matched against the catalog's ``json_keys``; records may
        use ``endDate``/``date``/``startDate`` and ``qty``/``value``.

        Returns:
            Number of samples added.
        """
        if not isinstance(json_data, dict):
            raise ValueError("Apple Health JSON export must be an object")
        if isinstance(json_data.get("data"), dict):
            json_data = json_data["data"]

        added = 0
        for key, records in json_data.items():
            field_name = self._catalog.field_for_json_key(key)
            if field_name is None or not isinstance(records, list):
                continue
            for record in records:
                if not isinstance(record, dict):
                    continue
                at = parse_export_datetime(
                    record.get("endDate") or record.get("date") or record.get("startDate")
                )
                value = _safe_float(record.get("qty", record.get("value")))
                if at is None or value is None:
                    continue
                self.add_sample(field_name, at, value)
                added += 1

        logger.info("Apple Health JSON: loaded %d samples", added)
        return added

    @classmethod
    def from_json(
        cls, json_data: dict, catalog: MeasurementCatalog | None = None
    ) -> "AppleHealthExportSource":
        source = cls(catalog)
        source.load_json(json_data)
        return source

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    @classmethod
    def from_file(
        cls, path: str | Path, catalog: MeasurementCatalog | None = None
    ) -> "AppleHealthExportSource":
        """Load an export file, choosing the parser from its extension."""
        path = Path(path)
        if path.suffix.lower() == ".json":
            return cls.from_json(json.loads(path.read_text(encoding="utf-8")), catalog)
        return cls.from_xml(path.read_bytes(), catalog)
