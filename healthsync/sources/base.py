"""In-memory sample series backing the concrete measurement sources.

A ``SampleSeriesSource`` keeps one time-ordered series per snapshot field.
``snapshot(at)`` answers "what was the most recent value of each kind at
``at``", honouring the catalog's per-kind staleness bound.  Samples recorded
after ``at`` are never visible.
"""

from __future__ import annotations

import bisect
import logging
from datetime import datetime
from typing import Iterable

from healthsync.sync.base import MEASUREMENT_FIELDS, MeasurementSnapshot, MeasurementSource
from healthsync.sync.catalog import MeasurementCatalog, get_measurement_catalog

logger = logging.getLogger("healthsync.sources")


def as_aware(value: datetime) -> datetime:
    """Interpret naive datetimes as local time."""
    return value if value.tzinfo is not None else value.astimezone()


class SampleSeriesSource(MeasurementSource):
    """Measurement source over per-field sample series held in memory."""

    SOURCE_ID = "samples"

    def __init__(self, catalog: MeasurementCatalog | None = None) -> None:
        self._catalog = catalog or get_measurement_catalog()
        self._times: dict[str, list[datetime]] = {}
        self._values: dict[str, list[float]] = {}

    @property
    def sample_count(self) -> int:
        return sum(len(v) for v in self._values.values())

    def fields(self) -> list[str]:
        """Fields that have at least one sample."""
        return [f for f in MEASUREMENT_FIELDS if self._times.get(f)]

    def add_sample(self, field_name: str, at: datetime, value: float) -> None:
        """Insert one sample, keeping the series sorted by time.

        Raises:
            KeyError: If ``field_name`` is not a snapshot measurement field.
        """
        if field_name not in MEASUREMENT_FIELDS:
            raise KeyError(f"Unknown measurement field '{field_name}'")
        at = as_aware(at)
        times = self._times.setdefault(field_name, [])
        values = self._values.setdefault(field_name, [])
        idx = bisect.bisect_right(times, at)
        times.insert(idx, at)
        values.insert(idx, float(value))

    def extend(self, samples: Iterable[tuple[str, datetime, float]]) -> int:
        """Insert many ``(field, at, value)`` samples; returns how many were added."""
        count = 0
        for field_name, at, value in samples:
            self.add_sample(field_name, at, value)
            count += 1
        return count

    def latest(self, field_name: str, at: datetime) -> float | None:
        """Most recent value of ``field_name`` at or before ``at``, if fresh enough."""
        times = self._times.get(field_name)
        if not times:
            return None
        at = as_aware(at)
        idx = bisect.bisect_right(times, at) - 1
        if idx < 0:
            return None
        max_age = self._catalog.max_age(field_name)
        if max_age is not None and at - times[idx] > max_age:
            return None
        return self._values[field_name][idx]

    async def snapshot(self, at: datetime) -> MeasurementSnapshot:
        values = {f: self.latest(f, at) for f in MEASUREMENT_FIELDS}
        return MeasurementSnapshot(timestamp=at, **values)
