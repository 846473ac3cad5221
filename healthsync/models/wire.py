"""Backend wire format: batch upload payload and project listing.

Upload body::

    {
        "userInfo": {"userId": "...", "projectId": 42, "provider": "apple", ...},
        "measurements": [
            {"timestamp": "2024-01-15T10:00:00", "stepCount": 12.0, "heartRate": null, ...},
            ...
        ]
    }

Timestamps are local wall-clock time without an offset, which is what the
backend expects.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

from pydantic import Field, ValidationError

from healthsync.models.base import WireBase
from healthsync.sync.base import MeasurementSnapshot, SyncBatch

logger = logging.getLogger("healthsync.models.wire")

WIRE_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"


def format_wire_timestamp(ts: datetime) -> str:
    """Render ``ts`` as local time, ``YYYY-MM-DDTHH:MM:SS``."""
    if ts.tzinfo is not None:
        ts = ts.astimezone()
    return ts.strftime(WIRE_TIMESTAMP_FORMAT)


# ---------- Upload payload ----------

class UserInfo(WireBase):
    user_id: str
    project_id: int
    provider: str = "apple"
    gender: str | None = None
    birth_date: date | None = None


class TimestampedMeasurement(WireBase):
    timestamp: str
    step_count: float | None = None
    heart_rate: float | None = None
    blood_pressure_systolic: float | None = None
    blood_pressure_diastolic: float | None = None
    oxygen_saturation: float | None = None
    body_temperature: float | None = None
    respiratory_rate: float | None = None
    height: float | None = None
    weight: float | None = None
    running_speed: float | None = None
    active_energy: float | None = None
    basal_energy: float | None = None
    latitude: float | None = None
    longitude: float | None = None

    @classmethod
    def from_snapshot(cls, snapshot: MeasurementSnapshot) -> "TimestampedMeasurement":
        return cls(timestamp=format_wire_timestamp(snapshot.timestamp), **snapshot.values())


class BatchHealthData(WireBase):
    user_info: UserInfo
    measurements: list[TimestampedMeasurement]

    @classmethod
    def from_batch(cls, batch: SyncBatch) -> "BatchHealthData":
        profile = batch.context.profile
        return cls(
            user_info=UserInfo(
                user_id=profile.user_id,
                project_id=batch.project_id,
                provider=profile.provider,
                gender=profile.gender,
                birth_date=profile.birth_date,
            ),
            measurements=[TimestampedMeasurement.from_snapshot(s) for s in batch.snapshots],
        )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ---------- Projects ----------

class Project(WireBase):
    id: int = Field(alias="projectId")
    project_name: str
    description: str = ""
    created_at: str = ""


def parse_project_list(payload: Any) -> list[Project]:
    """Extract projects from the backend's ``{"projects": ...}`` response.

    The backend serialises the list with Java type information, i.e.
    ``["java.util.ArrayList", [{...}, {...}]]``.  A plain list of project
    objects is accepted too.  Anything else yields an empty list; malformed
    entries are skipped.
    """
    items = payload.get("projects") if isinstance(payload, dict) else payload
    if not isinstance(items, list) or not items:
        return []

    if isinstance(items[0], str):
        # Java-typed form: [type_name, [projects...]]
        if len(items) < 2 or not isinstance(items[1], list):
            return []
        items = items[1]

    projects: list[Project] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            projects.append(Project.model_validate(item))
        except ValidationError as exc:
            logger.warning("Skipping malformed project entry %r: %s", item, exc)
    return projects
