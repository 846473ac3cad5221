"""Pydantic schemas for the host bridge sync endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from healthsync.models.base import HealthSyncBase
from healthsync.sync.scheduler import CycleOutcome, SchedulerState


# ---------- Commands ----------

class StartSyncRequest(HealthSyncBase):
    project_id: int | None = Field(default=None, gt=0)


class LocationFixCreate(HealthSyncBase):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy_m: float | None = Field(default=None, ge=0)
    timestamp: datetime | None = None


# ---------- Reads ----------

class CycleResultRead(HealthSyncBase):
    outcome: CycleOutcome
    started_at: datetime
    finished_at: datetime | None = None
    project_id: int | None = None
    planned: int = 0
    sent: int = 0
    watermark: datetime | None = None
    error: str | None = None


class StartSyncResponse(HealthSyncBase):
    """Outcome of the initial registration cycle (None when started locked)."""

    locked: bool = False
    result: CycleResultRead | None = None


class SchedulerStatusRead(HealthSyncBase):
    state: SchedulerState
    running: bool
    locked: bool
    project_id: int | None = None
    watermark: datetime | None = None
    interval_seconds: float
    cycles: int = 0
    failures: int = 0
    last_result: CycleResultRead | None = None
    last_success_at: datetime | None = None
    history: list[CycleOutcome] = Field(default_factory=list)


class ProjectRead(HealthSyncBase):
    id: int
    project_name: str
    description: str = ""
    created_at: str = ""
