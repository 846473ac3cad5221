"""Periodic background sync engine for HealthSync.

Modules:
    base      — Snapshot / batch models and collaborator interfaces
    backfill  — Per-minute backlog planning between the watermark and now
    state     — Durable watermark + last-project store
    scheduler — Catch-up-then-tick scheduler with lock awareness
    grant     — Host background execution grants
    location  — Bounded wait for a location fix
    catalog   — Measurement catalog (measurement_catalog.yaml)
"""

from healthsync.sync.backfill import plan_backfill
from healthsync.sync.base import (
    MeasurementSnapshot,
    MeasurementSource,
    ProjectContext,
    SyncBatch,
    UploadClient,
    UserProfile,
)
from healthsync.sync.scheduler import CycleOutcome, CycleResult, SchedulerState, SyncScheduler
from healthsync.sync.state import JsonFileSyncStateStore, SyncState, SyncStateStore

__all__ = [
    "plan_backfill",
    "MeasurementSnapshot",
    "MeasurementSource",
    "ProjectContext",
    "SyncBatch",
    "UploadClient",
    "UserProfile",
    "CycleOutcome",
    "CycleResult",
    "SchedulerState",
    "SyncScheduler",
    "JsonFileSyncStateStore",
    "SyncState",
    "SyncStateStore",
]
