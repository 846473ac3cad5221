"""Host bridge for the sync scheduler: start/stop, lock notifications, location."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException

from healthsync.dependencies import LocationInbox, Scheduler
from healthsync.models.base import ErrorDetail
from healthsync.models.sync import (
    CycleResultRead,
    LocationFixCreate,
    SchedulerStatusRead,
    StartSyncRequest,
    StartSyncResponse,
)
from healthsync.sync.base import LocationFix, SchedulerStateError
from healthsync.sync.scheduler import local_now

router = APIRouter(prefix="/sync", tags=["sync"])


def _status(scheduler: Scheduler) -> SchedulerStatusRead:
    return SchedulerStatusRead.model_validate(scheduler.status())


# ---------- Lifecycle ----------

@router.post("/start", response_model=StartSyncResponse, responses={409: {"model": ErrorDetail}})
async def start_sync(scheduler: Scheduler, body: StartSyncRequest | None = None) -> Any:
    """Start periodic syncing and return the initial cycle's outcome."""
    project_id = body.project_id if body else None
    try:
        result = await scheduler.start(project_id=project_id)
    except SchedulerStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return StartSyncResponse(
        locked=scheduler.locked,
        result=CycleResultRead.model_validate(result) if result is not None else None,
    )


@router.post("/stop", response_model=SchedulerStatusRead)
async def stop_sync(scheduler: Scheduler) -> Any:
    await scheduler.stop()
    return _status(scheduler)


@router.get("/status", response_model=SchedulerStatusRead)
async def sync_status(scheduler: Scheduler) -> Any:
    return _status(scheduler)


# ---------- Lock notifications ----------

@router.post("/lock", response_model=SchedulerStatusRead)
async def device_locked(scheduler: Scheduler) -> Any:
    scheduler.lock()
    return _status(scheduler)


@router.post("/unlock", response_model=SchedulerStatusRead)
async def device_unlocked(scheduler: Scheduler) -> Any:
    scheduler.unlock()
    return _status(scheduler)


# ---------- Location ----------

@router.post("/location", status_code=202)
async def push_location(inbox: LocationInbox, body: LocationFixCreate) -> dict:
    """Record a location fix reported by the host."""
    ts = body.timestamp or local_now()
    if ts.tzinfo is None:
        ts = ts.astimezone()
    fix = LocationFix(
        latitude=body.latitude,
        longitude=body.longitude,
        timestamp=ts,
        accuracy_m=body.accuracy_m,
    )
    inbox.push(fix)
    return {"accepted": True, "timestamp": ts.isoformat()}
