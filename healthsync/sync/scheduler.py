"""Periodic background sync scheduler.

Owns the "catch up, then tick forever" protocol:

1. Read the watermark from the SyncStateStore
2. Plan the per-minute backlog with ``plan_backfill``
3. Collect one snapshot per planned minute from the MeasurementSource
4. Upload the whole batch through the UploadClient
5. Advance the watermark only after the upload *and* the write succeed
6. Re-arm after a fixed delay, or suspend while the device is locked

States::

    IDLE ──start──▶ SYNCING ──done──▶ ARMED_WAITING ──tick──▶ SYNCING
                       │                   │
                       └──────lock─────────┴──▶ SUSPENDED ──unlock──▶ SYNCING

``stop()`` returns to IDLE from anywhere.  Lock/unlock and stop must be
called from the event loop thread.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable

from healthsync.sync.backfill import plan_backfill
from healthsync.sync.base import (
    LocationFix,
    LocationSource,
    MeasurementSnapshot,
    MeasurementSource,
    MissingProjectError,
    ProjectContextSource,
    SchedulerStateError,
    StatePersistenceError,
    SyncBatch,
    UploadClient,
    UploadError,
)
from healthsync.sync.grant import ExecutionGrant, GrantScope, UnlimitedExecutionGrant
from healthsync.sync.location import attach_location, wait_for_location_fix
from healthsync.sync.state import SyncStateStore

logger = logging.getLogger("healthsync.sync.scheduler")

DEFAULT_INTERVAL_SECONDS = 60.0
DEFAULT_MAX_BATCH_SNAPSHOTS = 1440  # one day of minutes


def local_now() -> datetime:
    """Current local time, timezone-aware."""
    return datetime.now().astimezone()


class SchedulerState(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    ARMED_WAITING = "armed_waiting"
    SUSPENDED = "suspended"


class CycleOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"      # nothing planned (less than a minute since the watermark)
    ABANDONED = "abandoned"  # locked or stopped before the upload
    EXPIRED = "expired"      # background grant ran out


@dataclass
class CycleResult:
    """Result of a single sync pass.

    Attributes:
        outcome:     How the cycle ended.
        started_at:  When the cycle began.
        finished_at: When the cycle ended.
        project_id:  Project the cycle ran for (None if unknown).
        planned:     Number of timestamps the planner produced.
        sent:        Number of snapshots delivered (0 unless succeeded).
        watermark:   Watermark after the cycle.
        error:       Error message for failed / abandoned / expired cycles.
    """

    outcome: CycleOutcome
    started_at: datetime
    finished_at: datetime | None = None
    project_id: int | None = None
    planned: int = 0
    sent: int = 0
    watermark: datetime | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is CycleOutcome.SUCCEEDED


@dataclass
class SyncEvent:
    """Diagnostic event delivered to listeners."""

    kind: str  # 'state' | 'cycle' | 'lock' | 'unlock'
    state: SchedulerState
    at: datetime
    result: CycleResult | None = None


@dataclass
class SchedulerStatus:
    """Point-in-time view of the scheduler for polling clients."""

    state: SchedulerState
    running: bool
    locked: bool
    project_id: int | None
    watermark: datetime | None
    interval_seconds: float
    cycles: int = 0
    failures: int = 0
    last_result: CycleResult | None = None
    last_success_at: datetime | None = None
    history: list[CycleOutcome] = field(default_factory=list)


class SyncScheduler:
    """Explicit, injectable replacement for a process-wide sync manager.

    Usage::

        scheduler = SyncScheduler(
            source=AppleHealthExportSource.from_file(path),
            uploader=HealthDataApiClient(base_url),
            store=JsonFileSyncStateStore(".healthsync_state.json"),
            context_source=StaticContextSource(profile),
        )
        first = await scheduler.start(project_id=42)
        ...
        scheduler.lock()      # device locked
        scheduler.unlock()    # device unlocked, catch up immediately
        await scheduler.stop()
    """

    HISTORY_SIZE = 20

    def __init__(
        self,
        source: MeasurementSource,
        uploader: UploadClient,
        store: SyncStateStore,
        context_source: ProjectContextSource,
        *,
        location_source: LocationSource | None = None,
        grant: ExecutionGrant | None = None,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        snapshot_timeout_seconds: float = 10.0,
        location_poll_attempts: int = 5,
        location_poll_interval_seconds: float = 1.0,
        location_max_age_seconds: float = 60.0,
        max_batch_snapshots: int = DEFAULT_MAX_BATCH_SNAPSHOTS,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the scheduler.

        Args:
            source:                 Measurement snapshots per timestamp.
            uploader:               Batch delivery to the backend.
            store:                  Watermark + project persistence.
            context_source:         ProjectContext lookup, once per cycle.
            location_source:        Optional host geolocation.
            grant:                  Background execution grant (unlimited by default).
            interval_seconds:       Delay between the end of one cycle and the next.
            snapshot_timeout_seconds: Per-timestamp source timeout.
            location_poll_attempts: Polls for a fresh location fix.
            location_poll_interval_seconds: Delay between location polls.
            location_max_age_seconds: Freshness window for a location fix.
            max_batch_snapshots:    Upper bound on snapshots per upload.  A longer
                                    backlog is delivered over several cycles.
            clock:                  Returns "now" (timezone-aware).
            sleep:                  Awaitable sleep used for location polling.
        """
        if interval_seconds < 0:
            raise ValueError("interval_seconds must not be negative")
        if max_batch_snapshots < 2:
            # Each plan starts at the watermark itself, so one slot never advances it
            raise ValueError("max_batch_snapshots must be at least 2")
        self._source = source
        self._uploader = uploader
        self._store = store
        self._context_source = context_source
        self._location_source = location_source
        self._grant = grant or UnlimitedExecutionGrant()
        self._interval = interval_seconds
        self._snapshot_timeout = snapshot_timeout_seconds
        self._location_attempts = location_poll_attempts
        self._location_interval = location_poll_interval_seconds
        self._location_max_age = location_max_age_seconds
        self._max_batch = max_batch_snapshots
        self._clock = clock or local_now
        self._sleep = sleep

        self._state = SchedulerState.IDLE
        self._running = False
        self._locked = False
        self._project_id: int | None = None
        self._watermark: datetime | None = None

        self._wakeup = asyncio.Event()
        self._loop_task: asyncio.Task | None = None
        self._cycle_task: asyncio.Task | None = None
        self._cancel_reason: str | None = None

        self._listeners: list[Callable[[SyncEvent], None]] = []
        self._last_result: CycleResult | None = None
        self._last_success_at: datetime | None = None
        self._history: list[CycleOutcome] = []
        self._cycles = 0
        self._failures = 0

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def running(self) -> bool:
        return self._running

    @property
    def locked(self) -> bool:
        return self._locked

    def add_listener(self, callback: Callable[[SyncEvent], None]) -> None:
        """Register a callback for state changes and cycle results."""
        self._listeners.append(callback)

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            state=self._state,
            running=self._running,
            locked=self._locked,
            project_id=self._project_id,
            watermark=self._watermark,
            interval_seconds=self._interval,
            cycles=self._cycles,
            failures=self._failures,
            last_result=self._last_result,
            last_success_at=self._last_success_at,
            history=list(self._history),
        )

    def _emit(self, kind: str, result: CycleResult | None = None) -> None:
        event = SyncEvent(kind=kind, state=self._state, at=self._clock(), result=result)
        for callback in list(self._listeners):
            try:
                callback(event)
            except Exception:
                logger.exception("Sync event listener failed for %s event", kind)

    def _set_state(self, new_state: SchedulerState) -> None:
        if new_state is self._state:
            return
        logger.debug("Scheduler state %s → %s", self._state.value, new_state.value)
        self._state = new_state
        self._emit("state")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def start(self, project_id: int | None = None) -> CycleResult | None:
        """Start syncing: run the initial cycle now, then tick forever.

        Args:
            project_id: Project to sync for.  Defaults to the stored last project.

        Returns:
            The initial cycle's result (the registration outcome shown to the
            user), or None if the device is locked and the scheduler starts
            suspended.

        Raises:
            SchedulerStateError: If the scheduler is already running.
        """
        if self._running:
            raise SchedulerStateError("Scheduler is already running")
        self._running = True
        if project_id is not None:
            self._project_id = project_id
        self._refresh_watermark()
        logger.info(
            "Starting sync scheduler (project=%s, interval=%.0fs)",
            self._project_id, self._interval,
        )

        result: CycleResult | None = None
        if self._locked:
            self._set_state(SchedulerState.SUSPENDED)
        else:
            result = await self._run_cycle()

        if self._running:
            wait_first = result is not None and not self._retry_now(result)
            self._loop_task = asyncio.create_task(
                self._run_loop(wait_first), name="healthsync-sync-loop"
            )
        return result

    async def stop(self) -> None:
        """Stop syncing: cancel the timer, abandon any cycle, release the grant."""
        if not self._running and self._loop_task is None:
            self._set_state(SchedulerState.IDLE)
            return
        logger.info("Stopping sync scheduler")
        self._running = False
        self._wakeup.set()
        cycle = self._cycle_task
        if cycle is not None and not cycle.done():
            self._cancel_reason = "stopped"
            cycle.cancel()

        task, self._loop_task = self._loop_task, None
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        elif cycle is not None:
            # Initial cycle still owned by start()
            await asyncio.gather(cycle, return_exceptions=True)
        self._set_state(SchedulerState.IDLE)

    def lock(self) -> None:
        """Host notification: protected data is no longer accessible.

        Any pending timer is cancelled.  An in-flight upload may finish and
        commit, but nothing new is armed until ``unlock()``.
        """
        if self._locked:
            return
        self._locked = True
        logger.info("Device locked; suspending sync")
        self._wakeup.set()
        if self._running:
            self._set_state(SchedulerState.SUSPENDED)
        self._emit("lock")

    def unlock(self) -> None:
        """Host notification: protected data is accessible again.

        A started scheduler leaves SUSPENDED and catches up immediately.
        """
        if not self._locked:
            return
        self._locked = False
        logger.info("Device unlocked")
        self._wakeup.set()
        self._emit("unlock")

    async def run_cycle(self) -> CycleResult:
        """Run one sync pass immediately, outside the periodic loop.

        Raises:
            SchedulerStateError: If the loop is running or a cycle is in progress.
        """
        if self._running:
            raise SchedulerStateError("Scheduler is running; cycles are driven by its timer")
        result = await self._run_cycle()
        if not self._running:
            self._set_state(SchedulerState.IDLE)
        return result

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _run_loop(self, wait_first: bool = True) -> None:
        try:
            while self._running:
                if self._locked:
                    self._set_state(SchedulerState.SUSPENDED)
                    self._wakeup.clear()
                    await self._wakeup.wait()
                    wait_first = False
                    continue

                if wait_first:
                    self._set_state(SchedulerState.ARMED_WAITING)
                    await self._wait_for_tick()
                    if not self._running or self._locked:
                        continue

                result = await self._run_cycle()
                wait_first = not self._retry_now(result)
        except Exception:
            logger.exception("Sync loop crashed")
            self._running = False
            self._set_state(SchedulerState.IDLE)
            raise
        logger.debug("Sync loop exited")

    def _retry_now(self, result: CycleResult) -> bool:
        """True when a lock abandoned the cycle and an unlock already followed."""
        return (
            result.outcome is CycleOutcome.ABANDONED
            and self._running
            and not self._locked
        )

    async def _wait_for_tick(self) -> None:
        """Sleep for one interval; return early only on lock or stop."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._interval
        while self._running and not self._locked:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return
            self._wakeup.clear()
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                return

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def _run_cycle(self) -> CycleResult:
        if self._cycle_task is not None:
            raise SchedulerStateError("A sync cycle is already in progress")

        started = self._clock()
        if not self._locked:
            self._set_state(SchedulerState.SYNCING)

        scope = GrantScope(self._grant)
        task = asyncio.create_task(self._sync_pass(started))
        self._cycle_task = task
        self._cancel_reason = None

        def _on_expire() -> None:
            self._cancel_reason = "expired"
            task.cancel()

        scope.begin(_on_expire)
        try:
            result = await task
        except asyncio.CancelledError:
            if self._cancel_reason is None:
                raise
            outcome = (
                CycleOutcome.EXPIRED
                if self._cancel_reason == "expired"
                else CycleOutcome.ABANDONED
            )
            result = self._result(
                outcome, started, error=f"Cycle {self._cancel_reason} before completion"
            )
        finally:
            scope.release()
            self._cycle_task = None

        self._record(result)
        return result

    async def _sync_pass(self, started: datetime) -> CycleResult:
        if self._locked:
            return self._result(CycleOutcome.ABANDONED, started, error="Device locked")

        try:
            stored = self._store.get()
        except Exception as exc:
            err = exc if isinstance(exc, StatePersistenceError) else StatePersistenceError(str(exc))
            return self._result(CycleOutcome.FAILED, started, error=str(err))

        project_id = self._project_id if self._project_id is not None else stored.project_id
        if project_id is None:
            err = MissingProjectError("No project selected; start with a project id")
            return self._result(CycleOutcome.FAILED, started, error=str(err))
        self._project_id = project_id

        last_sync = stored.last_sync
        if stored.project_id is not None and stored.project_id != project_id:
            logger.info(
                "Project changed %s → %s; starting a fresh watermark",
                stored.project_id, project_id,
            )
            last_sync = None

        fix: LocationFix | None = None
        if self._location_source is not None:
            fix = await wait_for_location_fix(
                self._location_source,
                clock=self._clock,
                max_age_seconds=self._location_max_age,
                attempts=self._location_attempts,
                interval_seconds=self._location_interval,
                sleep=self._sleep,
            )

        try:
            context = await self._context_source.fetch(project_id)
        except Exception as exc:
            logger.warning("Could not fetch project context for %s: %s", project_id, exc)
            return self._result(CycleOutcome.FAILED, started, error=str(exc))

        now = self._clock()
        plan = plan_backfill(last_sync, now)
        if not plan:
            logger.debug("Nothing to backfill (watermark %s, now %s)", last_sync, now)
            return self._result(CycleOutcome.SKIPPED, started)
        if len(plan) > self._max_batch:
            # Oldest minutes first; the rest follows on later ticks
            logger.info(
                "Backlog of %d minute(s); sending the oldest %d this cycle",
                len(plan), self._max_batch,
            )
            plan = plan[: self._max_batch]

        snapshots: list[MeasurementSnapshot] = []
        for ts in plan:
            if self._locked:
                return self._result(
                    CycleOutcome.ABANDONED, started, planned=len(plan),
                    error="Device locked during collection",
                )
            snapshots.append(await self._collect(ts))
        snapshots = attach_location(snapshots, fix, self._location_max_age)

        if self._locked:
            return self._result(
                CycleOutcome.ABANDONED, started, planned=len(plan),
                error="Device locked before upload",
            )

        batch = SyncBatch(context=context, snapshots=tuple(snapshots))
        logger.debug(
            "Uploading %d snapshot(s) %s → %s for project %s",
            len(batch), batch.first_timestamp, batch.last_timestamp, project_id,
        )
        try:
            await self._uploader.send(batch)
        except UploadError as exc:
            return self._result(CycleOutcome.FAILED, started, planned=len(plan), error=str(exc))
        except Exception as exc:
            logger.exception("Unexpected upload client error")
            return self._result(CycleOutcome.FAILED, started, planned=len(plan), error=str(exc))

        new_watermark = batch.last_timestamp
        if last_sync is not None and new_watermark < last_sync:
            new_watermark = last_sync
        try:
            self._store.set(new_watermark, project_id)
        except Exception as exc:
            err = exc if isinstance(exc, StatePersistenceError) else StatePersistenceError(str(exc))
            return self._result(CycleOutcome.FAILED, started, planned=len(plan), error=str(err))

        self._watermark = new_watermark
        return self._result(
            CycleOutcome.SUCCEEDED, started, planned=len(plan), sent=len(batch)
        )

    async def _collect(self, ts: datetime) -> MeasurementSnapshot:
        """Best-effort snapshot: any failure yields an all-empty record."""
        try:
            snap = await asyncio.wait_for(
                self._source.snapshot(ts), timeout=self._snapshot_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Measurement source timed out for %s", ts)
            return MeasurementSnapshot(timestamp=ts)
        except Exception as exc:
            logger.warning("Measurement source failed for %s: %s", ts, exc)
            return MeasurementSnapshot(timestamp=ts)
        if snap.timestamp != ts:
            snap = dataclasses.replace(snap, timestamp=ts)
        return snap

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _refresh_watermark(self) -> None:
        try:
            stored = self._store.get()
        except Exception as exc:
            logger.warning("Could not read sync state: %s", exc)
            return
        self._watermark = stored.last_sync
        if self._project_id is None:
            self._project_id = stored.project_id

    def _result(
        self,
        outcome: CycleOutcome,
        started: datetime,
        *,
        planned: int = 0,
        sent: int = 0,
        error: str | None = None,
    ) -> CycleResult:
        return CycleResult(
            outcome=outcome,
            started_at=started,
            finished_at=self._clock(),
            project_id=self._project_id,
            planned=planned,
            sent=sent,
            watermark=self._watermark,
            error=error,
        )

    def _record(self, result: CycleResult) -> None:
        self._cycles += 1
        self._last_result = result
        self._history = (self._history + [result.outcome])[-self.HISTORY_SIZE:]
        if result.succeeded:
            self._last_success_at = result.finished_at
            logger.info(
                "Sync cycle succeeded: %d snapshot(s), watermark=%s",
                result.sent, result.watermark,
            )
        elif result.outcome is CycleOutcome.SKIPPED:
            logger.debug("Sync cycle skipped: nothing new to send")
        else:
            if result.outcome is CycleOutcome.FAILED:
                self._failures += 1
            logger.warning(
                "Sync cycle %s: %s (watermark stays %s)",
                result.outcome.value, result.error, result.watermark,
            )
        self._emit("cycle", result)
