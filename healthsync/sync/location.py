"""Location fixes for sync cycles.

Before each collection pass the scheduler asks the host for a fresh fix and
polls for it briefly (one-second interval, five attempts by default).  A
cycle never blocks on location: if no fix arrives it proceeds without
coordinates.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Iterable

from healthsync.sync.base import LocationFix, LocationSource, MeasurementSnapshot

logger = logging.getLogger("healthsync.sync.location")


class PushedLocationSource(LocationSource):
    """Location source fed by the host pushing fixes to us.

    ``request_update`` only counts requests; the host bridge delivers fixes
    through ``push``.
    """

    def __init__(self) -> None:
        self._fix: LocationFix | None = None
        self.update_requests = 0

    def request_update(self) -> None:
        self.update_requests += 1

    def last_fix(self) -> LocationFix | None:
        return self._fix

    def push(self, fix: LocationFix) -> None:
        if self._fix is not None and fix.timestamp < self._fix.timestamp:
            logger.debug("Ignoring out-of-order location fix from %s", fix.timestamp)
            return
        self._fix = fix
        logger.debug("Location fix: %.5f, %.5f", fix.latitude, fix.longitude)


def _is_fresh(fix: LocationFix | None, now: datetime, max_age: timedelta) -> bool:
    return fix is not None and abs(now - fix.timestamp) <= max_age


async def wait_for_location_fix(
    source: LocationSource,
    clock: Callable[[], datetime],
    max_age_seconds: float = 60.0,
    attempts: int = 5,
    interval_seconds: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> LocationFix | None:
    """Wait a bounded time for a fix no older than ``max_age_seconds``.

    Args:
        source:           Host location source.
        clock:            Returns the current instant.
        max_age_seconds:  Freshness window for an acceptable fix.
        attempts:         How many times to poll before giving up.
        interval_seconds: Delay between polls.
        sleep:            Awaitable sleep (injected by tests).

    Returns:
        A fresh LocationFix, or None if none arrived in time.
    """
    max_age = timedelta(seconds=max_age_seconds)
    fix = source.last_fix()
    if _is_fresh(fix, clock(), max_age):
        return fix

    source.request_update()
    for attempt in range(1, attempts + 1):
        await sleep(interval_seconds)
        fix = source.last_fix()
        if _is_fresh(fix, clock(), max_age):
            logger.debug("Location fix after %d poll(s)", attempt)
            return fix

    logger.info("No fresh location fix after %d attempts; continuing without", attempts)
    return None


def attach_location(
    snapshots: Iterable[MeasurementSnapshot],
    fix: LocationFix | None,
    max_age_seconds: float = 60.0,
) -> list[MeasurementSnapshot]:
    """Return snapshots with the fix's coordinates applied where it applies.

    Only snapshots within ``max_age_seconds`` of the fix that do not already
    carry coordinates are updated.  Backfilled minutes far from the fix keep
    empty coordinates rather than a stale position.
    """
    if fix is None:
        return list(snapshots)
    window = timedelta(seconds=max_age_seconds)
    result = []
    for snap in snapshots:
        if not snap.has_location and abs(snap.timestamp - fix.timestamp) <= window:
            snap = snap.with_location(fix.latitude, fix.longitude)
        result.append(snap)
    return result
