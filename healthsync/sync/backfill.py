"""Backfill planning for the periodic sync engine.

When the host suspends the process (device locked, app backgrounded) the
scheduler simply stops ticking.  On the next tick the gap between the stored
watermark and "now" is treated as a backlog and reconstructed at one-minute
granularity rather than skipped.

Usage::

    plan = plan_backfill(last_sync=watermark, now=datetime.now().astimezone())
    for ts in plan:
        snapshot = await source.snapshot(ts)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

logger = logging.getLogger("healthsync.sync.backfill")

BACKFILL_STEP = timedelta(minutes=1)


def gap_minutes(last_sync: datetime, now: datetime) -> int:
    """Return the whole number of minutes from ``last_sync`` to ``now``.

    Floors towards negative infinity, so a clock that moved backwards yields
    a negative gap.
    """
    return (now - last_sync) // BACKFILL_STEP


def plan_backfill(last_sync: datetime | None, now: datetime) -> list[datetime]:
    """Compute the timestamps that need a snapshot this tick.

    This is a pure function: identical inputs always give identical output.

    Args:
        last_sync: Stored watermark, or None if nothing was ever delivered.
        now:       The current instant, captured once by the caller.

    Returns:
        Timestamps in ascending order, one minute apart.  ``[now]`` on the
        first run; ``[last_sync, last_sync + 1min, ..., last_sync + N min]``
        (both ends inclusive) when N whole minutes have elapsed; empty when
        less than a minute has elapsed or the clock went backwards.  No
        timestamp is ever later than ``now``.
    """
    if last_sync is None:
        return [now]

    minutes = gap_minutes(last_sync, now)
    if minutes <= 0:
        return []

    plan = [last_sync + BACKFILL_STEP * i for i in range(minutes + 1)]
    plan = [ts for ts in plan if ts <= now]
    logger.debug(
        "Backfill plan: %d timestamps from %s to %s", len(plan), plan[0], plan[-1]
    )
    return plan
