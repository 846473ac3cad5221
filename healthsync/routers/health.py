"""Health check endpoint. Public, no auth required."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from healthsync.config import get_settings
from healthsync.services.runtime import get_scheduler

router = APIRouter(tags=["system"])
logger = logging.getLogger("healthsync.health")


@router.get("/health")
async def health_check() -> dict:
    """Liveness probe. Returns 200 if the bridge process is up.

    Also reports the scheduler state so the host can tell whether syncing
    is running, suspended, or was never started.
    """
    settings = get_settings()
    scheduler_state = None
    running = False
    try:
        scheduler = get_scheduler()
        scheduler_state = scheduler.state.value
        running = scheduler.running
    except RuntimeError as exc:
        logger.warning("Health check scheduler probe failed: %s", exc)

    return {
        "status": "healthy" if scheduler_state is not None else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "scheduler": scheduler_state or "unavailable",
        "running": running,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
