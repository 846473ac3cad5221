"""HealthSync host bridge: FastAPI application entry point.

The device shell talks to this process over loopback: it starts and stops
syncing, reports lock/unlock notifications and pushes location fixes.

Run locally:
    uvicorn healthsync.main:app --port 8765
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from healthsync.config import Settings, get_settings
from healthsync.middleware.bridge_auth import BridgeAuthMiddleware
from healthsync.routers import health, projects, sync
from healthsync.services.runtime import close_runtime, init_runtime

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("healthsync")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks."""
    settings: Settings = app.state.settings
    logging.getLogger("healthsync").setLevel(settings.log_level.upper())
    logger.info(
        "Starting HealthSync bridge v%s [%s]",
        settings.app_version,
        settings.environment,
    )
    await init_runtime(settings)
    yield
    await close_runtime()
    logger.info("HealthSync bridge shut down")


# ---------- App factory ----------

def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="HealthSync Bridge",
        description=(
            "Local control surface for the background health data sync: "
            "lifecycle, lock notifications, location fixes and status."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # ---------- Middleware (order matters, outermost first) ----------

    # Shared-secret bridge token
    app.add_middleware(BridgeAuthMiddleware, settings=settings)

    # CORS must be the innermost middleware so it can handle preflight
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------- Health check (outside v1 prefix, always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    v1_prefix = "/api/v1"

    app.include_router(projects.router, prefix=v1_prefix)
    app.include_router(sync.router, prefix=v1_prefix)

    return app


app = create_app()
