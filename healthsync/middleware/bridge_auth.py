"""Shared-secret bearer token check for the host bridge.

When ``bridge_token`` is configured, every request (except public routes and
CORS preflight) must carry ``Authorization: Bearer <bridge_token>``.  With no
token configured the bridge is open, which is only sensible on loopback.
"""

from __future__ import annotations

import hmac
import logging
from typing import Any

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from healthsync.config import Settings, get_settings

logger = logging.getLogger("healthsync.auth")

# Paths that do not require authentication
PUBLIC_PATHS: set[str] = {
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
}


def _is_public(path: str) -> bool:
    return path in PUBLIC_PATHS or path.startswith("/docs") or path.startswith("/redoc")


def _unauthorized(detail: str) -> Response:
    return Response(
        content=f'{{"detail":"{detail}"}}',
        status_code=401,
        media_type="application/json",
    )


class BridgeAuthMiddleware(BaseHTTPMiddleware):
    """Reject bridge calls that do not present the configured token."""

    def __init__(self, app: Any, settings: Settings | None = None) -> None:
        super().__init__(app)
        self._token = (settings or get_settings()).bridge_token

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not self._token or _is_public(request.url.path):
            return await call_next(request)

        # OPTIONS requests pass through (CORS preflight)
        if request.method == "OPTIONS":
            return await call_next(request)

        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return _unauthorized("Missing or invalid Authorization header")

        token = auth_header.removeprefix("Bearer ").strip()
        if not hmac.compare_digest(token.encode(), self._token.encode()):
            logger.warning("Rejected bridge call to %s: bad token", request.url.path)
            return _unauthorized("Invalid token")

        return await call_next(request)
