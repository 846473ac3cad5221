"""HTTP client for the project-scoped health data backend.

Implements the UploadClient interface over httpx.  Endpoints used:

    GET  /api/v1/projects                          — Project catalogue
    POST /api/v1/projects/{projectId}/health-data  — Batch upload

Any non-2xx status or transport error during upload raises UploadError; the
scheduler treats all of them the same way (retry next tick).
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from healthsync.models.wire import BatchHealthData, Project, parse_project_list
from healthsync.sync.base import SyncBatch, UploadClient, UploadError

logger = logging.getLogger("healthsync.api")


class ApiError(Exception):
    """A non-upload backend call failed."""


class HealthDataApiClient(UploadClient):
    """Backend client used for batch uploads and project listing."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 30.0,
        auth_token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url:        Backend root, e.g. ``http://127.0.0.1:8080``.
            timeout_seconds: Per-request timeout.
            auth_token:      Optional bearer token sent with every request.
            http_client:     Optional pre-configured httpx client (for testing).
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout_seconds)
        self._auth_token = auth_token
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def base_url(self) -> str:
        return self._base_url

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._auth_token:
            headers["Authorization"] = f"Bearer {self._auth_token}"
        return headers

    async def aclose(self) -> None:
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    # ------------------------------------------------------------------
    # UploadClient interface
    # ------------------------------------------------------------------

    async def send(self, batch: SyncBatch) -> None:
        """Upload one batch.

        Raises:
            UploadError: On transport errors and non-2xx responses.
        """
        url = f"{self._base_url}/api/v1/projects/{batch.project_id}/health-data"
        payload = BatchHealthData.from_batch(batch).to_payload()
        logger.debug(
            "POST %s (%d measurements, %s → %s)",
            url, len(batch), batch.first_timestamp, batch.last_timestamp,
        )
        try:
            response = await self._client().post(url, json=payload, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise UploadError(
                f"Backend rejected batch for project {batch.project_id}: "
                f"HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise UploadError(f"Upload transport error: {exc}") from exc
        logger.info(
            "Uploaded %d measurements for project %s", len(batch), batch.project_id
        )

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def fetch_projects(self) -> list[Project]:
        """Return the backend's project catalogue.

        Raises:
            ApiError: On transport errors, non-200 responses, or non-JSON bodies.
        """
        url = f"{self._base_url}/api/v1/projects"
        try:
            response = await self._client().get(url, headers=self._headers())
        except httpx.HTTPError as exc:
            raise ApiError(f"Could not reach backend: {exc}") from exc
        if response.status_code != 200:
            raise ApiError(f"Project listing failed: HTTP {response.status_code}")
        try:
            data: Any = response.json()
        except ValueError as exc:
            raise ApiError("Project listing returned invalid JSON") from exc

        projects = parse_project_list(data)
        logger.info("Fetched %d project(s)", len(projects))
        return projects
