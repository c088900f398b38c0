from __future__ import annotations

import json
from typing import Any
from uuid import UUID

import httpx

from app.errors import StorageError
from app.models.domain import VideoJob
from app.storage.repository import JobStore

# Job fields that have a column in the ``videos`` table
COLUMN_MAP = {
    "origin_id": "manifest_id",
    "status": "status",
    "progress": "progress",
    "progress_label": "progress_label",
    "video_url": "video_url",
    "metadata": "storage_metadata",
}


class SupabaseJobStore(JobStore):
    """Job records persisted through Supabase's PostgREST interface."""

    def __init__(
        self,
        api_url: str | None,
        api_key: str | None,
        table: str = "videos",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_url = (api_url or "").rstrip("/")
        self.api_key = (api_key or "").strip()
        self.table = table
        self.timeout = timeout
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.api_url and self.api_key)

    def upsert(self, job_id: UUID, fields: dict[str, Any]) -> None:
        row = {"id": str(job_id), **self._to_row(fields)}
        self._request(
            "POST",
            f"/rest/v1/{self.table}",
            json_body=[row],
            prefer="resolution=merge-duplicates,return=minimal",
        )

    def update(self, job_id: UUID, fields: dict[str, Any]) -> None:
        row = self._to_row(fields)
        if not row:
            return
        self._request(
            "PATCH",
            f"/rest/v1/{self.table}",
            params={"id": f"eq.{job_id}"},
            json_body=row,
            prefer="return=minimal",
        )

    def get(self, job_id: UUID) -> VideoJob | None:
        response = self._request(
            "GET",
            f"/rest/v1/{self.table}",
            params={"id": f"eq.{job_id}", "select": "*"},
        )
        rows = response.json() or []
        if not rows:
            return None
        return self._from_row(rows[0])

    def link_artifact(self, origin_id: str, video_url: str) -> None:
        response = self._request(
            "GET",
            "/rest/v1/video_manifests",
            params={"id": f"eq.{origin_id}", "select": "analysis_id"},
        )
        rows = response.json() or []
        analysis_id = rows[0].get("analysis_id") if rows else None
        if not analysis_id:
            raise StorageError(f"no analysis linked to manifest {origin_id}")
        self._request(
            "PATCH",
            "/rest/v1/artifacts",
            params={"analysis_id": f"eq.{analysis_id}"},
            json_body={"video_url": video_url, "video_status": "completed"},
            prefer="return=minimal",
        )

    def _to_row(self, fields: dict[str, Any]) -> dict[str, Any]:
        row: dict[str, Any] = {}
        for field, column in COLUMN_MAP.items():
            if field not in fields:
                continue
            value = fields[field]
            row[column] = value.value if hasattr(value, "value") else value
        if row.get("status") == "completed":
            row["isReady"] = True
        return row

    def _from_row(self, row: dict[str, Any]) -> VideoJob:
        payload: dict[str, Any] = {"id": row["id"]}
        for field, column in COLUMN_MAP.items():
            if row.get(column) is not None:
                payload[field] = row[column]
        status = payload.get("status")
        if status in ("completed", "failed"):
            payload["stage"] = status
        return VideoJob.model_validate(payload)

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json_body: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        if not self.is_configured():
            raise StorageError("Supabase job store is not configured")
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        content = json.dumps(json_body, default=str) if json_body is not None else None
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.request(
                    method,
                    f"{self.api_url}{path}",
                    params=params,
                    content=content,
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            raise StorageError(f"Supabase request failed: {exc}") from exc
        if response.status_code >= 400:
            raise StorageError(f"Supabase request failed: {response.status_code} {response.text}")
        return response
