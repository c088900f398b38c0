from __future__ import annotations

from datetime import datetime
from threading import Lock
from typing import Any, Dict, List
from uuid import UUID

from app.errors import StorageError
from app.models.domain import VideoJob


class JobStore:
    def upsert(self, job_id: UUID, fields: dict[str, Any]) -> None: ...  # pragma: no cover

    def update(self, job_id: UUID, fields: dict[str, Any]) -> None: ...  # pragma: no cover

    def get(self, job_id: UUID) -> VideoJob | None: ...  # pragma: no cover

    def link_artifact(self, origin_id: str, video_url: str) -> None: ...  # pragma: no cover


class InMemoryJobStore(JobStore):
    def __init__(self) -> None:
        self._jobs: Dict[UUID, VideoJob] = {}
        self._artifacts: Dict[str, dict[str, Any]] = {}
        self._lock = Lock()

    def upsert(self, job_id: UUID, fields: dict[str, Any]) -> None:
        with self._lock:
            existing = self._jobs.get(job_id)
            if existing is None:
                self._jobs[job_id] = VideoJob.model_validate({**fields, "id": job_id})
            else:
                self._jobs[job_id] = self._apply(existing, fields)

    def update(self, job_id: UUID, fields: dict[str, Any]) -> None:
        with self._lock:
            existing = self._jobs.get(job_id)
            if existing is None:
                raise StorageError(f"job {job_id} not found")
            self._jobs[job_id] = self._apply(existing, fields)

    def get(self, job_id: UUID) -> VideoJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def list(self) -> List[VideoJob]:
        with self._lock:
            return [job.model_copy(deep=True) for job in self._jobs.values()]

    def link_artifact(self, origin_id: str, video_url: str) -> None:
        with self._lock:
            self._artifacts[origin_id] = {"video_url": video_url, "video_status": "completed"}

    def artifact(self, origin_id: str) -> dict[str, Any] | None:
        with self._lock:
            record = self._artifacts.get(origin_id)
            return dict(record) if record else None

    def _apply(self, job: VideoJob, fields: dict[str, Any]) -> VideoJob:
        payload = job.model_dump()
        payload.update(fields)
        payload["updated_at"] = datetime.utcnow()
        return VideoJob.model_validate(payload)
