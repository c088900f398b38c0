from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from app.clients.s3_storage import ObjectStore
from app.errors import PublishError
from app.storage.repository import JobStore


@dataclass
class PublishResult:
    video_url: str
    uploaded: bool


class ArtifactPublisher:
    def __init__(
        self,
        object_store: ObjectStore,
        store: JobStore,
        bucket: str,
        public_host: str,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.object_store = object_store
        self.store = store
        self.bucket = bucket
        self.public_host = public_host.rstrip("/")
        self.log = logger or logging.getLogger(__name__)

    def local_url(self, job_id: UUID) -> str:
        return f"{self.public_host}/videos/{job_id}.mp4"

    def publish(self, job_id: UUID, local_path: str, origin_id: str | None = None) -> PublishResult:
        file_name = f"{job_id}.mp4"
        try:
            with open(local_path, "rb") as video:
                url = self.object_store.upload(self.bucket, file_name, video, "video/mp4")
            result = PublishResult(video_url=url, uploaded=True)
        except Exception as exc:
            result = PublishResult(video_url=self.local_url(job_id), uploaded=False)
            self.log.warning(
                "video upload failed, using local url",
                extra={"job_id": str(job_id), "video_url": result.video_url},
                exc_info=PublishError(str(exc)),
            )
        if origin_id:
            self._link(job_id, origin_id, result.video_url)
        return result

    def _link(self, job_id: UUID, origin_id: str, video_url: str) -> None:
        try:
            self.store.link_artifact(origin_id, video_url)
        except Exception:
            self.log.warning(
                "artifact sync failed",
                extra={"job_id": str(job_id), "origin_id": origin_id},
                exc_info=True,
            )
