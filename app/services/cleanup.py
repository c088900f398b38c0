from __future__ import annotations

import logging
import os
import shutil
from typing import Dict, List, Optional
from uuid import UUID

from app.clients.s3_storage import ObjectStore
from app.errors import CleanupError


class CleanupManager:
    """Scope owning every temporary resource a single job creates.

    Use as a context manager around the whole job. On exit, regardless of how
    the block ends, the rendered file, local narration files and uploaded
    narration objects are released. Each step is independent of the others.
    """

    def __init__(self, job_id: UUID, object_store: ObjectStore, logger: Optional[logging.Logger] = None) -> None:
        self.job_id = job_id
        self.object_store = object_store
        self.log = logger or logging.getLogger(__name__)
        self.artifact_path: str | None = None
        self.local_files: List[str] = []
        self.local_dirs: List[str] = []
        self.remote_objects: Dict[str, List[str]] = {}
        self._released = False

    def __enter__(self) -> "CleanupManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.release()
        return False

    def track_artifact(self, path: str) -> None:
        self.artifact_path = path

    def track_local_file(self, path: str) -> None:
        self.local_files.append(path)

    def track_local_dir(self, path: str) -> None:
        self.local_dirs.append(path)

    def track_remote_object(self, bucket: str, name: str) -> None:
        self.remote_objects.setdefault(bucket, []).append(name)

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self.log.info("starting cleanup", extra={"job_id": str(self.job_id)})
        if self.artifact_path:
            self._delete_local(self.artifact_path, "rendered video")
        for path in self.local_files:
            self._delete_local(path, "narration audio")
        for path in self.local_dirs:
            self._delete_dir(path)
        for bucket, names in self.remote_objects.items():
            if not names:
                continue
            try:
                self.object_store.remove(bucket, names)
            except Exception as exc:
                self.log.warning(
                    "remote cleanup failed",
                    extra={"job_id": str(self.job_id), "bucket": bucket, "objects": len(names)},
                    exc_info=CleanupError(str(exc)),
                )
            else:
                self.log.info(
                    "deleted remote objects",
                    extra={"job_id": str(self.job_id), "bucket": bucket, "objects": len(names)},
                )

    def _delete_local(self, path: str, kind: str) -> None:
        if not os.path.exists(path):
            return
        try:
            os.remove(path)
        except OSError as exc:
            self.log.warning(
                "local cleanup failed",
                extra={"job_id": str(self.job_id), "kind": kind, "path": path},
                exc_info=CleanupError(str(exc)),
            )

    def _delete_dir(self, path: str) -> None:
        if not os.path.isdir(path):
            return
        try:
            shutil.rmtree(path)
        except OSError as exc:
            self.log.warning(
                "local directory cleanup failed",
                extra={"job_id": str(self.job_id), "path": path},
                exc_info=CleanupError(str(exc)),
            )

