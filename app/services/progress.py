"""Monotonic, rate-limited job progress reporting.

Progress is split into fixed ranges per pipeline stage:

* 0-5: job accepted, project bundling
* 5-30: narration synthesis, linear in scenes processed
* 30-90: rendering, linear in the engine's reported fraction
* 90-95: artifact upload
* 95-100: finalization

Writes go to the job store; a failed write is logged and never fails the job.
"""

from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Any, Callable, Optional
from uuid import UUID

from app.events.publisher import JobEventPublisher
from app.models.domain import JobStage, JobStatus, can_transition
from app.storage.repository import JobStore

BUNDLING_START = 5
NARRATION_START = 5
NARRATION_END = 30
RENDER_START = 30
RENDER_END = 90
UPLOAD_START = 90
FINALIZE_START = 95
COMPLETE = 100


def narration_progress(done: int, total: int) -> int:
    if total <= 0:
        return NARRATION_END
    return NARRATION_START + round((NARRATION_END - NARRATION_START) * done / total)


def render_progress(fraction: float) -> int:
    fraction = min(1.0, max(0.0, fraction))
    return RENDER_START + round((RENDER_END - RENDER_START) * fraction)


class ProgressTracker:
    def __init__(
        self,
        job_id: UUID,
        store: JobStore,
        interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        events: Optional[JobEventPublisher] = None,
        stage: JobStage = JobStage.QUEUED,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.job_id = job_id
        self.store = store
        self.interval = interval
        self.clock = clock
        self.events = events
        self.stage = stage
        self.log = logger or logging.getLogger(__name__)
        self.last_progress = 0
        self._last_write: float | None = None
        self._lock = Lock()

    def advance(self, stage: JobStage, progress: int, label: str) -> None:
        with self._lock:
            self._transition(stage)
            fields: dict[str, Any] = {"stage": stage}
            self._write(self._with_progress(fields, progress, label))

    def report(self, progress: int, label: str) -> None:
        with self._lock:
            if progress < self.last_progress:
                return
            self._write(self._with_progress({}, progress, label))

    def report_throttled(self, progress: int, label: str) -> bool:
        """Write only if ``interval`` seconds passed since the last write."""
        with self._lock:
            if progress < self.last_progress:
                return False
            if self._last_write is not None and self.clock() - self._last_write < self.interval:
                return False
            self._write(self._with_progress({}, progress, label))
            return True

    def complete(self, label: str = "Finished", **fields: Any) -> None:
        with self._lock:
            self._transition(JobStage.COMPLETED)
            payload = {"status": JobStatus.COMPLETED, "stage": JobStage.COMPLETED, **fields}
            self._write(self._with_progress(payload, COMPLETE, label))

    def fail(self, error: str) -> None:
        with self._lock:
            if self.stage in (JobStage.COMPLETED, JobStage.FAILED):
                self.log.warning(
                    "ignoring failure for finished job",
                    extra={"job_id": str(self.job_id), "stage": self.stage.value},
                )
                return
            self._transition(JobStage.FAILED)
            self._write({"status": JobStatus.FAILED, "stage": JobStage.FAILED, "error": error})

    def _transition(self, stage: JobStage) -> None:
        if not can_transition(self.stage, stage):
            raise ValueError(f"illegal job transition {self.stage.value} -> {stage.value}")
        self.stage = stage

    def _with_progress(self, fields: dict[str, Any], progress: int, label: str) -> dict[str, Any]:
        value = max(self.last_progress, min(COMPLETE, int(progress)))
        self.last_progress = value
        return {**fields, "progress": value, "progress_label": label}

    def _write(self, fields: dict[str, Any]) -> None:
        self._last_write = self.clock()
        try:
            self.store.update(self.job_id, fields)
        except Exception:
            self.log.warning(
                "progress update failed",
                extra={"job_id": str(self.job_id), "fields": sorted(fields)},
                exc_info=True,
            )
            return
        if self.events is not None:
            self.events.publish_update(self.job_id, fields)
