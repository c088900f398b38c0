from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

from app.models.domain import JobSubmission

log = logging.getLogger(__name__)


class BaseQueue:
    def enqueue(self, submission: JobSubmission) -> Future: ...  # pragma: no cover

    def shutdown(self, wait: bool = True) -> None: ...  # pragma: no cover


class LocalQueue(BaseQueue):
    """Runs each submitted job as its own task on a worker pool."""

    def __init__(self, processor: Callable[[JobSubmission], None], max_workers: int = 2) -> None:
        self._processor = processor
        self._executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="video-job")

    def enqueue(self, submission: JobSubmission) -> Future:
        future = self._executor.submit(self._processor, submission)
        future.add_done_callback(lambda done: self._report(submission, done))
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _report(self, submission: JobSubmission, future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:  # pragma: no cover - processor handles its own errors
            log.error(
                "video job task crashed",
                extra={"job_id": str(submission.job_id)},
                exc_info=exc,
            )
