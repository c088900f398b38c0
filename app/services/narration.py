from __future__ import annotations

import logging
import os
import time
from dataclasses import asdict, dataclass
from typing import Optional
from uuid import UUID

from app.clients.s3_storage import ObjectStore
from app.clients.tts import SpeechSynthesizer
from app.errors import StorageError, SynthesisError
from app.models.domain import Manifest, Scene
from app.services.cleanup import CleanupManager
from app.services.progress import ProgressTracker, narration_progress


@dataclass
class NarrationSummary:
    synthesized: int = 0
    skipped: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class NarrationSynthesizer:
    def __init__(
        self,
        speech: SpeechSynthesizer,
        object_store: ObjectStore,
        audio_dir: str,
        bucket: str,
        voice_model: str | None = None,
        retry_count: int = 1,
        retry_delay: float = 1.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.speech = speech
        self.object_store = object_store
        self.audio_dir = audio_dir
        self.bucket = bucket
        self.voice_model = voice_model
        self.retry_count = max(1, retry_count)
        self.retry_delay = retry_delay
        self.log = logger or logging.getLogger(__name__)

    def synthesize_all(
        self,
        job_id: UUID,
        manifest: Manifest,
        tracker: ProgressTracker,
        resources: CleanupManager,
    ) -> NarrationSummary:
        """Fill in missing scene audio, one scene at a time.

        Mutates ``manifest`` in place. A scene whose audio cannot be produced
        keeps ``audio_url`` unset and renders silently.
        """
        summary = NarrationSummary()
        pending = [scene for scene in manifest.scenes if self._needs_audio(scene)]
        if pending:
            self._ensure_bucket(job_id)
        total = len(manifest.scenes)
        for idx, scene in enumerate(manifest.scenes):
            tracker.report(narration_progress(idx, total), f"Generating Audio ({idx + 1}/{total})")
            if not self._needs_audio(scene):
                summary.skipped += 1
                continue
            try:
                scene.narration.audio_url = self._synthesize_scene(job_id, scene, idx, resources)
                summary.synthesized += 1
            except Exception as exc:
                summary.failed += 1
                self.log.warning(
                    "scene narration failed, continuing without audio",
                    extra={"job_id": str(job_id), "scene": idx, "error": str(exc)},
                    exc_info=exc if isinstance(exc, SynthesisError) else SynthesisError(str(exc)),
                )
        self.log.info("narration finished", extra={"job_id": str(job_id), **summary.as_dict()})
        return summary

    def _needs_audio(self, scene: Scene) -> bool:
        return bool(scene.narration.text) and not scene.narration.audio_url

    def _ensure_bucket(self, job_id: UUID) -> None:
        try:
            self.object_store.ensure_bucket(self.bucket, public=True)
        except StorageError as exc:
            self.log.info(
                "narration bucket check skipped",
                extra={"job_id": str(job_id), "bucket": self.bucket, "error": str(exc)},
            )

    def _synthesize_scene(self, job_id: UUID, scene: Scene, index: int, resources: CleanupManager) -> str:
        file_name = f"{job_id}_scene_{index}.mp3"
        local_path = os.path.join(self.audio_dir, file_name)
        self._stream_to_file(scene.narration.text or "", local_path, resources)
        with open(local_path, "rb") as audio:
            url = self.object_store.upload(self.bucket, file_name, audio, "audio/mpeg")
        resources.track_remote_object(self.bucket, file_name)
        self.log.info(
            "scene narration uploaded",
            extra={"job_id": str(job_id), "scene": index, "url": url},
        )
        return url

    def _stream_to_file(self, text: str, path: str, resources: CleanupManager) -> None:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        for attempt in range(self.retry_count):
            tracked = path in resources.local_files
            try:
                with open(path, "wb") as handle:
                    if not tracked:
                        resources.track_local_file(path)
                    for chunk in self.speech.synthesize(text, self.voice_model):
                        handle.write(chunk)
                return
            except SynthesisError:
                if attempt + 1 >= self.retry_count:
                    raise
                self.log.warning("scene tts failed, retrying", extra={"attempt": attempt + 1}, exc_info=True)
                time.sleep(self.retry_delay)
