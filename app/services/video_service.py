from __future__ import annotations

import logging
import os
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Optional
from uuid import UUID, uuid4

from app.clients.remotion import RemotionCliEngine, RenderEngine
from app.clients.s3_storage import ObjectStore, S3StorageClient
from app.clients.supabase_db import SupabaseJobStore
from app.clients.supabase_storage import SupabaseStorageClient
from app.clients.tts import DeepgramSpeechClient, ElevenLabsClient, SpeechSynthesizer
from app.config import Settings
from app.errors import StorageError
from app.events.publisher import JobEventPublisher
from app.models.api import VideoGenerationRequest
from app.models.domain import JobStage, JobStatus, JobSubmission, VideoJob
from app.queue.queue import BaseQueue
from app.services.cleanup import CleanupManager
from app.services.manifest import normalize_manifest
from app.services.narration import NarrationSynthesizer
from app.services.progress import (
    BUNDLING_START,
    FINALIZE_START,
    NARRATION_START,
    RENDER_START,
    UPLOAD_START,
    ProgressTracker,
)
from app.services.publisher import ArtifactPublisher
from app.services.render import RenderOrchestrator
from app.storage.repository import InMemoryJobStore, JobStore


@dataclass
class JobHandle:
    job_id: UUID
    status: JobStatus
    future: Optional[Future] = None


class VideoService:
    def __init__(
        self,
        store: JobStore,
        object_store: ObjectStore,
        speech: SpeechSynthesizer,
        engine: RenderEngine,
        settings: Settings,
        events: JobEventPublisher | None = None,
    ) -> None:
        self.store = store
        self.object_store = object_store
        self.settings = settings
        self.events = events
        self.queue: BaseQueue | None = None
        self.log = logging.getLogger(__name__)
        self.narration = NarrationSynthesizer(
            speech=speech,
            object_store=object_store,
            audio_dir=settings.audio_dir,
            bucket=settings.narration_bucket,
            voice_model=settings.tts_voice_model,
            retry_count=settings.tts_scene_retry_count,
            logger=self.log,
        )
        self.renderer = RenderOrchestrator(
            engine=engine,
            entry_point=settings.render_entry_point,
            composition_id=settings.composition_id,
            concurrency=settings.render_concurrency,
            logger=self.log,
        )
        self.publisher = ArtifactPublisher(
            object_store=object_store,
            store=store,
            bucket=settings.video_bucket,
            public_host=settings.resolved_public_host(),
            logger=self.log,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "VideoService":
        log = logging.getLogger(__name__)
        store: JobStore
        if settings.job_store.lower() == "supabase":
            store = SupabaseJobStore(api_url=settings.supabase_url, api_key=settings.supabase_key)
        else:
            store = InMemoryJobStore()
        object_store: ObjectStore
        if settings.storage_provider.lower() == "supabase":
            object_store = SupabaseStorageClient(
                api_url=settings.supabase_url,
                api_key=settings.supabase_key,
                public_url=settings.supabase_public_url,
            )
        else:
            object_store = S3StorageClient(
                access_key=settings.s3_access_key,
                secret_key=settings.s3_secret_key,
                endpoint_url=settings.s3_endpoint_url,
                region_name=settings.s3_region,
                public_url=settings.s3_public_url,
                addressing_style=settings.s3_addressing_style,
            )
        speech: SpeechSynthesizer
        if settings.tts_provider.lower() == "elevenlabs":
            speech = ElevenLabsClient(
                api_key=settings.elevenlabs_api_key,
                model_id=settings.elevenlabs_model_id,
                base_url=settings.elevenlabs_base_url,
                logger=log,
            )
        else:
            speech = DeepgramSpeechClient(
                api_key=settings.deepgram_api_key,
                model=settings.tts_voice_model,
                base_url=settings.deepgram_base_url,
                logger=log,
            )
        events: JobEventPublisher | None = None
        if settings.kafka_enabled and settings.kafka_updates_topic:
            try:
                events = JobEventPublisher(
                    bootstrap_servers=settings.kafka_bootstrap_servers,
                    topic=settings.kafka_updates_topic,
                    logger=log,
                )
            except Exception:  # pragma: no cover - best effort logging
                log.warning(
                    "job event publisher unavailable",
                    extra={"topic": settings.kafka_updates_topic},
                    exc_info=True,
                )
        engine = RemotionCliEngine(command=settings.remotion_command, codec=settings.render_codec, logger=log)
        return cls(
            store=store,
            object_store=object_store,
            speech=speech,
            engine=engine,
            settings=settings,
            events=events,
        )

    def bind_queue(self, queue: BaseQueue) -> None:
        self.queue = queue

    def close(self) -> None:
        if self.queue is not None:
            self.queue.shutdown(wait=False)
        if self.events is not None:
            self.events.close()

    def submit(self, payload: VideoGenerationRequest) -> JobHandle:
        # Raises ValidationError before any job id exists
        manifest = normalize_manifest(payload.manifest)
        job_id = uuid4()
        try:
            self.store.upsert(
                job_id,
                {
                    "origin_id": payload.origin_id,
                    "status": JobStatus.PROCESSING,
                    "stage": JobStage.QUEUED,
                    "progress": 0,
                    "progress_label": "Queued",
                },
            )
        except StorageError:
            self.log.error("job record could not be created", extra={"job_id": str(job_id)}, exc_info=True)
            raise
        self.log.info(
            "video job accepted",
            extra={"job_id": str(job_id), "origin_id": payload.origin_id, "scenes": len(manifest.scenes)},
        )
        submission = JobSubmission(
            job_id=job_id,
            manifest=manifest,
            analysis=payload.analysis,
            origin_id=payload.origin_id,
        )
        future = None
        if self.queue is not None:
            future = self.queue.enqueue(submission)
        else:  # pragma: no cover - fallback for misconfiguration
            self.process_job(submission)
        return JobHandle(job_id=job_id, status=JobStatus.PROCESSING, future=future)

    def get_job(self, job_id: UUID) -> VideoJob:
        job = self.store.get(job_id)
        if not job:
            raise ValueError("Video job not found")
        return job

    def process_job(self, submission: JobSubmission) -> None:
        tracker = ProgressTracker(
            job_id=submission.job_id,
            store=self.store,
            interval=self.settings.progress_interval_seconds,
            events=self.events,
            logger=self.log,
        )
        with CleanupManager(submission.job_id, self.object_store, logger=self.log) as resources:
            try:
                self._pipeline(submission, tracker, resources)
            except Exception as exc:
                self.log.exception("video job failed", extra={"job_id": str(submission.job_id)})
                tracker.fail(str(exc))

    def _pipeline(self, submission: JobSubmission, tracker: ProgressTracker, resources: CleanupManager) -> None:
        job_id = submission.job_id
        manifest = submission.manifest
        output_path = os.path.join(self.settings.output_dir, f"{job_id}.mp4")
        os.makedirs(self.settings.output_dir, exist_ok=True)
        resources.track_artifact(output_path)

        tracker.advance(JobStage.BUNDLING, BUNDLING_START, "Bundling project")
        bundle = self.renderer.prepare(resources)

        tracker.advance(JobStage.SYNTHESIZING_AUDIO, NARRATION_START, "Generating Audio")
        narration = self.narration.synthesize_all(job_id, manifest, tracker, resources)

        plan = self.renderer.plan(manifest, submission.analysis)
        tracker.advance(JobStage.RENDERING, RENDER_START, "Preparing render")
        self.renderer.render(bundle, plan, output_path, tracker)

        tracker.advance(JobStage.UPLOADING, UPLOAD_START, "Uploading to storage")
        result = self.publisher.publish(job_id, output_path, submission.origin_id)
        tracker.report(FINALIZE_START, "Finalizing")

        tracker.complete(
            video_url=result.video_url,
            metadata={
                "duration": plan.total_duration_seconds,
                "frames": plan.total_frames,
                "fps": plan.fps,
                "narration": narration.as_dict(),
                "uploaded": result.uploaded,
            },
        )
        self.log.info(
            "video job finished",
            extra={"job_id": str(job_id), "video_url": result.video_url},
        )
