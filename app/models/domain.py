from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStage(str, Enum):
    QUEUED = "queued"
    BUNDLING = "bundling"
    SYNTHESIZING_AUDIO = "synthesizing_audio"
    RENDERING = "rendering"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


STAGE_TRANSITIONS: dict[JobStage, set[JobStage]] = {
    JobStage.QUEUED: {JobStage.BUNDLING, JobStage.FAILED},
    JobStage.BUNDLING: {JobStage.SYNTHESIZING_AUDIO, JobStage.FAILED},
    JobStage.SYNTHESIZING_AUDIO: {JobStage.RENDERING, JobStage.FAILED},
    JobStage.RENDERING: {JobStage.UPLOADING, JobStage.FAILED},
    JobStage.UPLOADING: {JobStage.COMPLETED, JobStage.FAILED},
    JobStage.COMPLETED: set(),
    JobStage.FAILED: set(),
}


def can_transition(current: JobStage, target: JobStage) -> bool:
    return target in STAGE_TRANSITIONS[current]


class ManifestMeta(BaseModel):
    id: str = "unknown"
    version: str = "1.0"
    theme: str = "institutional-dark"
    resolution: str = "1920x1080"
    frames_per_second: float = Field(default=30, gt=0)


class NarrationSegment(BaseModel):
    text: Optional[str] = None
    audio_url: Optional[str] = None


class SceneVisuals(BaseModel):
    layout: str = "centered"
    components: List[dict[str, Any]] = Field(default_factory=list)


class Scene(BaseModel):
    id: str
    start_offset: float = 0
    duration_seconds: float = Field(default=10, gt=0)
    narration: NarrationSegment = Field(default_factory=NarrationSegment)
    visuals: SceneVisuals = Field(default_factory=SceneVisuals)


class Manifest(BaseModel):
    meta: ManifestMeta = Field(default_factory=ManifestMeta)
    scenes: List[Scene] = Field(min_length=1)

    @property
    def total_duration_seconds(self) -> float:
        return sum(scene.duration_seconds for scene in self.scenes)

    def to_render_props(self) -> dict[str, Any]:
        """Shape consumed by the composition templates."""
        return {
            "meta": {
                "loan_id": self.meta.id,
                "version": self.meta.version,
                "theme": self.meta.theme,
                "resolution": self.meta.resolution,
                "fps": self.meta.frames_per_second,
            },
            "scenes": [
                {
                    "id": scene.id,
                    "start": scene.start_offset,
                    "duration": scene.duration_seconds,
                    "narration": {
                        "text": scene.narration.text or "",
                        "audioUrl": scene.narration.audio_url,
                    },
                    "visuals": scene.visuals.model_dump(),
                }
                for scene in self.scenes
            ],
        }


class VideoJob(BaseModel):
    id: UUID
    origin_id: Optional[str] = None
    status: JobStatus = JobStatus.PROCESSING
    stage: JobStage = JobStage.QUEUED
    progress: int = Field(default=0, ge=0, le=100)
    progress_label: str = ""
    video_url: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class RenderPlan(BaseModel):
    composition_id: str
    total_frames: int = Field(ge=1)
    fps: float
    total_duration_seconds: float
    input_props: dict[str, Any]
    concurrency: int = Field(ge=1)


class JobSubmission(BaseModel):
    job_id: UUID
    manifest: Manifest
    analysis: Optional[Any] = None
    origin_id: Optional[str] = None
