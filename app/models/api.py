from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .domain import JobStatus, VideoJob


class VideoGenerationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Loosely typed on purpose; the manifest normalizer owns its validation
    manifest: Optional[Any] = Field(default=None, validation_alias="manifest")
    analysis: Optional[Any] = Field(default=None, validation_alias="analysis")
    origin_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("originId", "origin_id", "manifest_id"),
    )


class VideoJobAccepted(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: UUID = Field(..., serialization_alias="jobId")
    status: JobStatus


class VideoJobResponse(BaseModel):
    job: VideoJob
