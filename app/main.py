from __future__ import annotations

import logging
import os
from uuid import UUID

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles

from app.config import Settings, get_settings
from app.errors import StorageError, ValidationError
from app.models.api import VideoGenerationRequest, VideoJobAccepted, VideoJobResponse
from app.queue.queue import LocalQueue
from app.services.video_service import VideoService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI()

_service: VideoService | None = None


def get_video_service(settings: Settings = Depends(get_settings)) -> VideoService:
    global _service
    if _service is None:
        service = VideoService.from_settings(settings)
        service.bind_queue(LocalQueue(processor=service.process_job, max_workers=settings.max_workers))
        _service = service
    return _service


@app.on_event("shutdown")
def _shutdown_service() -> None:
    global _service
    if _service is not None:
        _service.close()
        _service = None


def _mount_static(settings: Settings) -> None:
    for route, directory in (("/videos", settings.output_dir), ("/audio", settings.audio_dir)):
        os.makedirs(directory, exist_ok=True)
        app.mount(route, StaticFiles(directory=directory), name=route.strip("/"))


@app.get("/", response_class=PlainTextResponse)
def health() -> str:
    return "Video Generator Service is running"


@app.post(
    "/generate-video",
    response_model=VideoJobAccepted,
    response_model_by_alias=True,
    status_code=status.HTTP_202_ACCEPTED,
)
def generate_video(
    payload: VideoGenerationRequest,
    service: VideoService = Depends(get_video_service),
) -> VideoJobAccepted:
    try:
        handle = service.submit(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Job store unavailable") from exc
    return VideoJobAccepted(job_id=handle.job_id, status=handle.status)


@app.get("/jobs/{job_id}", response_model=VideoJobResponse)
def get_job(job_id: UUID, service: VideoService = Depends(get_video_service)) -> VideoJobResponse:
    try:
        job = service.get_job(job_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return VideoJobResponse(job=job)


_mount_static(get_settings())
