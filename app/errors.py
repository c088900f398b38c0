from __future__ import annotations


class VideoServiceError(Exception):
    """Base class for errors raised by the video job pipeline."""


class ValidationError(VideoServiceError):
    """Manifest is missing, malformed or has no scenes. Raised before a job exists."""


class SynthesisError(VideoServiceError):
    """Narration for a single scene could not be produced."""


class RenderError(VideoServiceError):
    """Bundling or rendering failed. Fatal for the job."""


class PublishError(VideoServiceError):
    """Rendered artifact could not be uploaded."""


class CleanupError(VideoServiceError):
    """A temporary resource could not be released."""


class StorageError(VideoServiceError):
    """Transport failure talking to the object store or job store."""
