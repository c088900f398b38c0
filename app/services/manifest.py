"""Canonicalization of loosely typed render manifests.

Upstream producers emit manifests with optional meta fields, alternate key
names and narration either as a bare string or as an object. Everything the
render pipeline touches after submission goes through :func:`normalize_manifest`
so downstream code only ever sees :class:`~app.models.domain.Manifest`.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError

from app.errors import ValidationError
from app.models.domain import Manifest, ManifestMeta, NarrationSegment, Scene, SceneVisuals

log = logging.getLogger(__name__)

DEFAULT_META = {
    "id": "unknown",
    "version": "1.0",
    "theme": "institutional-dark",
    "resolution": "1920x1080",
    "fps": 30,
}
DEFAULT_SCENE_DURATION = 10.0
DEFAULT_LAYOUT = "centered"
RATIONALE_DELIMITER = ". "

KNOWN_COMPONENT_TYPES = frozenset(
    {
        "title",
        "subtitle",
        "data_card",
        "key_value",
        "metric_card",
        "bar_chart",
        "risk_table",
        "covenant_list",
        "esg_scores",
        "recommendation",
        "confidence_indicator",
    }
)


def normalize_manifest(raw: Any) -> Manifest:
    if raw is None:
        raise ValidationError("missing manifest")
    if not isinstance(raw, Mapping):
        raise ValidationError("manifest must be an object")

    meta = _normalize_meta(raw.get("meta"))
    raw_scenes = raw.get("scenes") or []
    if not isinstance(raw_scenes, list):
        raise ValidationError("manifest scenes must be a list")
    scenes = [_normalize_scene(item, idx) for idx, item in enumerate(raw_scenes)]
    if not scenes:
        raise ValidationError("invalid or empty manifest")

    unknown = sorted(
        {
            str(component.get("type"))
            for scene in scenes
            for component in scene.visuals.components
            if component.get("type") not in KNOWN_COMPONENT_TYPES
        }
    )
    if unknown:
        log.warning("manifest contains unmapped component types", extra={"types": unknown})

    try:
        return Manifest(meta=meta, scenes=scenes)
    except PydanticValidationError as exc:
        raise ValidationError(str(exc)) from exc


def _first(source: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = source.get(key)
        if value is not None:
            return value
    return None


def _normalize_meta(raw: Any) -> ManifestMeta:
    source: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}
    fps = _first(source, "fps", "framesPerSecond", "frames_per_second")
    if fps in (None, "", 0):
        fps = DEFAULT_META["fps"]
    try:
        fps = float(fps)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"invalid frame rate: {fps!r}") from exc
    if fps <= 0:
        raise ValidationError(f"frame rate must be positive, got {fps}")
    return ManifestMeta(
        id=str(_first(source, "id", "loan_id") or DEFAULT_META["id"]),
        version=str(source.get("version") or DEFAULT_META["version"]),
        theme=str(source.get("theme") or DEFAULT_META["theme"]),
        resolution=str(source.get("resolution") or DEFAULT_META["resolution"]),
        frames_per_second=fps,
    )


def _normalize_scene(raw: Any, index: int) -> Scene:
    if not isinstance(raw, Mapping):
        raise ValidationError(f"scene {index} must be an object")
    visuals_raw = raw.get("visuals") if isinstance(raw.get("visuals"), Mapping) else {}
    components = raw.get("components") or visuals_raw.get("components") or []
    if not isinstance(components, list):
        raise ValidationError(f"scene {index} components must be a list")
    return Scene(
        id=str(raw.get("id") or f"scene_{index}"),
        start_offset=_as_number(_first(raw, "start", "start_time", "startOffset"), 0.0),
        duration_seconds=_scene_duration(raw, index),
        narration=_normalize_narration(raw.get("narration")),
        visuals=SceneVisuals(
            layout=str(visuals_raw.get("layout") or DEFAULT_LAYOUT),
            components=[_normalize_component(component) for component in components if isinstance(component, Mapping)],
        ),
    )


def _scene_duration(raw: Mapping[str, Any], index: int) -> float:
    duration = _as_number(_first(raw, "duration", "durationSeconds", "duration_seconds"), 0.0)
    if duration < 0:
        raise ValidationError(f"scene {index} has negative duration")
    return duration or DEFAULT_SCENE_DURATION


def _normalize_narration(raw: Any) -> NarrationSegment:
    if isinstance(raw, str):
        return NarrationSegment(text=raw.strip() or None)
    if isinstance(raw, Mapping):
        text = raw.get("text")
        audio_url = _first(raw, "audioUrl", "audio_url")
        return NarrationSegment(
            text=text.strip() or None if isinstance(text, str) else None,
            audio_url=str(audio_url) if audio_url else None,
        )
    return NarrationSegment()


def _normalize_component(component: Mapping[str, Any]) -> dict[str, Any]:
    normalized = dict(component)
    rationale = normalized.get("rationale")
    if normalized.get("type") == "recommendation" and isinstance(rationale, list):
        normalized["rationale"] = RATIONALE_DELIMITER.join(str(item) for item in rationale)
    return normalized


def _as_number(value: Any, default: float) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
