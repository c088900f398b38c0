from __future__ import annotations

import logging
import math
import os
from typing import Any, Optional

from app.clients.remotion import RenderEngine
from app.errors import RenderError
from app.models.domain import Manifest, RenderPlan
from app.services.cleanup import CleanupManager
from app.services.progress import ProgressTracker, render_progress


def compute_total_frames(manifest: Manifest) -> int:
    return max(1, math.floor(manifest.total_duration_seconds * manifest.meta.frames_per_second))


class RenderOrchestrator:
    def __init__(
        self,
        engine: RenderEngine,
        entry_point: str,
        composition_id: str,
        concurrency: int = 4,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.engine = engine
        self.entry_point = entry_point
        self.composition_id = composition_id
        self.concurrency = max(1, concurrency)
        self.log = logger or logging.getLogger(__name__)

    def prepare(self, resources: CleanupManager | None = None) -> str:
        try:
            bundle = self.engine.bundle(self.entry_point)
        except Exception as exc:
            raise RenderError(f"bundling failed: {exc}") from exc
        if resources is not None and os.path.isdir(bundle):
            resources.track_local_dir(bundle)
        return bundle

    def plan(self, manifest: Manifest, analysis: Any = None) -> RenderPlan:
        return RenderPlan(
            composition_id=self.composition_id,
            total_frames=compute_total_frames(manifest),
            fps=manifest.meta.frames_per_second,
            total_duration_seconds=manifest.total_duration_seconds,
            input_props={"manifest": manifest.to_render_props(), "analysis": analysis},
            concurrency=self.concurrency,
        )

    def render(self, bundle: str, plan: RenderPlan, output_path: str, tracker: ProgressTracker) -> None:
        self.log.info(
            "planning render",
            extra={
                "job_id": str(tracker.job_id),
                "frames": plan.total_frames,
                "duration": plan.total_duration_seconds,
                "fps": plan.fps,
                "concurrency": plan.concurrency,
            },
        )

        def on_progress(fraction: float) -> None:
            fraction = min(1.0, max(0.0, fraction))
            tracker.report_throttled(render_progress(fraction), f"Rendering ({round(fraction * 100)}%)")

        try:
            composition = self.engine.select_composition(bundle, plan.composition_id, plan.input_props)
            composition.duration_in_frames = plan.total_frames
            self.engine.render(composition, output_path, plan.input_props, plan.concurrency, on_progress)
        except Exception as exc:
            raise RenderError(f"render failed: {exc}") from exc
