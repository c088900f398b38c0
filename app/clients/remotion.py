from __future__ import annotations

import json
import logging
import os
import re
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

ProgressCallback = Callable[[float], None]

_FRAME_PROGRESS = re.compile(r"(?:Rendered|Rendering|Encoded|Stitching).*?(\d+)\s*/\s*(\d+)")


@dataclass
class Composition:
    id: str
    serve_url: str
    input_props: dict[str, Any]
    duration_in_frames: Optional[int] = None


class RenderEngine:
    def bundle(self, entry_point: str) -> str: ...  # pragma: no cover

    def select_composition(
        self, bundle: str, composition_id: str, input_props: dict[str, Any]
    ) -> Composition: ...  # pragma: no cover

    def render(
        self,
        composition: Composition,
        output_path: str,
        input_props: dict[str, Any],
        concurrency: int,
        on_progress: ProgressCallback,
    ) -> None: ...  # pragma: no cover


class RemotionCliEngine(RenderEngine):
    """Drives the Remotion CLI through subprocesses."""

    def __init__(
        self,
        command: List[str] | None = None,
        codec: str = "h264",
        workdir: str | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.command = list(command or ["npx", "remotion"])
        self.codec = codec
        self.workdir = workdir
        self.log = logger or logging.getLogger(__name__)

    def bundle(self, entry_point: str) -> str:
        out_dir = tempfile.mkdtemp(prefix="remotion-bundle-")
        cmd = [*self.command, "bundle", entry_point, f"--out-dir={out_dir}"]
        self.log.info("bundling remotion project", extra={"entry_point": entry_point})
        try:
            subprocess.run(cmd, check=True, cwd=self.workdir, capture_output=True, text=True)
        except Exception:
            shutil.rmtree(out_dir, ignore_errors=True)
            raise
        return out_dir

    def select_composition(self, bundle: str, composition_id: str, input_props: dict[str, Any]) -> Composition:
        return Composition(id=composition_id, serve_url=bundle, input_props=input_props)

    def render(
        self,
        composition: Composition,
        output_path: str,
        input_props: dict[str, Any],
        concurrency: int,
        on_progress: ProgressCallback,
    ) -> None:
        with tempfile.NamedTemporaryFile("w", suffix=".json", delete=False) as props_file:
            json.dump(self._render_props(composition, input_props), props_file, ensure_ascii=False)
        try:
            cmd = [
                *self.command,
                "render",
                composition.serve_url,
                composition.id,
                output_path,
                f"--props={props_file.name}",
                f"--codec={self.codec}",
                f"--concurrency={concurrency}",
            ]
            self._run_with_progress(cmd, on_progress)
        finally:
            os.unlink(props_file.name)

    def _render_props(self, composition: Composition, input_props: dict[str, Any]) -> dict[str, Any]:
        # Read by the composition's calculateMetadata to size the timeline
        if not composition.duration_in_frames:
            return input_props
        return {**input_props, "durationInFrames": composition.duration_in_frames}

    def _run_with_progress(self, cmd: List[str], on_progress: ProgressCallback) -> None:
        tail: List[str] = []
        with subprocess.Popen(
            cmd,
            cwd=self.workdir,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        ) as proc:
            assert proc.stdout is not None
            for line in proc.stdout:
                tail = (tail + [line.rstrip()])[-20:]
                fraction = parse_progress(line)
                if fraction is not None:
                    on_progress(fraction)
            returncode = proc.wait()
        if returncode != 0:
            raise subprocess.CalledProcessError(returncode, cmd, output="\n".join(tail))
        on_progress(1.0)


def parse_progress(line: str) -> float | None:
    match = _FRAME_PROGRESS.search(line)
    if not match:
        return None
    done, total = int(match.group(1)), int(match.group(2))
    if total <= 0:
        return None
    return min(1.0, done / total)
