import json
import os
import shutil
import tempfile
from uuid import uuid4

import pytest

from app.clients.remotion import RemotionCliEngine, parse_progress
from app.errors import RenderError
from app.models.domain import JobStage, JobStatus
from app.services.cleanup import CleanupManager
from app.services.manifest import normalize_manifest
from app.services.progress import ProgressTracker
from app.services.render import RenderOrchestrator, compute_total_frames
from tests.conftest import FakeClock, FakeEngine, FlakyObjectStore, RecordingJobStore


def test_total_frames_example():
    manifest = normalize_manifest({"scenes": [{"duration": 5}, {"duration": 7}], "meta": {"fps": 30}})
    assert compute_total_frames(manifest) == 360


def test_total_frames_floors_fractional_duration():
    manifest = normalize_manifest({"scenes": [{"duration": 0.01}], "meta": {"fps": 24}})
    assert compute_total_frames(manifest) == 1
    manifest = normalize_manifest({"scenes": [{"duration": 1.55}], "meta": {"fps": 10}})
    assert compute_total_frames(manifest) == 15


def test_plan_carries_props_and_concurrency(raw_manifest):
    orchestrator = RenderOrchestrator(FakeEngine(), "remotion/index.tsx", "LoanBriefing", concurrency=3)
    plan = orchestrator.plan(normalize_manifest(raw_manifest), analysis={"score": 7})
    assert plan.composition_id == "LoanBriefing"
    assert plan.total_frames == 360
    assert plan.concurrency == 3
    assert plan.input_props["analysis"] == {"score": 7}
    assert plan.input_props["manifest"]["meta"]["loan_id"] == "LN-42"


def _rendering_tracker():
    store = RecordingJobStore()
    job_id = uuid4()
    store.upsert(job_id, {"status": JobStatus.PROCESSING})
    clock = FakeClock()
    tracker = ProgressTracker(job_id, store, clock=clock)
    for stage, value in ((JobStage.BUNDLING, 5), (JobStage.SYNTHESIZING_AUDIO, 5), (JobStage.RENDERING, 30)):
        tracker.advance(stage, value, stage.value)
    return tracker, store, clock, job_id


def test_render_overrides_frames_and_throttles_progress(tmp_path, raw_manifest):
    engine = FakeEngine(fractions=(0.1, 0.2, 0.9))
    orchestrator = RenderOrchestrator(engine, "entry", "LoanBriefing")
    tracker, store, clock, job_id = _rendering_tracker()
    plan = orchestrator.plan(normalize_manifest(raw_manifest))
    orchestrator.render("bundle-dir", plan, str(tmp_path / "out.mp4"), tracker)
    assert engine.rendered[0]["composition"].duration_in_frames == 360
    # clock never advanced: every render callback falls inside the interval
    assert store.progress_history(job_id) == [5, 5, 30]


def test_render_progress_is_forwarded_after_interval(tmp_path, raw_manifest):
    tracker, store, clock, job_id = _rendering_tracker()

    class TickingEngine(FakeEngine):
        def render(self, composition, output_path, input_props, concurrency, on_progress):
            for fraction in (0.5, 1.0):
                clock.tick(1.5)
                on_progress(fraction)

    orchestrator = RenderOrchestrator(TickingEngine(), "entry", "LoanBriefing")
    plan = orchestrator.plan(normalize_manifest(raw_manifest))
    orchestrator.render("bundle-dir", plan, str(tmp_path / "out.mp4"), tracker)
    assert store.progress_history(job_id)[-2:] == [60, 90]
    assert store.get(job_id).progress_label == "Rendering (100%)"


def test_engine_failures_become_render_errors(tmp_path, raw_manifest):
    with pytest.raises(RenderError):
        RenderOrchestrator(FakeEngine(fail_bundle=True), "entry", "LoanBriefing").prepare()
    orchestrator = RenderOrchestrator(FakeEngine(fail_render=True), "entry", "LoanBriefing")
    tracker, _, _, _ = _rendering_tracker()
    with pytest.raises(RenderError):
        orchestrator.render("bundle-dir", orchestrator.plan(normalize_manifest(raw_manifest)), str(tmp_path / "o.mp4"), tracker)


@pytest.mark.parametrize(
    "line,expected",
    [
        ("Rendered 90/360, time remaining: 12s", 0.25),
        ("Encoded 360/360", 1.0),
        ("Bundling 40%", None),
        ("Rendered 0/0", None),
    ],
)
def test_remotion_progress_parsing(line, expected):
    assert parse_progress(line) == expected


class CapturingCliEngine(RemotionCliEngine):
    def __init__(self):
        super().__init__(command=["npx", "remotion"], codec="h264")
        self.cmd = None
        self.props = None

    def _run_with_progress(self, cmd, on_progress):
        self.cmd = cmd
        props_path = next(arg.split("=", 1)[1] for arg in cmd if arg.startswith("--props="))
        with open(props_path, encoding="utf-8") as handle:
            self.props = json.load(handle)
        on_progress(1.0)


def test_cli_render_sets_duration_through_props(raw_manifest):
    engine = CapturingCliEngine()
    orchestrator = RenderOrchestrator(engine, "remotion/index.tsx", "LoanBriefing", concurrency=3)
    plan = orchestrator.plan(normalize_manifest(raw_manifest), analysis={"score": 7})
    tracker, _, _, _ = _rendering_tracker()
    orchestrator.render("/tmp/bundle", plan, "/tmp/out.mp4", tracker)

    assert engine.cmd[:6] == ["npx", "remotion", "render", "/tmp/bundle", "LoanBriefing", "/tmp/out.mp4"]
    assert "--concurrency=3" in engine.cmd
    assert "--codec=h264" in engine.cmd
    assert not [arg for arg in engine.cmd if arg.startswith("--frames")]
    assert engine.props["durationInFrames"] == 360
    assert engine.props["analysis"] == {"score": 7}
    assert engine.props["manifest"]["meta"]["fps"] == 30


@pytest.mark.skipif(shutil.which("false") is None, reason="needs the false utility")
def test_failed_bundle_leaves_no_directory(tmp_path, monkeypatch):
    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
    orchestrator = RenderOrchestrator(RemotionCliEngine(command=["false"]), "remotion/index.tsx", "LoanBriefing")
    with pytest.raises(RenderError):
        orchestrator.prepare()
    assert os.listdir(tmp_path) == []


def test_prepare_hands_bundle_directory_to_cleanup(tmp_path):
    bundle_dir = tmp_path / "bundle"
    bundle_dir.mkdir()

    class DirEngine(FakeEngine):
        def bundle(self, entry_point):
            return str(bundle_dir)

    resources = CleanupManager(uuid4(), FlakyObjectStore())
    bundle = RenderOrchestrator(DirEngine(), "remotion/index.tsx", "LoanBriefing").prepare(resources)
    assert resources.local_dirs == [bundle]
    resources.release()
    assert not bundle_dir.exists()
