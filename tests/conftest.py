from __future__ import annotations

from typing import Any, Iterator, List
from uuid import UUID

import pytest

from app.clients.remotion import Composition, RenderEngine
from app.clients.s3_storage import S3StorageClient
from app.clients.tts import SpeechSynthesizer
from app.config import Settings
from app.errors import StorageError, SynthesisError
from app.storage.repository import InMemoryJobStore


class FakeSpeech(SpeechSynthesizer):
    def __init__(self, failing_texts: set[str] | None = None) -> None:
        self.failing_texts = failing_texts or set()
        self.calls: List[str] = []

    def enabled(self) -> bool:
        return True

    def synthesize(self, text: str, voice_model: str | None = None) -> Iterator[bytes]:
        self.calls.append(text)
        if text in self.failing_texts:
            raise SynthesisError(f"cannot speak {text!r}")
        yield b"ID3"
        yield text.encode("utf-8")


class FakeEngine(RenderEngine):
    def __init__(self, fail_bundle: bool = False, fail_render: bool = False, fractions=(0.0, 0.5, 1.0)) -> None:
        self.fail_bundle = fail_bundle
        self.fail_render = fail_render
        self.fractions = fractions
        self.rendered: List[dict[str, Any]] = []

    def bundle(self, entry_point: str) -> str:
        if self.fail_bundle:
            raise RuntimeError("webpack exploded")
        return "bundle-dir"

    def select_composition(self, bundle: str, composition_id: str, input_props: dict[str, Any]) -> Composition:
        return Composition(id=composition_id, serve_url=bundle, input_props=input_props)

    def render(self, composition, output_path, input_props, concurrency, on_progress) -> None:
        for fraction in self.fractions:
            on_progress(fraction)
        if self.fail_render:
            with open(output_path, "wb") as handle:
                handle.write(b"partial")
            raise RuntimeError("chromium crashed")
        with open(output_path, "wb") as handle:
            handle.write(b"\x00\x00\x00\x18ftypmp42")
        self.rendered.append(
            {
                "composition": composition,
                "output_path": output_path,
                "input_props": input_props,
                "concurrency": concurrency,
            }
        )


class FlakyObjectStore(S3StorageClient):
    """In-memory S3 client whose uploads can fail per bucket."""

    def __init__(self, failing_buckets: set[str] | None = None, fail_remove: bool = False) -> None:
        super().__init__(access_key=None, secret_key=None)
        self.failing_buckets = failing_buckets or set()
        self.fail_remove = fail_remove
        self.removed: List[tuple[str, List[str]]] = []

    def upload(self, bucket, name, data, content_type="application/octet-stream") -> str:
        if bucket in self.failing_buckets:
            raise StorageError(f"bucket {bucket} unavailable")
        return super().upload(bucket, name, data, content_type)

    def remove(self, bucket, names) -> None:
        self.removed.append((bucket, list(names)))
        if self.fail_remove:
            raise StorageError("delete refused")
        super().remove(bucket, names)


class RecordingJobStore(InMemoryJobStore):
    def __init__(self, fail_updates: bool = False) -> None:
        super().__init__()
        self.fail_updates = fail_updates
        self.updates: List[tuple[UUID, dict[str, Any]]] = []

    def update(self, job_id: UUID, fields: dict[str, Any]) -> None:
        self.updates.append((job_id, dict(fields)))
        if self.fail_updates:
            raise StorageError("job store offline")
        super().update(job_id, fields)

    def progress_history(self, job_id: UUID) -> List[int]:
        return [fields["progress"] for jid, fields in self.updates if jid == job_id and "progress" in fields]


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def tick(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        output_dir=str(tmp_path / "videos"),
        audio_dir=str(tmp_path / "audio"),
        public_host="http://render.local",
        render_concurrency=2,
        progress_interval_seconds=1.0,
    )


@pytest.fixture
def speech() -> FakeSpeech:
    return FakeSpeech()


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def object_store() -> FlakyObjectStore:
    return FlakyObjectStore()


@pytest.fixture
def job_store() -> RecordingJobStore:
    return RecordingJobStore()


@pytest.fixture
def raw_manifest() -> dict[str, Any]:
    return {
        "meta": {"loan_id": "LN-42", "fps": 30},
        "scenes": [
            {"id": "intro", "duration": 5, "narration": "Hello"},
            {
                "id": "decision",
                "duration": 7,
                "narration": {"text": "Approved", "audioUrl": None},
                "visuals": {
                    "layout": "split",
                    "components": [
                        {"type": "recommendation", "decision": "approve", "rationale": ["Strong cash flow", "Low leverage"]}
                    ],
                },
            },
        ],
    }
