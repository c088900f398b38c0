import pytest

from app.errors import ValidationError
from app.services.manifest import normalize_manifest


def test_meta_defaults_are_applied_per_field():
    manifest = normalize_manifest({"meta": {"theme": "light"}, "scenes": [{"narration": "Hi"}]})
    assert manifest.meta.theme == "light"
    assert manifest.meta.version == "1.0"
    assert manifest.meta.resolution == "1920x1080"
    assert manifest.meta.frames_per_second == 30


def test_missing_meta_gets_full_defaults():
    manifest = normalize_manifest({"scenes": [{}]})
    assert manifest.meta.theme == "institutional-dark"
    assert manifest.meta.id == "unknown"


def test_scene_defaults_and_alternate_keys():
    manifest = normalize_manifest(
        {"scenes": [{"start_time": 3, "duration": 0}, {"id": "b", "durationSeconds": 4.5}]}
    )
    first, second = manifest.scenes
    assert first.id == "scene_0"
    assert first.start_offset == 3
    assert first.duration_seconds == 10
    assert first.visuals.layout == "centered"
    assert second.id == "b"
    assert second.duration_seconds == 4.5


def test_narration_string_and_object_forms(raw_manifest):
    raw_manifest["scenes"].append({"narration": {"text": "Pre-recorded", "audio_url": "https://cdn/a.mp3"}})
    manifest = normalize_manifest(raw_manifest)
    assert manifest.scenes[0].narration.text == "Hello"
    assert manifest.scenes[0].narration.audio_url is None
    assert manifest.scenes[1].narration.text == "Approved"
    assert manifest.scenes[2].narration.audio_url == "https://cdn/a.mp3"


def test_blank_narration_becomes_empty():
    manifest = normalize_manifest({"scenes": [{"narration": "   "}, {"narration": 42}]})
    assert manifest.scenes[0].narration.text is None
    assert manifest.scenes[1].narration.text is None


def test_recommendation_rationale_list_is_flattened(raw_manifest):
    manifest = normalize_manifest(raw_manifest)
    component = manifest.scenes[1].visuals.components[0]
    assert component["rationale"] == "Strong cash flow. Low leverage"


def test_components_read_from_scene_root():
    manifest = normalize_manifest({"scenes": [{"components": [{"type": "title", "text": "Q3"}]}]})
    assert manifest.scenes[0].visuals.components == [{"type": "title", "text": "Q3"}]


def test_unknown_component_types_pass_through(caplog):
    manifest = normalize_manifest({"scenes": [{"components": [{"type": "hologram", "x": 1}]}]})
    assert manifest.scenes[0].visuals.components == [{"type": "hologram", "x": 1}]
    assert "unmapped component types" in caplog.text


@pytest.mark.parametrize("raw", [None, [], "manifest", {"scenes": []}, {"meta": {"fps": 24}}])
def test_invalid_manifests_are_rejected(raw):
    with pytest.raises(ValidationError):
        normalize_manifest(raw)


def test_negative_values_are_rejected():
    with pytest.raises(ValidationError):
        normalize_manifest({"meta": {"fps": -1}, "scenes": [{}]})
    with pytest.raises(ValidationError):
        normalize_manifest({"scenes": [{"duration": -3}]})


def test_render_props_use_composition_keys(raw_manifest):
    props = normalize_manifest(raw_manifest).to_render_props()
    assert props["meta"]["loan_id"] == "LN-42"
    assert props["meta"]["fps"] == 30
    assert props["scenes"][0]["duration"] == 5
    assert props["scenes"][0]["narration"] == {"text": "Hello", "audioUrl": None}
