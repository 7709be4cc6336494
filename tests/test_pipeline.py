import json
from pathlib import Path

import pytest

from stitchvo import pipeline
from stitchvo.characters import PRESETS, Character
from stitchvo.errors import ArtifactWriteError, BackendError, InvalidCharacter, StitchError
from stitchvo.metadata import ProjectMetadataStore
from stitchvo.pronunciation import DictionaryCache

from conftest import FakeClient

PLS = """<lexicon>
  <lexeme><grapheme>FAI</grapheme><alias>eff-ay-eye</alias></lexeme>
</lexicon>
"""


@pytest.fixture()
def sleeps(monkeypatch):
    calls = []
    monkeypatch.setattr(pipeline.time, "sleep", lambda s: calls.append(s))
    return calls


def _generate(scenes_file: Path, client, **kw):
    tmp = scenes_file.parent
    kw.setdefault("output_dir", tmp / "out")
    return pipeline.generate_scenes(
        scenes_file,
        client=client,
        cache=DictionaryCache(tmp / "cache.json"),
        dictionaries_dir=tmp / "dictionaries",
        **kw,
    )


def test_batch_sends_sliding_window_of_previous_request_ids(scenes_file, fake_client, no_probes, sleeps):
    _generate(scenes_file, fake_client)
    windows = [c["previous_request_ids"] for c in fake_client.calls]
    assert windows == [[], ["req-0"], ["req-0", "req-1"], ["req-0", "req-1", "req-2"]]
    assert all(c["voice_id"] == "id-George" for c in fake_client.calls)


def test_window_never_exceeds_three():
    w = pipeline.InMemoryWindow()
    for n in range(4):
        w.record(f"req-{n}")
    assert w.previous_request_ids(4) == ["req-1", "req-2", "req-3"]


def test_sleeps_between_scenes_only(scenes_file, fake_client, no_probes, sleeps):
    _generate(scenes_file, fake_client)
    assert sleeps == [pipeline.SCENE_DELAY_SECONDS] * 3


def test_artifacts_and_metadata(scenes_file, fake_client, no_probes, sleeps):
    out = scenes_file.parent / "out"
    res = _generate(scenes_file, fake_client)

    for i in range(1, 5):
        assert (out / f"demo-scene{i}.mp3").read_bytes() == f"AUDIO{i - 1}|".encode()
    assert (out / "demo-combined.mp3").read_bytes() == b"AUDIO0|AUDIO1|AUDIO2|AUDIO3|"

    record = json.loads((out / "demo-info.json").read_text())
    assert record["name"] == "demo"
    assert record["voice"] == "George"
    assert record["character"] == "narrator"
    assert record["totalScenes"] == 4
    first = record["scenes"][0]
    assert first["file"] == "demo-scene1.mp3"
    assert first["requestId"] == "req-0"
    assert first["actualDuration"] == 3.0
    assert first["character"] == "narrator"
    assert "spokenText" not in first
    assert res["combined"].endswith("demo-combined.mp3")
    assert res["timing_issues"] == []
    assert res["total_actual_duration"] == 12.0


def test_batch_character_applies_to_settings(scenes_file, fake_client, no_probes, sleeps):
    _generate(scenes_file, fake_client)
    assert fake_client.calls[0]["settings"] == PRESETS[Character.NARRATOR]


def test_v3_drops_window_and_snaps_stability(scenes_file, fake_client, no_probes, sleeps):
    _generate(scenes_file, fake_client, model="eleven_v3")
    assert all(c["previous_request_ids"] == [] for c in fake_client.calls)
    assert all(c["settings"].stability == 0.5 for c in fake_client.calls)


def test_no_combined_file_when_disabled(scenes_file, fake_client, no_probes, sleeps):
    res = _generate(scenes_file, fake_client, combined=False)
    assert res["combined"] is None
    assert not (scenes_file.parent / "out" / "demo-combined.mp3").exists()


def test_backend_failure_stops_the_batch(scenes_file, no_probes, sleeps):
    client = FakeClient(fail_at=1)
    out = scenes_file.parent / "out"
    with pytest.raises(BackendError) as exc:
        _generate(scenes_file, client)
    assert exc.value.status == 500
    assert len(client.calls) == 2
    assert (out / "demo-scene1.mp3").exists()
    assert not (out / "demo-scene2.mp3").exists()
    assert not (out / "demo-info.json").exists()


def test_invalid_character_rejected_before_any_request(scenes_file, fake_client, no_probes, sleeps):
    raw = json.loads(scenes_file.read_text())
    raw["scenes"][2]["character"] = "pirate"
    scenes_file.write_text(json.dumps(raw))
    with pytest.raises(InvalidCharacter):
        _generate(scenes_file, fake_client)
    assert fake_client.calls == []


def test_skip_validation_leaves_timing_fields_empty(scenes_file, fake_client, sleeps):
    res = _generate(scenes_file, fake_client, skip_validation=True)
    record = json.loads(Path(res["info"]).read_text())
    assert record["scenes"][0]["actualDuration"] is None


def _project_with_six_scenes(tmp_path: Path) -> Path:
    payload = {"name": "six", "scenes": [{"id": f"s{i}", "text": f"line {i}", "duration": 3.0} for i in range(6)]}
    p = tmp_path / "six.json"
    p.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return p


def _seed_metadata(out: Path, request_ids):
    scenes = [
        {"id": f"s{i}", "file": f"six-s{i}.mp3", "text": f"line {i}", "duration": 3.0, "actualDuration": 3.0, "requestId": rid}
        for i, rid in enumerate(request_ids)
    ]
    ProjectMetadataStore(out, "six").write_full({"name": "six", "scenes": scenes})


def test_regenerate_window_comes_from_persisted_ids(tmp_path, fake_client, no_probes):
    project = _project_with_six_scenes(tmp_path)
    out = tmp_path / "out"
    _seed_metadata(out, ["r0", "r1", "r2", None, "r4", "r5"])

    res = pipeline.regenerate_scene(
        project, "s5", client=fake_client, cache=DictionaryCache(tmp_path / "c.json"), dictionaries_dir=tmp_path, output_dir=out
    )

    assert fake_client.calls[0]["previous_request_ids"] == ["r2", "r4"]
    assert res["previous_request_ids"] == ["r2", "r4"]


def test_regenerate_merges_single_entry_and_updates_text(tmp_path, fake_client, no_probes):
    project = _project_with_six_scenes(tmp_path)
    out = tmp_path / "out"
    _seed_metadata(out, ["r0", "r1", "r2", "r3", "r4", "r5"])
    before = json.loads((out / "six-info.json").read_text())["scenes"]

    pipeline.regenerate_scene(
        project,
        "s2",
        client=fake_client,
        cache=DictionaryCache(tmp_path / "c.json"),
        dictionaries_dir=tmp_path,
        output_dir=out,
        new_text="brand new words",
    )

    after = json.loads((out / "six-info.json").read_text())["scenes"]
    assert after[2]["text"] == "brand new words"
    assert after[2]["requestId"] == "req-0"
    assert [s for i, s in enumerate(after) if i != 2] == [s for i, s in enumerate(before) if i != 2]
    assert json.loads(project.read_text())["scenes"][2]["text"] == "brand new words"
    assert fake_client.calls[0]["previous_request_ids"] == ["r0", "r1"]


def test_regenerate_without_metadata_skips_merge(tmp_path, fake_client, no_probes):
    project = _project_with_six_scenes(tmp_path)
    messages = []
    res = pipeline.regenerate_scene(
        project,
        "s1",
        client=fake_client,
        cache=DictionaryCache(tmp_path / "c.json"),
        dictionaries_dir=tmp_path,
        output_dir=tmp_path / "out",
        info_cb=messages.append,
    )
    assert res["info"] is None
    assert res["previous_request_ids"] == []
    assert (tmp_path / "out" / "six-s1.mp3").exists()
    assert any("no metadata" in m for m in messages)


def test_regenerate_unknown_scene(tmp_path, fake_client):
    project = _project_with_six_scenes(tmp_path)
    with pytest.raises(StitchError, match="Available scenes"):
        pipeline.regenerate_scene(
            project, "nope", client=fake_client, cache=DictionaryCache(tmp_path / "c.json"), dictionaries_dir=tmp_path, output_dir=tmp_path
        )
    assert fake_client.calls == []


def test_local_dictionary_fallback_rewrites_text_before_sending(tmp_path, fake_client, no_probes, sleeps):
    d = tmp_path / "dictionaries"
    d.mkdir()
    (d / "brand.pls").write_text(PLS, encoding="utf-8")
    p = tmp_path / "brand.json"
    p.write_text(json.dumps({"name": "brand", "dictionary": "brand", "scenes": [{"id": "a", "text": "Built by FAI"}]}))
    fake_client.list_error = BackendError("403", status=403)

    res = _generate(p, fake_client)

    assert fake_client.calls[0]["text"] == "Built by eff-ay-eye"
    assert fake_client.calls[0]["dictionary_locators"] == []
    scene = json.loads(Path(res["info"]).read_text())["scenes"][0]
    assert scene["text"] == "Built by FAI"
    assert scene["spokenText"] == "Built by eff-ay-eye"


def test_no_dictionary_flag_wins(tmp_path, fake_client, no_probes, sleeps):
    p = tmp_path / "brand.json"
    p.write_text(json.dumps({"name": "brand", "dictionary": "brand", "scenes": [{"id": "a", "text": "Built by FAI"}]}))
    res = _generate(p, fake_client, no_dictionary=True)
    assert fake_client.calls[0]["text"] == "Built by FAI"
    assert json.loads(Path(res["info"]).read_text())["dictionaryMode"] == "none"


def test_speak_writes_file(tmp_path, fake_client, no_probes):
    out = tmp_path / "hello.mp3"
    res = pipeline.speak(
        "Hello there, this is a short test of the voice.", out, client=fake_client, cache=DictionaryCache(tmp_path / "c.json"), dictionaries_dir=tmp_path, character="calm"
    )
    assert out.read_bytes() == b"AUDIO0|"
    assert res["status"] == "pass"
    assert fake_client.calls[0]["settings"] == PRESETS[Character.CALM]
    assert fake_client.calls[0]["previous_request_ids"] == []


def test_speak_rejects_empty_text(tmp_path, fake_client):
    with pytest.raises(StitchError):
        pipeline.speak("  ", tmp_path / "x.mp3", client=fake_client, cache=DictionaryCache(tmp_path / "c.json"), dictionaries_dir=tmp_path)


def test_unwritable_output_raises_artifact_error(tmp_path, fake_client):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    with pytest.raises(ArtifactWriteError):
        pipeline.speak(
            "Hello",
            blocker / "x.mp3",
            client=fake_client,
            cache=DictionaryCache(tmp_path / "c.json"),
            dictionaries_dir=tmp_path,
            skip_validation=True,
        )


def test_validate_project_reports_missing_files(scenes_file, fake_client, no_probes, sleeps):
    out = scenes_file.parent / "out"
    _generate(scenes_file, fake_client)
    (out / "demo-scene3.mp3").unlink()

    res = pipeline.validate_project(out)

    assert res["has_issues"] is True
    statuses = {s["id"]: s["status"] for s in res["scenes"]}
    assert statuses["scene3"] == "fail"
    assert statuses["scene1"] == "pass"
    assert "validatedAt" in json.loads((out / "demo-info.json").read_text())


def test_summarize_scenes_flags_mismatches():
    summary = pipeline.summarize_scenes(
        [
            {"id": "a", "actualDuration": 4.5, "duration": 3.0},
            {"id": "b", "actualDuration": 3.1, "duration": 3.0},
            {"id": "c", "actualDuration": None, "duration": 3.0},
        ]
    )
    assert summary["timing_issues"] == [{"id": "a", "actual": 4.5, "expected": 3.0, "diff": 1.5}]
    assert summary["total_actual_duration"] == 7.6


def test_regenerated_text_drops_stale_spoken_text(tmp_path, fake_client, no_probes, sleeps):
    d = tmp_path / "dictionaries"
    d.mkdir()
    (d / "brand.pls").write_text(PLS, encoding="utf-8")
    p = tmp_path / "brand.json"
    p.write_text(json.dumps({"name": "brand", "dictionary": "brand", "scenes": [{"id": "a", "text": "Built by FAI", "duration": 3.0}]}))
    fake_client.list_error = BackendError("403", status=403)
    out = tmp_path / "out"
    _generate(p, fake_client)

    pipeline.regenerate_scene(
        p,
        "a",
        client=fake_client,
        cache=DictionaryCache(tmp_path / "cache.json"),
        dictionaries_dir=d,
        output_dir=out,
        new_text="one two three four five six seven eight nine",
    )

    entry = json.loads((out / "brand-info.json").read_text())["scenes"][0]
    assert entry["spokenText"] is None
    checked = pipeline.validate_project(out)
    assert checked["scenes"][0]["word_count"] == 9
    assert checked["scenes"][0]["status"] == "pass"


def test_regenerate_without_validation_clears_old_measurements(tmp_path, fake_client, no_probes):
    project = _project_with_six_scenes(tmp_path)
    out = tmp_path / "out"
    _seed_metadata(out, ["r0", "r1", "r2", "r3", "r4", "r5"])

    pipeline.regenerate_scene(
        project,
        "s1",
        client=fake_client,
        cache=DictionaryCache(tmp_path / "c.json"),
        dictionaries_dir=tmp_path,
        output_dir=out,
        skip_validation=True,
    )

    entry = json.loads((out / "six-info.json").read_text())["scenes"][1]
    assert entry["requestId"] == "req-0"
    assert entry["actualDuration"] is None
    assert entry["wordsPerSecond"] is None
    assert entry["issues"] is None


def test_duplicate_scene_ids_rejected(tmp_path, fake_client):
    p = tmp_path / "dup.json"
    p.write_text(json.dumps({"name": "dup", "scenes": [{"id": "a", "text": "x"}, {"id": "a", "text": "y"}]}))
    with pytest.raises(StitchError, match="Duplicate scene id"):
        pipeline.load_project(p)


def test_malformed_scenes_file_is_a_stitch_error(tmp_path):
    p = tmp_path / "bad.json"
    p.write_text("{not json", encoding="utf-8")
    with pytest.raises(StitchError, match="Invalid JSON"):
        pipeline.load_project(p)
