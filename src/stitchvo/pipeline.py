from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from .backend import DEFAULT_MODEL, DEFAULT_VOICE, SpeechResult, supports_stitching
from .characters import VoiceSettings, check_characters, effective_character, resolve_voice_settings, settings_for_model
from .errors import ArtifactWriteError, StitchError
from .metadata import ProjectMetadataStore, utc_now_iso
from .pronunciation import DictionaryCache, DictionaryResolution, resolve_dictionary
from .timing import TIMING_FIELDS, TimingThresholds, ValidationResult, validate_timing

WINDOW_SIZE = 3
SCENE_DELAY_SECONDS = 0.2
DEFAULT_PROJECT_NAME = "voiceover"

InfoCb = Optional[Callable[[str], None]]
ProgressCb = Optional[Callable[[str, int, int, str], None]]


@dataclass
class Scene:
    id: str
    text: str
    duration: Optional[float] = None
    character: Optional[str] = None
    stability: Optional[float] = None
    similarity: Optional[float] = None
    style: Optional[float] = None
    delay: float = 0

    def overrides(self) -> Dict[str, Optional[float]]:
        return {"stability": self.stability, "similarity": self.similarity, "style": self.style}


@dataclass
class Project:
    path: Path
    name: str
    voice: Optional[str]
    model: Optional[str]
    character: Optional[str]
    dictionary: Optional[str]
    scenes: List[Scene] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)

    def index_of(self, scene_id: str) -> int:
        for idx, s in enumerate(self.scenes):
            if s.id == scene_id:
                return idx
        available = ", ".join(s.id for s in self.scenes)
        raise StitchError(f'Scene "{scene_id}" not found in {self.path}. Available scenes: {available}')


def _read_text(path: Path) -> str:
    data = path.read_bytes()
    for enc in ("utf-8", "utf-8-sig", "mac_roman", "cp1252"):
        try:
            return data.decode(enc)
        except Exception:
            pass
    return data.decode("utf-8", errors="replace")


def _opt_float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


def load_project(path: Path) -> Project:
    if not path.exists():
        raise FileNotFoundError(f"Scenes file not found: {path}")
    try:
        raw = json.loads(_read_text(path))
    except ValueError as e:
        raise StitchError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(raw, dict) or not isinstance(raw.get("scenes"), list):
        raise StitchError(f"{path} must be a JSON object with a 'scenes' list")
    scenes: List[Scene] = []
    seen: Dict[str, int] = {}
    for idx, s in enumerate(raw["scenes"], start=1):
        scene_id = str(s.get("id") or f"scene{idx}")
        if scene_id in seen:
            raise StitchError(f'Duplicate scene id "{scene_id}" in {path} (scenes {seen[scene_id]} and {idx})')
        seen[scene_id] = idx
        scenes.append(
            Scene(
                id=scene_id,
                text=str(s.get("text") or ""),
                duration=_opt_float(s.get("duration")),
                character=s.get("character"),
                stability=_opt_float(s.get("stability")),
                similarity=_opt_float(s.get("similarity")),
                style=_opt_float(s.get("style")),
                delay=s.get("delay") or 0,
            )
        )
    return Project(
        path=path,
        name=str(raw.get("name") or DEFAULT_PROJECT_NAME),
        voice=raw.get("voice"),
        model=raw.get("model"),
        character=raw.get("character"),
        dictionary=raw.get("dictionary"),
        scenes=scenes,
        raw=raw,
    )


def _window(request_ids: List[Optional[str]], index: int) -> List[str]:
    return [rid for rid in request_ids[max(0, index - WINDOW_SIZE) : index] if rid]


class InMemoryWindow:
    """Request ids produced so far in the current batch run."""

    def __init__(self) -> None:
        self._ids: List[Optional[str]] = []

    def previous_request_ids(self, index: int) -> List[str]:
        return _window(self._ids, index)

    def record(self, request_id: Optional[str]) -> None:
        self._ids.append(request_id)


class PersistedWindow:
    """Request ids read back from a project's metadata record."""

    def __init__(self, request_ids: List[Optional[str]]) -> None:
        self._ids = list(request_ids)

    @classmethod
    def from_store(cls, store: ProjectMetadataStore) -> "PersistedWindow":
        return cls(store.scene_request_ids())

    def previous_request_ids(self, index: int) -> List[str]:
        return _window(self._ids, index)


def scene_filename(project_name: str, scene_id: str) -> str:
    return f"{project_name}-{scene_id}.mp3"


def _write_artifact(path: Path, data: bytes) -> int:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path.stat().st_size
    except OSError as e:
        raise ArtifactWriteError(f"Could not write {path}: {e}") from e


def _preview(text: str, limit: int = 50) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def _resolve_dictionary_name(cli_dictionary: Optional[str], no_dictionary: bool, project_dictionary: Optional[str], default_dictionary: Optional[str]) -> Optional[str]:
    if no_dictionary:
        return None
    return cli_dictionary or project_dictionary or default_dictionary


def _synthesize_one(
    *,
    client: Any,
    text: str,
    voice_id: str,
    model: str,
    settings: VoiceSettings,
    window: List[str],
    resolution: DictionaryResolution,
) -> Tuple[str, SpeechResult]:
    spoken = resolution.apply(text)
    result = client.synthesize(
        spoken,
        voice_id,
        model,
        settings_for_model(settings, model),
        window if supports_stitching(model) else [],
        resolution.locators(),
    )
    return spoken, result


def _report_validation(validation: Optional[ValidationResult], info_cb: InfoCb) -> None:
    if not validation or not info_cb:
        return
    for i in validation.issues:
        info_cb(f"issue: {i}")
    for w in validation.warnings:
        info_cb(f"warning: {w}")


def generate_scenes(
    project_path: Path,
    *,
    client: Any,
    cache: DictionaryCache,
    dictionaries_dir: Path,
    output_dir: Path,
    voice: Optional[str] = None,
    model: Optional[str] = None,
    character: Optional[str] = None,
    default_character: Optional[str] = None,
    dictionary: Optional[str] = None,
    default_dictionary: Optional[str] = None,
    no_dictionary: bool = False,
    combined: bool = True,
    skip_validation: bool = False,
    scene_delay: float = SCENE_DELAY_SECONDS,
    default_voice: str = DEFAULT_VOICE,
    default_model: str = DEFAULT_MODEL,
    thresholds: TimingThresholds = TimingThresholds(),
    progress_cb: ProgressCb = None,
    info_cb: InfoCb = None,
) -> Dict[str, Any]:
    project = load_project(project_path)
    check_characters([character, project.character, default_character, *[s.character for s in project.scenes]])

    voice_name = voice or project.voice or default_voice
    model_id = model or project.model or default_model
    global_character = effective_character(character, project.character, default_character).value
    dict_name = _resolve_dictionary_name(dictionary, no_dictionary, project.dictionary, default_dictionary)

    if info_cb:
        info_cb(
            f"scenes project={project.name} count={len(project.scenes)} voice={voice_name} model={model_id} "
            f"character={global_character} dictionary={dict_name or '-'} output={output_dir}"
        )
    voice_id = client.resolve_voice_id(voice_name)
    resolution = resolve_dictionary(dict_name, client=client, cache=cache, dictionaries_dir=dictionaries_dir, info_cb=info_cb)
    store = ProjectMetadataStore(output_dir, project.name)
    window = InMemoryWindow()

    audio_parts: List[bytes] = []
    scene_info: List[Dict[str, Any]] = []
    total_characters = 0
    total = len(project.scenes)

    for idx, scene in enumerate(project.scenes):
        scene_character = effective_character(scene.character, character, project.character, default_character).value
        if progress_cb:
            progress_cb("scenes", idx, total, f"{scene.id} ({scene_character})")
        if info_cb:
            info_cb(f"[{idx + 1}/{total}] {scene.id} ({scene_character}) \"{_preview(scene.text)}\"")

        settings = resolve_voice_settings(scene.overrides(), scene.character, project.character, character, default_character)
        spoken, result = _synthesize_one(
            client=client,
            text=scene.text,
            voice_id=voice_id,
            model=model_id,
            settings=settings,
            window=window.previous_request_ids(idx),
            resolution=resolution,
        )
        filename = scene_filename(project.name, scene.id)
        scene_path = output_dir / filename
        size = _write_artifact(scene_path, result.audio)

        validation = None if skip_validation else validate_timing(scene_path, spoken, scene.duration, thresholds)
        window.record(result.request_id)
        audio_parts.append(result.audio)

        entry: Dict[str, Any] = {
            "id": scene.id,
            "file": filename,
            "text": scene.text,
            "size": size,
            "duration": scene.duration,
            "actualDuration": None,
            "wordsPerSecond": None,
            "leadingSilence": None,
            "trailingSilence": None,
        }
        if validation:
            entry.update(validation.metadata_fields())
        if spoken != scene.text:
            entry["spokenText"] = spoken
        entry.update(
            {
                "delay": scene.delay,
                "character": scene_character,
                "requestId": result.request_id,
                "generatedAt": utc_now_iso(),
            }
        )
        scene_info.append(entry)
        total_characters += len(spoken)

        if info_cb:
            actual = f"{validation.actual_duration:.2f}s" if validation and validation.actual_duration else "?"
            status = validation.status if validation else "skipped"
            info_cb(f"{status} {filename} ({size / 1024:.1f} KB, {actual})")
        _report_validation(validation, info_cb)
        if progress_cb:
            progress_cb("scenes", idx + 1, total, f"{scene.id} done")

        if idx < total - 1 and scene_delay > 0:
            time.sleep(scene_delay)

    combined_path: Optional[Path] = None
    if combined and audio_parts:
        combined_path = output_dir / f"{project.name}-combined.mp3"
        combined_size = _write_artifact(combined_path, b"".join(audio_parts))
        if info_cb:
            info_cb(f"combined {combined_path.name} ({combined_size / 1024:.1f} KB)")

    record = {
        "name": project.name,
        "voice": voice_name,
        "model": model_id,
        "character": global_character,
        "dictionary": dict_name,
        "dictionaryMode": resolution.mode,
        "totalScenes": total,
        "totalCharacters": total_characters,
        "generatedAt": utc_now_iso(),
        "scenes": scene_info,
    }
    info_path = store.write_full(record)

    summary = summarize_scenes(scene_info, thresholds)
    return {
        "project": project.name,
        "output_dir": str(output_dir),
        "info": str(info_path),
        "combined": str(combined_path) if combined_path else None,
        "scenes": len(scene_info),
        "total_characters": total_characters,
        **summary,
    }


def summarize_scenes(scenes: List[Dict[str, Any]], thresholds: TimingThresholds = TimingThresholds()) -> Dict[str, Any]:
    total_actual = sum(s.get("actualDuration") or 0 for s in scenes)
    total_expected = sum(s.get("duration") or 0 for s in scenes)
    mismatched: List[Dict[str, Any]] = []
    limit = thresholds.max_duration_diff_percent / 100.0
    for s in scenes:
        actual, expected = s.get("actualDuration"), s.get("duration")
        if actual and expected and abs(actual - expected) / expected > limit:
            mismatched.append({"id": s["id"], "actual": actual, "expected": expected, "diff": round(actual - expected, 2)})
    return {
        "total_actual_duration": round(total_actual, 2),
        "total_expected_duration": round(total_expected, 2),
        "timing_issues": mismatched,
    }


def regenerate_scene(
    project_path: Path,
    scene_id: str,
    *,
    client: Any,
    cache: DictionaryCache,
    dictionaries_dir: Path,
    output_dir: Path,
    new_text: Optional[str] = None,
    voice: Optional[str] = None,
    model: Optional[str] = None,
    character: Optional[str] = None,
    default_character: Optional[str] = None,
    dictionary: Optional[str] = None,
    default_dictionary: Optional[str] = None,
    no_dictionary: bool = False,
    skip_validation: bool = False,
    default_voice: str = DEFAULT_VOICE,
    default_model: str = DEFAULT_MODEL,
    thresholds: TimingThresholds = TimingThresholds(),
    info_cb: InfoCb = None,
) -> Dict[str, Any]:
    project = load_project(project_path)
    index = project.index_of(scene_id)
    scene = project.scenes[index]
    check_characters([character, project.character, default_character, scene.character])

    text = new_text or scene.text
    voice_name = voice or project.voice or default_voice
    model_id = model or project.model or default_model
    scene_character = effective_character(scene.character, character, project.character, default_character).value
    dict_name = _resolve_dictionary_name(dictionary, no_dictionary, project.dictionary, default_dictionary)

    store = ProjectMetadataStore(output_dir, project.name)
    window = PersistedWindow.from_store(store)
    previous = window.previous_request_ids(index)
    if info_cb:
        info_cb(
            f"regenerate scene={scene_id} voice={voice_name} model={model_id} character={scene_character} "
            f"dictionary={dict_name or '-'} window={len(previous)} text=\"{_preview(text, 60)}\""
        )

    voice_id = client.resolve_voice_id(voice_name)
    resolution = resolve_dictionary(dict_name, client=client, cache=cache, dictionaries_dir=dictionaries_dir, info_cb=info_cb)
    settings = resolve_voice_settings(scene.overrides(), scene.character, project.character, character, default_character)
    spoken, result = _synthesize_one(
        client=client,
        text=text,
        voice_id=voice_id,
        model=model_id,
        settings=settings,
        window=previous,
        resolution=resolution,
    )
    filename = scene_filename(project.name, scene.id)
    scene_path = output_dir / filename
    size = _write_artifact(scene_path, result.audio)
    if info_cb:
        info_cb(f"regenerated {filename} ({size / 1024:.1f} KB)")

    validation = None if skip_validation else validate_timing(scene_path, spoken, scene.duration, thresholds)
    _report_validation(validation, info_cb)

    updated: Dict[str, Any] = {
        "text": text,
        "size": size,
        "requestId": result.request_id,
        "character": scene_character,
        "regeneratedAt": utc_now_iso(),
    }
    if validation:
        updated.update(validation.metadata_fields())
    else:
        # Measurements of the replaced audio no longer apply.
        updated.update({k: None for k in TIMING_FIELDS})
    updated["spokenText"] = spoken if spoken != text else None

    info_path: Optional[str] = None
    if store.exists():
        store.merge_one(scene.id, updated)
        info_path = str(store.path)
        if info_cb:
            info_cb(f"updated {store.path.name}")
    elif info_cb:
        info_cb(f"no metadata at {store.path}; run full scene generation to create it")

    if new_text:
        project.raw["scenes"][index]["text"] = new_text
        project.path.write_text(json.dumps(project.raw, indent=2), encoding="utf-8")
        if info_cb:
            info_cb(f"updated {project.path}")

    return {
        "project": project.name,
        "scene": scene.id,
        "file": str(scene_path),
        "info": info_path,
        "request_id": result.request_id,
        "previous_request_ids": previous,
        "status": validation.status if validation else "skipped",
        **({"validation": validation.metadata_fields()} if validation else {}),
    }


def speak(
    text: str,
    output_path: Path,
    *,
    client: Any,
    cache: DictionaryCache,
    dictionaries_dir: Path,
    voice: str = DEFAULT_VOICE,
    model: str = DEFAULT_MODEL,
    character: Optional[str] = None,
    default_character: Optional[str] = None,
    dictionary: Optional[str] = None,
    no_dictionary: bool = False,
    skip_validation: bool = False,
    thresholds: TimingThresholds = TimingThresholds(),
    info_cb: InfoCb = None,
) -> Dict[str, Any]:
    if not (text or "").strip():
        raise StitchError("No text provided")
    check_characters([character, default_character])
    dict_name = None if no_dictionary else dictionary
    if info_cb:
        info_cb(
            f"speak voice={voice} model={model} character={effective_character(character, default_character).value} "
            f"dictionary={dict_name or '-'} chars={len(text)} output={output_path}"
        )

    voice_id = client.resolve_voice_id(voice)
    resolution = resolve_dictionary(dict_name, client=client, cache=cache, dictionaries_dir=dictionaries_dir, info_cb=info_cb)
    settings = resolve_voice_settings(None, None, None, character, default_character)
    spoken, result = _synthesize_one(
        client=client,
        text=text,
        voice_id=voice_id,
        model=model,
        settings=settings,
        window=[],
        resolution=resolution,
    )
    size = _write_artifact(output_path, result.audio)
    if info_cb:
        info_cb(f"saved {output_path} ({size / 1024:.1f} KB)")
        if result.character_cost:
            info_cb(f"character cost: {result.character_cost}")

    validation = None if skip_validation else validate_timing(output_path, spoken, None, thresholds)
    _report_validation(validation, info_cb)
    out: Dict[str, Any] = {
        "output": str(output_path),
        "size": size,
        "request_id": result.request_id,
        "character_cost": result.character_cost,
    }
    if validation:
        out["validation"] = validation.metadata_fields()
        out["status"] = validation.status
    return out


def validate_project(
    output_dir: Path,
    *,
    thresholds: TimingThresholds = TimingThresholds(),
    info_cb: InfoCb = None,
) -> Dict[str, Any]:
    store = ProjectMetadataStore.discover(output_dir)
    record = store.load()
    scenes = record.get("scenes") or []
    if info_cb:
        info_cb(f"validate project={record.get('name', store.project_name)} scenes={len(scenes)}")

    has_issues = False
    has_warnings = False
    updated: List[Dict[str, Any]] = []
    results: List[Dict[str, Any]] = []
    for scene in scenes:
        path = output_dir / scene.get("file", "")
        if not scene.get("file") or not path.exists():
            has_issues = True
            updated.append(scene)
            results.append({"id": scene.get("id"), "status": "fail", "issues": [f"File not found - {scene.get('file')}"], "warnings": []})
            if info_cb:
                info_cb(f"fail {scene.get('id')}: file not found - {scene.get('file')}")
            continue

        validation = validate_timing(path, scene.get("spokenText") or scene.get("text", ""), scene.get("duration"), thresholds)
        updated.append({**scene, **validation.metadata_fields()})
        has_issues = has_issues or bool(validation.issues)
        has_warnings = has_warnings or bool(validation.warnings)
        results.append(
            {
                "id": scene.get("id"),
                "status": validation.status,
                "actual_duration": validation.actual_duration,
                "expected_duration": scene.get("duration"),
                "word_count": validation.word_count,
                "words_per_second": validation.words_per_second,
                "issues": validation.issues,
                "warnings": validation.warnings,
            }
        )
        if info_cb:
            actual = f"{validation.actual_duration:.2f}s" if validation.actual_duration else "?"
            info_cb(f"{validation.status} {scene.get('id')}: {actual} (expected: {scene.get('duration') or 'N/A'}s)")
        _report_validation(validation, info_cb)

    record["scenes"] = updated
    record["validatedAt"] = utc_now_iso()
    store.write_full(record)

    return {
        "info": str(store.path),
        "has_issues": has_issues,
        "has_warnings": has_warnings,
        "scenes": results,
        **summarize_scenes(updated, thresholds),
    }
