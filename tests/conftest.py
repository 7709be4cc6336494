import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from stitchvo.backend import SpeechResult
from stitchvo.errors import BackendError


class FakeClient:
    def __init__(self, *, fail_at: Optional[int] = None, dictionaries: Optional[List[Dict[str, Any]]] = None) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.fail_at = fail_at
        self.dictionaries = dictionaries or []
        self.uploads: List[str] = []
        self.list_error: Optional[Exception] = None

    def resolve_voice_id(self, voice: str) -> str:
        return f"id-{voice}"

    def synthesize(self, text, voice_id, model_id, settings, previous_request_ids=None, dictionary_locators=None):
        n = len(self.calls)
        self.calls.append(
            {
                "text": text,
                "voice_id": voice_id,
                "model_id": model_id,
                "settings": settings,
                "previous_request_ids": list(previous_request_ids or []),
                "dictionary_locators": list(dictionary_locators or []),
            }
        )
        if self.fail_at is not None and n == self.fail_at:
            raise BackendError("POST /v1/text-to-speech returned 500: boom", status=500, detail="boom")
        return SpeechResult(audio=f"AUDIO{n}|".encode(), request_id=f"req-{n}", character_cost=str(len(text)))

    def list_dictionaries(self):
        if self.list_error:
            raise self.list_error
        return self.dictionaries

    def upload_dictionary(self, path: Path, name: str):
        self.uploads.append(name)
        return {"id": f"dict-{name}", "version_id": "v1"}


@pytest.fixture()
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture()
def no_probes(monkeypatch):
    """Replace ffprobe/ffmpeg with fixed measurements: 3.0s total, no silence."""
    from stitchvo import media

    monkeypatch.setattr(media, "audio_duration_seconds", lambda path: 3.0)
    monkeypatch.setattr(media, "detect_silence_intervals", lambda path, total=None: [])


@pytest.fixture()
def scenes_file(tmp_path: Path) -> Path:
    payload = {
        "name": "demo",
        "voice": "George",
        "character": "narrator",
        "scenes": [
            {"id": f"scene{i}", "text": f"Scene number {i} has a few words.", "duration": 3.0}
            for i in range(1, 5)
        ],
    }
    p = tmp_path / "scenes.json"
    p.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return p
