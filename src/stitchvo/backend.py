from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from .characters import V3_MODEL, VoiceSettings
from .errors import BackendError

API_BASE = "https://api.elevenlabs.io"
DEFAULT_MODEL = "eleven_multilingual_v2"
DEFAULT_VOICE = "George"


@dataclass
class SpeechResult:
    audio: bytes
    request_id: Optional[str]
    character_cost: Optional[str] = None


def supports_stitching(model: str) -> bool:
    return model != V3_MODEL


def _error_detail(resp: requests.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        return resp.text
    detail = payload.get("detail") if isinstance(payload, dict) else None
    if isinstance(detail, dict):
        return str(detail.get("message") or detail)
    return str(detail or payload)


class ElevenLabsClient:
    """Thin HTTP client for the ElevenLabs text-to-speech and dictionary endpoints."""

    def __init__(self, api_key: str, *, base_url: str = API_BASE, timeout: float = 90.0) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = float(timeout)
        self.session = requests.Session()
        self.session.headers.update({"xi-api-key": api_key})

    @classmethod
    def from_env(cls, *, timeout: float = 90.0) -> "ElevenLabsClient":
        api_key = os.getenv("ELEVENLABS_API_KEY")
        if not api_key:
            raise BackendError("ELEVENLABS_API_KEY not set (checked environment, .env and .env.local)")
        return cls(api_key, base_url=os.getenv("ELEVENLABS_API_BASE", API_BASE), timeout=timeout)

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise BackendError(f"{method} {path} failed: {e}") from e
        if resp.status_code not in (200, 201):
            detail = _error_detail(resp)
            raise BackendError(f"{method} {path} returned {resp.status_code}: {detail}", status=resp.status_code, detail=detail)
        return resp

    def synthesize(
        self,
        text: str,
        voice_id: str,
        model_id: str,
        settings: VoiceSettings,
        previous_request_ids: Optional[List[str]] = None,
        dictionary_locators: Optional[List[Dict[str, str]]] = None,
    ) -> SpeechResult:
        body: Dict[str, Any] = {
            "text": text,
            "model_id": model_id,
            "voice_settings": {
                "stability": settings.stability,
                "similarity_boost": settings.similarity,
                "style": settings.style,
                "use_speaker_boost": True,
            },
        }
        if previous_request_ids:
            body["previous_request_ids"] = list(previous_request_ids)
        if dictionary_locators:
            body["pronunciation_dictionary_locators"] = list(dictionary_locators)
        resp = self._request(
            "POST",
            f"/v1/text-to-speech/{voice_id}",
            json=body,
            headers={"Accept": "audio/mpeg"},
        )
        return SpeechResult(
            audio=resp.content,
            request_id=resp.headers.get("request-id"),
            character_cost=resp.headers.get("character-cost"),
        )

    def list_voices(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/v1/voices").json().get("voices") or []

    def resolve_voice_id(self, voice: str) -> str:
        # Voice ids are 20-24 character tokens; anything else is looked up by name.
        if 20 <= len(voice) <= 24:
            return voice
        for v in self.list_voices():
            if str(v.get("name", "")).lower() == voice.lower():
                return v["voice_id"]
        raise BackendError(f'Voice "{voice}" not found. Use `stitchvo voices` to see available voices.')

    def list_dictionaries(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/v1/pronunciation-dictionaries").json().get("pronunciation_dictionaries") or []

    def upload_dictionary(self, path: Path, name: str) -> Dict[str, str]:
        with path.open("rb") as f:
            resp = self._request(
                "POST",
                "/v1/pronunciation-dictionaries/add-from-file",
                data={"name": name},
                files={"file": (path.name, f, "application/xml")},
            )
        payload = resp.json()
        return {"id": payload["id"], "version_id": payload["version_id"]}
