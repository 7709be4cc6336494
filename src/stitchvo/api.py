from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, Optional

from . import pipeline
from .backend import DEFAULT_MODEL, DEFAULT_VOICE, ElevenLabsClient
from .characters import list_characters
from .pronunciation import DictionaryCache
from .timing import TimingThresholds


class StitchVO:
    """Programmatic API over pipeline functions for embedding in other tools."""

    def __init__(
        self,
        *,
        client: Any = None,
        dictionaries_dir: str = "dictionaries",
        dictionary_cache: Optional[str] = None,
        thresholds: Optional[Dict[str, float]] = None,
    ) -> None:
        self.client = client
        self.dictionaries_dir = Path(dictionaries_dir).expanduser()
        cache_path = Path(dictionary_cache).expanduser() if dictionary_cache else self.dictionaries_dir / ".dictionary-cache.json"
        self.cache = DictionaryCache(cache_path)
        self.thresholds = TimingThresholds.from_dict(thresholds)

    def _backend(self) -> Any:
        if self.client is None:
            self.client = ElevenLabsClient.from_env()
        return self.client

    def speak(
        self,
        text: str,
        output_path: str = "output.mp3",
        *,
        voice: str = DEFAULT_VOICE,
        model: str = DEFAULT_MODEL,
        character: Optional[str] = None,
        dictionary: Optional[str] = None,
        skip_validation: bool = False,
        info_cb: Optional[Callable[[str], None]] = None,
    ) -> Dict[str, Any]:
        return pipeline.speak(
            text,
            Path(output_path).expanduser(),
            client=self._backend(),
            cache=self.cache,
            dictionaries_dir=self.dictionaries_dir,
            voice=voice,
            model=model,
            character=character,
            dictionary=dictionary,
            skip_validation=skip_validation,
            thresholds=self.thresholds,
            info_cb=info_cb,
        )

    def generate(
        self,
        scenes_path: str,
        output_dir: str = "public/audio",
        *,
        voice: Optional[str] = None,
        model: Optional[str] = None,
        character: Optional[str] = None,
        dictionary: Optional[str] = None,
        no_dictionary: bool = False,
        combined: bool = True,
        skip_validation: bool = False,
        progress_cb=None,
        info_cb=None,
    ) -> Dict[str, Any]:
        return pipeline.generate_scenes(
            Path(scenes_path).expanduser(),
            client=self._backend(),
            cache=self.cache,
            dictionaries_dir=self.dictionaries_dir,
            output_dir=Path(output_dir).expanduser(),
            voice=voice,
            model=model,
            character=character,
            dictionary=dictionary,
            no_dictionary=no_dictionary,
            combined=combined,
            skip_validation=skip_validation,
            thresholds=self.thresholds,
            progress_cb=progress_cb,
            info_cb=info_cb,
        )

    def regenerate(
        self,
        scenes_path: str,
        scene_id: str,
        output_dir: str = "public/audio",
        *,
        new_text: Optional[str] = None,
        character: Optional[str] = None,
        dictionary: Optional[str] = None,
        no_dictionary: bool = False,
        skip_validation: bool = False,
        info_cb=None,
    ) -> Dict[str, Any]:
        return pipeline.regenerate_scene(
            Path(scenes_path).expanduser(),
            scene_id,
            client=self._backend(),
            cache=self.cache,
            dictionaries_dir=self.dictionaries_dir,
            output_dir=Path(output_dir).expanduser(),
            new_text=new_text,
            character=character,
            dictionary=dictionary,
            no_dictionary=no_dictionary,
            skip_validation=skip_validation,
            thresholds=self.thresholds,
            info_cb=info_cb,
        )

    def validate(self, output_dir: str, *, info_cb=None) -> Dict[str, Any]:
        return pipeline.validate_project(Path(output_dir).expanduser(), thresholds=self.thresholds, info_cb=info_cb)

    def characters(self) -> Dict[str, Dict[str, Any]]:
        return list_characters()
