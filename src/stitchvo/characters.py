from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from .errors import InvalidCharacter

V3_MODEL = "eleven_v3"


class Character(str, Enum):
    LITERAL = "literal"
    NARRATOR = "narrator"
    SALESPERSON = "salesperson"
    EXPERT = "expert"
    CONVERSATIONAL = "conversational"
    DRAMATIC = "dramatic"
    CALM = "calm"


@dataclass(frozen=True)
class VoiceSettings:
    stability: float
    similarity: float
    style: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


PRESETS: Dict[Character, VoiceSettings] = {
    Character.LITERAL: VoiceSettings(stability=0.5, similarity=0.75, style=0.0),
    Character.NARRATOR: VoiceSettings(stability=0.65, similarity=0.8, style=0.15),
    Character.SALESPERSON: VoiceSettings(stability=0.4, similarity=0.75, style=0.35),
    Character.EXPERT: VoiceSettings(stability=0.7, similarity=0.85, style=0.1),
    Character.CONVERSATIONAL: VoiceSettings(stability=0.45, similarity=0.7, style=0.25),
    Character.DRAMATIC: VoiceSettings(stability=0.35, similarity=0.75, style=0.5),
    Character.CALM: VoiceSettings(stability=0.8, similarity=0.85, style=0.05),
}

DESCRIPTIONS: Dict[Character, str] = {
    Character.LITERAL: "Reads text exactly as written",
    Character.NARRATOR: "Professional storyteller, smooth transitions, engaging",
    Character.SALESPERSON: "Enthusiastic, persuasive, energetic delivery",
    Character.EXPERT: "Authoritative, confident, knowledgeable tone",
    Character.CONVERSATIONAL: "Casual, friendly, like talking to a friend",
    Character.DRAMATIC: "Intense, emotional, high impact delivery",
    Character.CALM: "Soothing, reassuring, gentle delivery",
}


def parse_character(name: str) -> Character:
    n = str(name or "").strip().lower()
    try:
        return Character(n)
    except ValueError:
        raise InvalidCharacter(str(name)) from None


def check_characters(names: Iterable[Optional[str]]) -> None:
    for name in names:
        if name:
            parse_character(name)


def effective_character(*names: Optional[str]) -> Character:
    """First named character in priority order, else literal."""
    for name in names:
        if name:
            return parse_character(name)
    return Character.LITERAL


def resolve_voice_settings(
    scene_overrides: Optional[Dict[str, Any]],
    scene_character: Optional[str],
    batch_character: Optional[str],
    cli_character: Optional[str],
    project_character: Optional[str],
) -> VoiceSettings:
    """Resolve stability/similarity/style for one scene.

    Precedence, highest first: explicit per-scene numbers, the scene's character,
    the CLI character, the scenes-file character, the configured default character,
    then ``literal``. Each numeric override applies independently.
    """
    character = effective_character(scene_character, cli_character, batch_character, project_character)
    base = PRESETS[character]
    overrides = scene_overrides or {}

    def pick(key: str, fallback: float) -> float:
        v = overrides.get(key)
        return float(v) if v is not None else fallback

    return VoiceSettings(
        stability=pick("stability", base.stability),
        similarity=pick("similarity", base.similarity),
        style=pick("style", base.style),
    )


def snap_stability_v3(stability: float) -> float:
    if stability <= 0.25:
        return 0.0
    if stability <= 0.75:
        return 0.5
    return 1.0


def settings_for_model(settings: VoiceSettings, model: str) -> VoiceSettings:
    if model != V3_MODEL:
        return settings
    return VoiceSettings(
        stability=snap_stability_v3(settings.stability),
        similarity=settings.similarity,
        style=settings.style,
    )


def list_characters() -> Dict[str, Dict[str, Any]]:
    out: Dict[str, Dict[str, Any]] = {}
    for c in Character:
        out[c.value] = {**PRESETS[c].to_dict(), "description": DESCRIPTIONS[c]}
    return out
