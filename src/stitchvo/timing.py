from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from . import media
from .errors import DurationUnmeasurable

DURATION_UNKNOWN = "duration unknown"
TIMING_FIELDS = ("actualDuration", "wordsPerSecond", "leadingSilence", "trailingSilence", "issues", "warnings")


@dataclass(frozen=True)
class TimingThresholds:
    max_duration_diff_percent: float = 15.0
    max_leading_silence_ms: float = 200.0
    max_trailing_silence_ms: float = 500.0
    min_words_per_second: float = 2.0
    max_words_per_second: float = 4.5
    ideal_words_per_second: float = 3.0

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "TimingThresholds":
        known = {k: float(v) for k, v in (raw or {}).items() if k in cls.__dataclass_fields__ and v is not None}
        return cls(**known)


@dataclass
class ValidationResult:
    actual_duration: Optional[float]
    expected_duration: Optional[float] = None
    words_per_second: Optional[float] = None
    word_count: int = 0
    leading_silence: Optional[float] = None
    trailing_silence: Optional[float] = None
    issues: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        if self.issues:
            return "fail"
        if self.warnings:
            return "warn"
        return "pass"

    def metadata_fields(self) -> Dict[str, Any]:
        return {
            "actualDuration": self.actual_duration,
            "wordsPerSecond": round(self.words_per_second, 2) if self.words_per_second is not None else None,
            "leadingSilence": round(self.leading_silence, 3) if self.leading_silence is not None else None,
            "trailingSilence": round(self.trailing_silence, 3) if self.trailing_silence is not None else None,
            "issues": list(self.issues),
            "warnings": list(self.warnings),
        }


def count_words(text: str) -> int:
    return len((text or "").split())


def edge_silence(intervals: Sequence[Tuple[float, float]], total_duration: float) -> Tuple[float, float]:
    if not intervals:
        return 0.0, 0.0
    leading = 0.0
    first_start, first_end = intervals[0]
    if first_start < 0.05:
        leading = first_end

    trailing = 0.0
    last_start, last_end = intervals[-1]
    if abs(last_end - total_duration) < 0.1 or last_end > total_duration - 0.1:
        trailing = total_duration - last_start
    return leading, trailing


def classify_timing(
    text: str,
    actual_duration: float,
    intervals: Sequence[Tuple[float, float]],
    expected_duration: Optional[float] = None,
    thresholds: TimingThresholds = TimingThresholds(),
) -> ValidationResult:
    result = ValidationResult(actual_duration=actual_duration, expected_duration=expected_duration)

    if expected_duration:
        diff = actual_duration - expected_duration
        if abs(diff) / expected_duration * 100.0 > thresholds.max_duration_diff_percent:
            direction = "longer" if diff > 0 else "shorter"
            result.issues.append(
                f"Audio {abs(diff):.2f}s {direction} than expected ({actual_duration:.2f}s vs {expected_duration}s)"
            )

    leading, trailing = edge_silence(intervals, actual_duration)
    result.leading_silence = leading
    result.trailing_silence = trailing
    if leading > thresholds.max_leading_silence_ms / 1000.0:
        result.warnings.append(f"Leading silence: {leading * 1000:.0f}ms (may start late)")
    if trailing > thresholds.max_trailing_silence_ms / 1000.0:
        result.warnings.append(f"Trailing silence: {trailing * 1000:.0f}ms")

    result.word_count = count_words(text)
    speaking = actual_duration - leading - trailing
    if speaking <= 0:
        result.warnings.append("No speech detected between leading and trailing silence")
        return result

    wps = result.word_count / speaking
    result.words_per_second = wps
    target = thresholds.ideal_words_per_second
    if wps < thresholds.min_words_per_second:
        result.warnings.append(f"Speaking rate slow: {wps:.1f} words/sec (target: {target})")
    elif wps > thresholds.max_words_per_second:
        result.warnings.append(f"Speaking rate fast: {wps:.1f} words/sec (target: {target})")
    return result


def validate_timing(
    audio_path: Path,
    text: str,
    expected_duration: Optional[float] = None,
    thresholds: TimingThresholds = TimingThresholds(),
) -> ValidationResult:
    try:
        actual = media.audio_duration_seconds(audio_path)
    except DurationUnmeasurable:
        return ValidationResult(actual_duration=None, expected_duration=expected_duration, issues=[DURATION_UNKNOWN])
    intervals = media.detect_silence_intervals(audio_path, actual)
    return classify_timing(text, actual, intervals, expected_duration, thresholds)
