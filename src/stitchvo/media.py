from __future__ import annotations

import re
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

from .errors import DurationUnmeasurable, StitchError

SILENCE_NOISE_DB = -30
SILENCE_MIN_SECONDS = 0.1


def audio_duration_seconds(path: Path) -> float:
    cmd = [
        "ffprobe",
        "-v",
        "error",
        "-show_entries",
        "format=duration",
        "-of",
        "default=noprint_wrappers=1:nokey=1",
        str(path),
    ]
    try:
        p = subprocess.run(cmd, check=True, capture_output=True, text=True)
        duration = float((p.stdout or "").strip())
    except (OSError, subprocess.CalledProcessError, ValueError) as e:
        raise DurationUnmeasurable(f"Could not get duration for {path}: {e}") from e
    if duration <= 0:
        raise DurationUnmeasurable(f"Non-positive duration for {path}: {duration}")
    return duration


def parse_silencedetect(output: str, total_duration: Optional[float] = None) -> List[Tuple[float, float]]:
    starts = [float(x) for x in re.findall(r"silence_start: (-?[\d.]+)", output or "")]
    ends = [float(x) for x in re.findall(r"silence_end: (-?[\d.]+)", output or "")]
    intervals: List[Tuple[float, float]] = []
    for idx, start in enumerate(starts):
        if idx < len(ends):
            intervals.append((max(0.0, start), ends[idx]))
        elif total_duration is not None:
            # Silence that runs to the end of the file is reported without an end.
            intervals.append((max(0.0, start), total_duration))
    return intervals


def detect_silence_intervals(path: Path, total_duration: Optional[float] = None) -> List[Tuple[float, float]]:
    cmd = [
        "ffmpeg",
        "-hide_banner",
        "-nostats",
        "-i",
        str(path),
        "-af",
        f"silencedetect=noise={SILENCE_NOISE_DB}dB:d={SILENCE_MIN_SECONDS}",
        "-f",
        "null",
        "-",
    ]
    try:
        p = subprocess.run(cmd, check=True, capture_output=True, text=True)
    except (OSError, subprocess.CalledProcessError):
        return []
    return parse_silencedetect((p.stderr or "") + (p.stdout or ""), total_duration)


def embed_thumbnail(video_path: Path, thumbnail_path: Path, output_path: Path) -> Path:
    if not video_path.exists():
        raise FileNotFoundError(f"Video file not found: {video_path}")
    if not thumbnail_path.exists():
        raise FileNotFoundError(f"Thumbnail file not found: {thumbnail_path}")
    if shutil.which("ffmpeg") is None:
        raise StitchError("ffmpeg not found. Please install ffmpeg to embed thumbnails.")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    cmd = [
        "ffmpeg",
        "-y",
        "-hide_banner",
        "-loglevel",
        "error",
        "-i",
        str(video_path),
        "-i",
        str(thumbnail_path),
        "-map",
        "0",
        "-map",
        "1",
        "-c",
        "copy",
        "-disposition:v:1",
        "attached_pic",
        str(output_path),
    ]
    try:
        subprocess.run(cmd, check=True, capture_output=True, text=True)
    except subprocess.CalledProcessError as e:
        raise StitchError(f"Failed to embed thumbnail: {(e.stderr or '').strip() or e}") from e
    return output_path


def default_thumbnail_output(video_path: Path) -> Path:
    return video_path.with_name(f"{video_path.stem}-thumb{video_path.suffix or '.mp4'}")
