from __future__ import annotations

import argparse
from datetime import datetime
import json
import os
from pathlib import Path
import sys
import tomllib
from typing import Any, Callable, Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from . import media, pipeline
from .backend import DEFAULT_MODEL, DEFAULT_VOICE, ElevenLabsClient
from .characters import list_characters
from .errors import StitchError
from .pronunciation import DictionaryCache, list_local_dictionaries
from .timing import TimingThresholds

console = Console()

DEFAULT_CONFIG: dict[str, Any] = {
    "global": {
        "display": "normal",
        "verbose": 2,
        "logging": 0,
        "logging_file": None,
        "logging_clear": False,
    },
    "synth": {
        "voice": DEFAULT_VOICE,
        "model": DEFAULT_MODEL,
        "character": None,
        "dictionary": None,
        "dictionaries_dir": "dictionaries",
        "dictionary_cache": None,
        "output": "output.mp3",
        "output_dir": "public/audio",
        "request_timeout_seconds": 90,
        "scene_delay_ms": 200,
        "combined": True,
        "skip_validation": False,
    },
    "validate": {
        "max_duration_diff_percent": 15.0,
        "max_leading_silence_ms": 200.0,
        "max_trailing_silence_ms": 500.0,
        "min_words_per_second": 2.0,
        "max_words_per_second": 4.5,
        "ideal_words_per_second": 3.0,
    },
}


def _load_env() -> None:
    load_dotenv(Path.cwd() / ".env")
    load_dotenv(Path.cwd() / ".env.local", override=True)


def _merge_config(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            nested = dict(out[k])
            nested.update(v)
            out[k] = nested
        else:
            out[k] = v
    return out


def _config_path() -> Path:
    explicit = os.getenv("STITCHVO_CONFIG")
    if explicit:
        return Path(explicit).expanduser()
    return Path.home() / ".config" / "stitchvo" / "config.json"


def _load_blob(path: Path) -> dict[str, Any]:
    if path.suffix.lower() == ".toml":
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    else:
        data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        return {}
    if isinstance(data.get("stitchvo"), dict):
        return data["stitchvo"]
    return data


def _load_config() -> dict[str, Any]:
    path = _config_path()
    if not path.exists():
        return _merge_config(DEFAULT_CONFIG, {})
    return _merge_config(DEFAULT_CONFIG, _load_blob(path))


def _save_config(cfg: dict[str, Any]) -> Path:
    path = _config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(cfg, indent=2), encoding="utf-8")
    return path


def _coerce_scalar(text: str) -> Any:
    t = text.strip()
    tl = t.lower()
    if tl in {"true", "false"}:
        return tl == "true"
    if tl in {"null", "none"}:
        return None
    try:
        if "." in t:
            return float(t)
        return int(t)
    except ValueError:
        pass
    if (t.startswith("{") and t.endswith("}")) or (t.startswith("[") and t.endswith("]")):
        try:
            return json.loads(t)
        except ValueError:
            pass
    return text


def _cfg_get(cfg: dict[str, Any], path: str, default: Any = None) -> Any:
    cur: Any = cfg
    for part in path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return default
        cur = cur[part]
    return cur


def _cfg_set(cfg: dict[str, Any], path: str, value: Any) -> None:
    cur: dict[str, Any] = cfg
    parts = path.split(".")
    for p in parts[:-1]:
        nxt = cur.get(p)
        if not isinstance(nxt, dict):
            nxt = {}
            cur[p] = nxt
        cur = nxt
    cur[parts[-1]] = value


def _cfg_flatten_keys(d: dict[str, Any], prefix: str = "") -> list[str]:
    keys: list[str] = []
    for k, v in d.items():
        p = f"{prefix}.{k}" if prefix else k
        if isinstance(v, dict):
            keys.extend(_cfg_flatten_keys(v, p))
        else:
            keys.append(p)
    return keys


def _resolve(cli_value: Any, cfg: dict[str, Any], path: str, fallback: Any) -> Any:
    if cli_value is not None:
        return cli_value
    return _cfg_get(cfg, path, fallback)


class _CliLogger:
    def __init__(self, level: int, log_path: Optional[Path]) -> None:
        self.level = max(0, min(3, int(level)))
        self.log_path = log_path
        self._enabled = self.level > 0 and self.log_path is not None

    def write(self, level: int, message: str) -> None:
        if not self._enabled or int(level) > self.level:
            return
        ts = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with self.log_path.open("a", encoding="utf-8") as f:
            f.write(f"[{ts}] {message}\n")


def _resolve_log_file_path(args: argparse.Namespace, raw: Optional[str]) -> Optional[Path]:
    if int(getattr(args, "logging", 0) or 0) <= 0:
        return None
    ts = datetime.now().strftime("%y%m%d.%H%M")
    primary = getattr(args, "scenes", None) or getattr(args, "input", None)
    base_stem = Path(primary).stem if primary else "stitchvo"
    default_name = f"{base_stem}-{ts}.log"

    if raw:
        p = Path(raw).expanduser()
        # Existing directory, trailing slash, or no suffix means "folder target".
        if p.exists() and p.is_dir():
            return p / default_name
        if str(raw).endswith("/") or p.suffix == "":
            return p / default_name
        return p
    return Path.cwd() / default_name


def _setup_logger(args: argparse.Namespace, cfg: dict[str, Any]) -> _CliLogger:
    if getattr(args, "l0", False):
        level = 0
    elif getattr(args, "l1", False):
        level = 1
    elif getattr(args, "l2", False):
        level = 2
    elif getattr(args, "l3", False):
        level = 3
    else:
        level = int(_resolve(getattr(args, "logging", None), cfg, "global.logging", 0) or 0)
    args.logging = level
    log_path = _resolve_log_file_path(args, _resolve(getattr(args, "logging_file", None), cfg, "global.logging_file", None))
    clear = bool(getattr(args, "logging_clear", False)) or bool(_cfg_get(cfg, "global.logging_clear", False))
    if log_path and clear:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        log_path.write_text("", encoding="utf-8")
    logger = _CliLogger(level=level, log_path=log_path)
    if logger.log_path is not None and logger.level > 0:
        logger.write(1, f"log_file={logger.log_path}")
    return logger


def _display_mode(args: argparse.Namespace, cfg: dict[str, Any]) -> str:
    cli = args.display
    if cli is None:
        cli = _cfg_get(cfg, "global.display", "normal")
    if cli in {"r", "rich"}:
        return "rich"
    return "normal"


def _verbosity(args: argparse.Namespace, cfg: dict[str, Any]) -> int:
    if getattr(args, "quiet", False):
        return 0
    for level in (0, 1, 2, 3):
        if getattr(args, f"v{level}", False):
            return level
    if args.verbose is not None:
        return max(0, min(3, int(args.verbose)))
    return int(_cfg_get(cfg, "global.verbose", 2))


def _print(obj: Any, *, verbosity: int, display: str) -> None:
    if verbosity <= 0:
        return
    if verbosity == 1:
        if isinstance(obj, dict):
            for k in ("output", "file", "combined", "info"):
                if obj.get(k):
                    print(obj[k])
        return
    if display == "rich":
        console.print_json(json.dumps(obj, indent=2))
    else:
        print(json.dumps(obj, indent=2))


def _info_printer(verbosity: int, logger: _CliLogger) -> Callable[[str], None]:
    def info_cb(message: str) -> None:
        if verbosity >= 2:
            console.print(message, markup=False, highlight=False)
        logger.write(2, message)

    return info_cb


def _thresholds(cfg: dict[str, Any]) -> TimingThresholds:
    return TimingThresholds.from_dict(_cfg_get(cfg, "validate", {}))


def _dictionaries_dir(args: argparse.Namespace, cfg: dict[str, Any]) -> Path:
    return Path(_resolve(getattr(args, "dictionaries_dir", None), cfg, "synth.dictionaries_dir", "dictionaries")).expanduser()


def _dictionary_cache(cfg: dict[str, Any], dictionaries_dir: Path) -> DictionaryCache:
    raw = _cfg_get(cfg, "synth.dictionary_cache", None)
    return DictionaryCache(Path(raw).expanduser() if raw else dictionaries_dir / ".dictionary-cache.json")


def _client(cfg: dict[str, Any]) -> ElevenLabsClient:
    return ElevenLabsClient.from_env(timeout=float(_cfg_get(cfg, "synth.request_timeout_seconds", 90)))


def _cmd_speak(args: argparse.Namespace) -> None:
    cfg = _load_config()
    display = _display_mode(args, cfg)
    verbosity = _verbosity(args, cfg)
    logger = _setup_logger(args, cfg)

    text = args.text
    if args.file:
        path = Path(args.file).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        text = pipeline._read_text(path).strip()
    if not text:
        raise StitchError("No text provided. Use --text, --file, or the scenes command")

    dictionaries_dir = _dictionaries_dir(args, cfg)
    output = Path(_resolve(args.output, cfg, "synth.output", "output.mp3")).expanduser()
    logger.write(1, f"command=speak output={output} chars={len(text)}")
    out = pipeline.speak(
        text,
        output,
        client=_client(cfg),
        cache=_dictionary_cache(cfg, dictionaries_dir),
        dictionaries_dir=dictionaries_dir,
        voice=_resolve(args.voice, cfg, "synth.voice", DEFAULT_VOICE),
        model=_resolve(args.model, cfg, "synth.model", DEFAULT_MODEL),
        character=args.character,
        default_character=_cfg_get(cfg, "synth.character", None),
        dictionary=_resolve(args.dictionary, cfg, "synth.dictionary", None),
        no_dictionary=bool(args.no_dictionary),
        skip_validation=bool(_resolve(args.skip_validation, cfg, "synth.skip_validation", False)),
        thresholds=_thresholds(cfg),
        info_cb=_info_printer(verbosity, logger),
    )
    _print(out, verbosity=verbosity, display=display)


def _print_scene_summary(out: dict[str, Any], scenes_file: str, output_dir: Path) -> None:
    console.print(f"\n[bold]Summary[/bold]  scenes={out['scenes']} characters={out['total_characters']:,}")
    console.print(
        f"Total duration: {out['total_actual_duration']:.2f}s (expected: {out['total_expected_duration']:.2f}s)"
    )
    issues = out.get("timing_issues") or []
    if issues:
        console.print(f"[yellow]{len(issues)} scene(s) with timing issues:[/yellow]")
        for s in issues:
            sign = "+" if s["diff"] > 0 else ""
            console.print(f"  - {s['id']}: {sign}{s['diff']:.2f}s (actual: {s['actual']:.2f}s, expected: {s['expected']}s)")
        console.print(f"Regenerate with: stitchvo scenes {scenes_file} --scene <scene-id> --output-dir {output_dir}")


def _cmd_scenes(args: argparse.Namespace) -> None:
    cfg = _load_config()
    display = _display_mode(args, cfg)
    verbosity = _verbosity(args, cfg)
    logger = _setup_logger(args, cfg)

    scenes_file = Path(args.scenes).expanduser()
    output_dir = Path(_resolve(args.output_dir, cfg, "synth.output_dir", "public/audio")).expanduser()
    dictionaries_dir = _dictionaries_dir(args, cfg)
    info_cb = _info_printer(verbosity, logger)
    common: dict[str, Any] = dict(
        client=_client(cfg),
        cache=_dictionary_cache(cfg, dictionaries_dir),
        dictionaries_dir=dictionaries_dir,
        output_dir=output_dir,
        voice=args.voice,
        model=args.model,
        character=args.character,
        default_character=_cfg_get(cfg, "synth.character", None),
        dictionary=args.dictionary,
        default_dictionary=_cfg_get(cfg, "synth.dictionary", None),
        no_dictionary=bool(args.no_dictionary),
        skip_validation=bool(_resolve(args.skip_validation, cfg, "synth.skip_validation", False)),
        default_voice=_cfg_get(cfg, "synth.voice", DEFAULT_VOICE),
        default_model=_cfg_get(cfg, "synth.model", DEFAULT_MODEL),
        thresholds=_thresholds(cfg),
    )

    if args.scene:
        logger.write(1, f"command=scenes mode=regenerate scenes={scenes_file} scene={args.scene}")
        out = pipeline.regenerate_scene(scenes_file, args.scene, new_text=args.new_text, info_cb=info_cb, **common)
        _print(out, verbosity=verbosity, display=display)
        return

    logger.write(1, f"command=scenes mode=batch scenes={scenes_file} output_dir={output_dir}")
    combined = not bool(args.no_combined) and bool(_cfg_get(cfg, "synth.combined", True))
    scene_delay = float(_cfg_get(cfg, "synth.scene_delay_ms", 200)) / 1000.0

    if display == "rich" and verbosity >= 2:
        with Progress(
            SpinnerColumn(),
            TextColumn("[bold]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            tasks: dict[str, int] = {}

            def progress_cb(stage: str, current: int, total: int, message: str) -> None:
                if stage not in tasks:
                    tasks[stage] = progress.add_task(message, total=max(total, 1))
                progress.update(tasks[stage], completed=max(0, min(current, max(total, 1))), description=message)
                logger.write(3, f"progress stage={stage} {current}/{total} msg={message}")

            def rich_info(message: str) -> None:
                progress.console.log(message, markup=False)
                logger.write(2, message)

            out = pipeline.generate_scenes(
                scenes_file, combined=combined, scene_delay=scene_delay, progress_cb=progress_cb, info_cb=rich_info, **common
            )
    else:
        out = pipeline.generate_scenes(scenes_file, combined=combined, scene_delay=scene_delay, info_cb=info_cb, **common)

    if verbosity >= 2:
        _print_scene_summary(out, args.scenes, output_dir)
    _print(out, verbosity=verbosity, display=display)


def _cmd_validate(args: argparse.Namespace) -> None:
    cfg = _load_config()
    display = _display_mode(args, cfg)
    verbosity = _verbosity(args, cfg)
    logger = _setup_logger(args, cfg)
    output_dir = Path(args.input).expanduser()
    logger.write(1, f"command=validate dir={output_dir}")
    out = pipeline.validate_project(output_dir, thresholds=_thresholds(cfg), info_cb=_info_printer(verbosity, logger))
    if verbosity >= 2:
        console.print(
            f"\nTotal duration: {out['total_actual_duration']:.2f}s (expected: {out['total_expected_duration']:.2f}s)"
        )
        if out["has_issues"]:
            console.print("[red]Issues found - consider regenerating affected scenes[/red]")
        elif out["has_warnings"]:
            console.print("[yellow]Warnings found - review timing for best results[/yellow]")
        else:
            console.print("[green]All scenes passed validation![/green]")
    _print(out, verbosity=verbosity, display=display)
    if out["has_issues"]:
        raise SystemExit(1)


def _cmd_voices(args: argparse.Namespace) -> None:
    cfg = _load_config()
    logger = _setup_logger(args, cfg)
    logger.write(1, "command=voices")
    voices = _client(cfg).list_voices()
    table = Table(title="Available Voices")
    table.add_column("Name")
    table.add_column("ID")
    table.add_column("Labels")
    for v in voices:
        labels = ", ".join(str(x) for x in (v.get("labels") or {}).values())
        table.add_row(str(v.get("name", ""))[:24], str(v.get("voice_id", "")), labels[:40])
    console.print(table)


def _cmd_characters(args: argparse.Namespace) -> None:
    table = Table(title="Character Presets")
    for col in ("Name", "Stability", "Similarity", "Style", "Description"):
        table.add_column(col)
    for name, preset in list_characters().items():
        table.add_row(
            name,
            f"{preset['stability']:.2f}",
            f"{preset['similarity']:.2f}",
            f"{preset['style']:.2f}",
            preset["description"],
        )
    console.print(table)


def _cmd_dictionaries(args: argparse.Namespace) -> None:
    cfg = _load_config()
    logger = _setup_logger(args, cfg)
    logger.write(1, "command=dictionaries")
    dictionaries_dir = _dictionaries_dir(args, cfg)

    console.print(f"[bold]Local dictionaries[/bold] ({dictionaries_dir}):")
    local = list_local_dictionaries(dictionaries_dir)
    for d in local:
        console.print(f"  - {d['name']} ({d['file']})")
    if not local:
        console.print("  (none)")

    if os.getenv("ELEVENLABS_API_KEY"):
        console.print("\n[bold]Remote dictionaries[/bold]:")
        try:
            remote = _client(cfg).list_dictionaries()
        except StitchError as e:
            console.print(f"  (error: {e})")
        else:
            for d in remote:
                console.print(f"  - {d.get('name')} (id: {d.get('id')})")
            if not remote:
                console.print("  (none)")

    console.print("\n[bold]Cached dictionary IDs[/bold]:")
    cached = _dictionary_cache(cfg, dictionaries_dir).load()
    for name, ref in cached.items():
        console.print(f"  - {name}: {ref.get('id') if isinstance(ref, dict) else ref}")
    if not cached:
        console.print("  (none)")


def _cmd_thumbnail(args: argparse.Namespace) -> None:
    cfg = _load_config()
    display = _display_mode(args, cfg)
    verbosity = _verbosity(args, cfg)
    logger = _setup_logger(args, cfg)
    video = Path(args.video).expanduser()
    output = Path(args.output).expanduser() if args.output else media.default_thumbnail_output(video)
    logger.write(1, f"command=thumbnail video={video} thumbnail={args.thumbnail} output={output}")
    media.embed_thumbnail(video, Path(args.thumbnail).expanduser(), output)
    _print({"output": str(output), "size": output.stat().st_size}, verbosity=verbosity, display=display)


def _cmd_config(args: argparse.Namespace) -> None:
    cfg = _load_config()
    logger = _setup_logger(args, cfg)
    logger.write(1, f"command=config action={args.config_action}")
    if args.config_action == "path":
        print(_config_path())
        return
    if args.config_action == "show":
        print(json.dumps(cfg, indent=2))
        print("\nHow to change settings:")
        print("  stitchvo config set <dotted.key> <value>")
        print("  stitchvo config get <dotted.key>")
        print("\nExamples:")
        print("  stitchvo config set synth.voice George")
        print("  stitchvo config set synth.character narrator")
        print("  stitchvo config set validate.max_duration_diff_percent 10")
        print("  stitchvo config set global.display rich")
        print("\nEditable keys:")
        for k in sorted(_cfg_flatten_keys(cfg)):
            print(f"  - {k}")
        return
    if args.config_action == "get":
        print(json.dumps(_cfg_get(cfg, args.key, None), indent=2))
        return
    if args.config_action == "set":
        val = _coerce_scalar(args.value)
        _cfg_set(cfg, args.key, val)
        path = _save_config(cfg)
        print(f"Saved {args.key} in {path}")
        return
    raise ValueError(f"Unknown config action: {args.config_action}")


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--quiet", action="store_true", help="Minimal output")
    parser.add_argument("--display", choices=["rich", "normal", "r", "n"], default=None, help="Display style")
    parser.add_argument("--verbose", type=int, choices=[0, 1, 2, 3], default=None, help="Verbosity level")
    parser.add_argument("-v0", action="store_true", help="Verbosity 0 (silent)")
    parser.add_argument("-v1", action="store_true", help="Verbosity 1 (minimal)")
    parser.add_argument("-v2", action="store_true", help="Verbosity 2 (default info)")
    parser.add_argument("-v3", action="store_true", help="Verbosity 3 (debug)")
    parser.add_argument("--logging", type=int, choices=[0, 1, 2, 3], default=None, help="File logging level")
    parser.add_argument("-l0", action="store_true", help="Logging level 0 (off)")
    parser.add_argument("-l1", action="store_true", help="Logging level 1")
    parser.add_argument("-l2", action="store_true", help="Logging level 2")
    parser.add_argument("-l3", action="store_true", help="Logging level 3")
    parser.add_argument("--logging-file", default=None, help="Log file path or folder")
    parser.add_argument("--logging-clear", action="store_true", help="Clear log file before writing")


def _add_voice_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--voice", default=None, help="Voice name or ID (default: George)")
    parser.add_argument("--model", "-m", default=None, help="Model ID (default: eleven_multilingual_v2)")
    parser.add_argument("--character", "-c", default=None, help="Character preset (narrator, salesperson, expert, ...)")
    parser.add_argument("--dictionary", default=None, help="Pronunciation dictionary name")
    parser.add_argument("--no-dictionary", action="store_true", help="Disable pronunciation dictionary")
    parser.add_argument("--dictionaries-dir", default=None, help="Folder holding <name>.pls dictionaries")
    parser.add_argument("--skip-validation", action="store_true", default=None, help="Skip timing validation")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="stitchvo", description="Stitched voiceover generation with timing validation")
    _add_common_options(p)

    sub = p.add_subparsers(dest="command", required=True)

    sp = sub.add_parser("speak", help="Generate one voiceover from text")
    _add_common_options(sp)
    _add_voice_options(sp)
    sp.add_argument("--text", "-t", default=None, help="Text to convert to speech")
    sp.add_argument("--file", "-f", default=None, help="Read text from file")
    sp.add_argument("--output", "-o", default=None, help="Output file path (default: output.mp3)")
    sp.set_defaults(func=_cmd_speak)

    sc = sub.add_parser("scenes", help="Generate scenes with request stitching, or regenerate one scene")
    _add_common_options(sc)
    _add_voice_options(sc)
    sc.add_argument("scenes", help="Scenes JSON file")
    sc.add_argument("--output-dir", default=None, help="Output directory for scene files")
    sc.add_argument("--scene", default=None, help="Regenerate a single scene by ID")
    sc.add_argument("--new-text", default=None, help="New text for scene regeneration (written back to the scenes file)")
    sc.add_argument("--no-combined", action="store_true", help="Do not write the combined file")
    sc.set_defaults(func=_cmd_scenes)

    va = sub.add_parser("validate", help="Validate timing of generated audio in a directory")
    _add_common_options(va)
    va.add_argument("input", help="Directory holding <project>-info.json")
    va.set_defaults(func=_cmd_validate)

    vo = sub.add_parser("voices", help="List available voices")
    _add_common_options(vo)
    vo.set_defaults(func=_cmd_voices)

    ch = sub.add_parser("characters", help="List character presets")
    _add_common_options(ch)
    ch.set_defaults(func=_cmd_characters)

    di = sub.add_parser("dictionaries", help="List local, remote and cached pronunciation dictionaries")
    _add_common_options(di)
    di.add_argument("--dictionaries-dir", default=None)
    di.set_defaults(func=_cmd_dictionaries)

    th = sub.add_parser("thumbnail", help="Embed a thumbnail image into an MP4")
    _add_common_options(th)
    th.add_argument("video", help="Video file")
    th.add_argument("--thumbnail", required=True, help="Thumbnail image (PNG/JPG)")
    th.add_argument("--output", "-o", default=None, help="Output path (default: <video>-thumb.mp4)")
    th.set_defaults(func=_cmd_thumbnail)

    cfg = sub.add_parser("config", help="Show or update stitchvo defaults config")
    _add_common_options(cfg)
    cfg_sub = cfg.add_subparsers(dest="config_action", required=True)
    cfg_path = cfg_sub.add_parser("path", help="Show config file path")
    _add_common_options(cfg_path)
    cfg_show = cfg_sub.add_parser("show", help="Show effective config")
    _add_common_options(cfg_show)
    cfg_get = cfg_sub.add_parser("get", help="Get config value by dotted path")
    _add_common_options(cfg_get)
    cfg_get.add_argument("key")
    cfg_set = cfg_sub.add_parser("set", help="Set config value by dotted path")
    _add_common_options(cfg_set)
    cfg_set.add_argument("key")
    cfg_set.add_argument("value")
    cfg.set_defaults(func=_cmd_config)

    return p


def main(argv: Optional[list[str]] = None) -> None:
    _load_env()
    parser = build_parser()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)
    try:
        args.func(args)
    except (StitchError, FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}", highlight=False)
        raise SystemExit(1)
    except KeyError as e:
        console.print(f"[red]Error:[/red] {e.args[0] if e.args else e}", highlight=False)
        raise SystemExit(1)
    except KeyboardInterrupt:
        print("Cancelled.")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
