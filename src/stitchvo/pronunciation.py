from __future__ import annotations

import html
import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import BackendError, DictionaryUnavailable

LEXEME_RE = re.compile(
    r"<lexeme>[\s\S]*?<grapheme>([^<]+)</grapheme>[\s\S]*?<alias>([^<]+)</alias>[\s\S]*?</lexeme>",
    re.IGNORECASE,
)


class DictionaryCache:
    """Name -> {id, versionId} mapping persisted as one JSON file.

    Every call reads the whole file and, for ``put``, writes it back; there is no
    cross-process locking.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> Dict[str, Dict[str, str]]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, name: str) -> Optional[Dict[str, str]]:
        ref = self.load().get(name)
        if isinstance(ref, dict) and ref.get("id") and ref.get("versionId"):
            return ref
        return None

    def put(self, name: str, ref: Dict[str, str]) -> None:
        data = self.load()
        data[name] = ref
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")


@dataclass
class DictionaryResolution:
    name: Optional[str]
    mode: str = "none"
    id: Optional[str] = None
    version_id: Optional[str] = None
    substitutions: List[Tuple[str, str]] = field(default_factory=list)

    def locators(self) -> List[Dict[str, str]]:
        if self.mode != "remote":
            return []
        return [{"pronunciation_dictionary_id": self.id, "version_id": self.version_id}]

    def apply(self, text: str) -> str:
        if self.mode != "local":
            return text
        return apply_substitutions(text, self.substitutions)


def dictionary_path(dictionaries_dir: Path, name: str) -> Path:
    return dictionaries_dir / f"{name}.pls"


def parse_pls(path: Path) -> List[Tuple[str, str]]:
    content = path.read_text(encoding="utf-8")
    pairs: List[Tuple[str, str]] = []
    for m in LEXEME_RE.finditer(content):
        grapheme = html.unescape(m.group(1).strip())
        alias = html.unescape(m.group(2).strip())
        if grapheme:
            pairs.append((grapheme, alias))
    # Longest grapheme first so containing matches win over their substrings.
    pairs.sort(key=lambda p: len(p[0]), reverse=True)
    return pairs


def apply_substitutions(text: str, substitutions: List[Tuple[str, str]]) -> str:
    # Pairs run sequentially over the running text, so an alias that contains a later
    # grapheme gets substituted again.
    t = text or ""
    for grapheme, alias in substitutions:
        t = re.sub(re.escape(grapheme), lambda _m, a=alias: a, t, flags=re.IGNORECASE)
    return t


def _remote(name: str, ref: Dict[str, str]) -> DictionaryResolution:
    return DictionaryResolution(name=name, mode="remote", id=ref["id"], version_id=ref["versionId"])


def _remember(cache: DictionaryCache, name: str, ref: Dict[str, str], info_cb: Optional[Callable[[str], None]]) -> None:
    # The remote reference stays usable when the cache file cannot be written.
    try:
        cache.put(name, ref)
    except OSError as e:
        if info_cb:
            info_cb(f"dictionary cache not written path={cache.path} err={e}")


def _fetch_remote(name: str, *, client: Any, cache: DictionaryCache, dictionaries_dir: Path, info_cb: Optional[Callable[[str], None]]) -> Dict[str, str]:
    if client is None:
        raise DictionaryUnavailable("no backend client available")
    try:
        for d in client.list_dictionaries():
            if d.get("name") == name:
                ref = {"id": d["id"], "versionId": d["latest_version_id"]}
                break
        else:
            path = dictionary_path(dictionaries_dir, name)
            if not path.exists():
                raise DictionaryUnavailable(f"Dictionary file not found: {path}")
            if info_cb:
                info_cb(f"dictionary uploading name={name} file={path}")
            uploaded = client.upload_dictionary(path, name)
            ref = {"id": uploaded["id"], "versionId": uploaded["version_id"]}
    except (BackendError, OSError, KeyError) as e:
        raise DictionaryUnavailable(str(e)) from e
    if info_cb:
        info_cb(f"dictionary remote name={name} id={ref['id']}")
    _remember(cache, name, ref, info_cb)
    return ref


def resolve_dictionary(
    name: Optional[str],
    *,
    client: Any,
    cache: DictionaryCache,
    dictionaries_dir: Path,
    info_cb: Optional[Callable[[str], None]] = None,
) -> DictionaryResolution:
    if not name:
        return DictionaryResolution(name=None)

    cached = cache.get(name)
    if cached:
        if info_cb:
            info_cb(f"dictionary cached name={name}")
        return _remote(name, cached)

    try:
        return _remote(name, _fetch_remote(name, client=client, cache=cache, dictionaries_dir=dictionaries_dir, info_cb=info_cb))
    except DictionaryUnavailable as e:
        if info_cb:
            info_cb(f"dictionary api unavailable name={name} err={e}; using text preprocessing fallback")

    path = dictionary_path(dictionaries_dir, name)
    substitutions = parse_pls(path) if path.exists() else []
    return DictionaryResolution(name=name, mode="local", substitutions=substitutions)


def list_local_dictionaries(dictionaries_dir: Path) -> List[Dict[str, str]]:
    if not dictionaries_dir.exists():
        return []
    return [{"name": p.stem, "file": p.name} for p in sorted(dictionaries_dir.glob("*.pls")) if p.is_file()]
