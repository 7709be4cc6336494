from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ArtifactWriteError


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ProjectMetadataStore:
    """One ``<project>-info.json`` record per project.

    ``write_full`` replaces the record. ``merge_one`` rewrites exactly one scene
    entry and requires a record written earlier by ``write_full``.
    """

    def __init__(self, output_dir: Path, project_name: str) -> None:
        self.output_dir = output_dir
        self.project_name = project_name

    @property
    def path(self) -> Path:
        return self.output_dir / f"{self.project_name}-info.json"

    @classmethod
    def discover(cls, output_dir: Path) -> "ProjectMetadataStore":
        candidates = sorted(p for p in output_dir.glob("*-info.json") if p.is_file())
        if not candidates:
            raise FileNotFoundError(f"No info file found in {output_dir}")
        return cls(output_dir, candidates[0].name[: -len("-info.json")])

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Dict[str, Any]:
        return json.loads(self.path.read_text(encoding="utf-8"))

    def _write(self, record: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(record, indent=2), encoding="utf-8")
        except OSError as e:
            raise ArtifactWriteError(f"Could not write {self.path}: {e}") from e

    def write_full(self, record: Dict[str, Any]) -> Path:
        self._write(record)
        return self.path

    def merge_one(self, scene_id: str, updated_fields: Dict[str, Any]) -> Dict[str, Any]:
        record = self.load()
        scenes: List[Dict[str, Any]] = record.get("scenes") or []
        for idx, entry in enumerate(scenes):
            if entry.get("id") == scene_id:
                scenes[idx] = {**entry, **updated_fields}
                break
        else:
            raise KeyError(f"Scene {scene_id!r} not present in {self.path.name}")
        record["updatedAt"] = utc_now_iso()
        self._write(record)
        return scenes[idx]

    def scene_request_ids(self) -> List[Optional[str]]:
        if not self.exists():
            return []
        return [s.get("requestId") for s in self.load().get("scenes") or []]
