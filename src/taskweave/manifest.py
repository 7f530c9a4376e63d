# manifest.py
from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ManifestError

COMMENT_MARKER = "//"
MANIFEST_FILES = ("taskweave.toml", "pyproject.toml", "package.json")


@dataclass
class Manifest:
    """Task name -> shell command, plus run options declared next to the tasks."""
    tasks: Dict[str, str] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)
    path: Optional[Path] = None


def _read_toml(path: Path) -> dict:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ManifestError(f"Invalid TOML: {e}", str(path)) from e


def _read_json(path: Path) -> dict:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ManifestError(f"Invalid JSON: {e}", str(path)) from e


def _extract(path: Path) -> tuple[Optional[dict], dict]:
    """Return (tasks table or None when the file declares none, options table)."""
    if path.name == "package.json":
        data = _read_json(path)
        return data.get("scripts"), {}

    data = _read_toml(path)
    if path.name == "pyproject.toml":
        section = data.get("tool", {}).get("taskweave", {})
        options = {k: v for k, v in section.items() if k != "tasks"}
        return section.get("tasks"), options
    return data.get("tasks"), data.get("options", {})


def _clean(tasks: dict, path: Path) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for name, command in tasks.items():
        if name.startswith(COMMENT_MARKER):
            continue
        if not isinstance(command, str):
            raise ManifestError(f"Command for task '{name}' must be a string", str(path))
        out[name] = command
    return out


def find_manifest(cwd: str | Path = ".") -> Optional[Path]:
    """First file in MANIFEST_FILES under `cwd` that actually declares tasks."""
    root = Path(cwd)
    for filename in MANIFEST_FILES:
        candidate = root / filename
        if candidate.is_file() and _extract(candidate)[0] is not None:
            return candidate
    return None


def load_manifest(path: str | Path | None = None, cwd: str | Path = ".") -> Manifest:
    """
    Load tasks from an explicit file or discover one in `cwd`.

    Supported layouts:
      - taskweave.toml   [tasks] / [options]
      - pyproject.toml   [tool.taskweave.tasks] / [tool.taskweave]
      - package.json     "scripts"
    """
    if path is not None:
        manifest_path = Path(path).expanduser()
        if not manifest_path.is_file():
            raise ManifestError("Manifest file not found", str(manifest_path))
    else:
        manifest_path = find_manifest(cwd)
        if manifest_path is None:
            raise ManifestError(
                f"No manifest found; looked for {', '.join(MANIFEST_FILES)}",
                str(Path(cwd).resolve()),
            )

    tasks, options = _extract(manifest_path)
    if tasks is None:
        raise ManifestError("Manifest declares no tasks", str(manifest_path))
    if not isinstance(tasks, dict):
        raise ManifestError("Tasks table must map names to commands", str(manifest_path))

    return Manifest(tasks=_clean(tasks, manifest_path), options=dict(options), path=manifest_path)
