from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

DEPTH_ENV = "TASKWEAVE_DEPTH"
SHUTDOWN_GRACE_SECONDS = float(os.environ.get("TASKWEAVE_SHUTDOWN_GRACE", "1.0"))
LOG_LEVEL = os.environ.get("TASKWEAVE_LOG_LEVEL", "WARNING")

Prefix = Union[bool, str]


@dataclass
class RunOptions:
    """Execution settings shared by the console and the executor."""
    quiet: bool = False
    continue_on_error: bool = False
    prefix: Prefix = True
    cwd: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)
    grace_period: float = SHUTDOWN_GRACE_SECONDS

    def merged(self, **overrides: Any) -> RunOptions:
        """Return a copy with every override that is not None applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        if "env" in values:
            values["env"] = {**self.env, **values["env"]}
        return replace(self, **values)

    @classmethod
    def from_manifest(cls, options: Mapping[str, Any]) -> RunOptions:
        env = options.get("env") or {}
        return cls(
            quiet=bool(options.get("quiet", False)),
            continue_on_error=bool(options.get("continue", False)),
            prefix=options.get("prefix", True),
            cwd=options.get("cwd"),
            env={str(k): str(v) for k, v in env.items()},
        )

    @property
    def workdir(self) -> Path:
        return Path(self.cwd) if self.cwd else Path.cwd()


def nesting_depth(environ: Mapping[str, str] | None = None) -> Optional[int]:
    """Depth of the enclosing orchestrator run, or None when running top level."""
    environ = os.environ if environ is None else environ
    raw = environ.get(DEPTH_ENV)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return 0


def local_bin_dir(cwd: Path) -> Path:
    """Project-local executables, searched before the inherited PATH."""
    if sys.platform == "win32":
        return cwd / ".venv" / "Scripts"
    return cwd / ".venv" / "bin"
