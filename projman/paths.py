from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path


HOME_ENV = "PM_HOME"
CONFIG_FILENAME = "pm.toml"
DATABASE_FILENAME = "tasks.db"


def runtime_root() -> Path:
    """Where projman keeps its config, database and logs.

    `$PM_HOME` wins; otherwise `~/.pm`. Falls back to `./.pm` when the home
    directory cannot be resolved.
    """

    override = os.environ.get(HOME_ENV, "").strip()
    if override:
        return Path(override).expanduser().resolve()
    try:
        return Path.home() / ".pm"
    except RuntimeError:
        return Path.cwd() / ".pm"


@dataclass(frozen=True)
class RuntimePaths:
    root: Path
    config_toml: Path
    database: Path
    logs_dir: Path


def runtime_paths(root: Path | None = None) -> RuntimePaths:
    root = root or runtime_root()
    return RuntimePaths(
        root=root,
        config_toml=root / CONFIG_FILENAME,
        database=root / DATABASE_FILENAME,
        logs_dir=root / "logs",
    )


def ensure_runtime_dirs(paths: RuntimePaths | None = None) -> RuntimePaths:
    paths = paths or runtime_paths()
    paths.root.mkdir(parents=True, exist_ok=True)
    paths.logs_dir.mkdir(parents=True, exist_ok=True)
    return paths
