from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
import tomllib


def _as_bool(value, *, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "y", "on"}:
            return True
        if lowered in {"0", "false", "no", "n", "off"}:
            return False
    return bool(default)


def _as_str(value, *, default: str) -> str:
    if isinstance(value, str):
        return value.strip()
    return default


def _as_str_map(value) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    out: dict[str, str] = {}
    for key, item in value.items():
        if isinstance(key, str) and isinstance(item, str) and key.strip() and item.strip():
            out[key.strip()] = item.strip()
    return out


def _default_notes_dir() -> str:
    override = os.environ.get("DEBUG_NOTES_DIR", "").strip()
    if override:
        return override
    return str(Path("~/.debug-notes").expanduser())


DEFAULT_ALIASES = {
    "ls": "list",
    "new": "add",
    "rm": "delete",
    "done": "complete",
}

_WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass(frozen=True)
class StorageConfig:
    database_path: str = ""


@dataclass(frozen=True)
class TasksConfig:
    default_project: str = ""
    date_format: str = "%Y-%m-%d"


@dataclass(frozen=True)
class TimeConfig:
    time_format: str = "%H:%M"
    week_start: str = "monday"

    @property
    def week_start_index(self) -> int:
        """Weekday number (Monday=0) the report week starts on."""
        try:
            return _WEEKDAYS.index(self.week_start)
        except ValueError:
            return 0


@dataclass(frozen=True)
class GitConfig:
    integration: bool = True


@dataclass(frozen=True)
class NotesConfig:
    directory: str = field(default_factory=_default_notes_dir)


@dataclass(frozen=True)
class ThemeConfig:
    primary: str = "#3b82f6"
    secondary: str = "#64748b"
    success: str = "#10b981"
    warning: str = "#f59e0b"
    error: str = "#ef4444"
    muted: str = "#6b7280"


@dataclass(frozen=True)
class PmConfig:
    storage: StorageConfig = field(default_factory=StorageConfig)
    tasks: TasksConfig = field(default_factory=TasksConfig)
    time: TimeConfig = field(default_factory=TimeConfig)
    git: GitConfig = field(default_factory=GitConfig)
    notes: NotesConfig = field(default_factory=NotesConfig)
    theme: ThemeConfig = field(default_factory=ThemeConfig)
    aliases: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ALIASES))

    def database_path(self, home: Path) -> Path:
        raw = self.storage.database_path
        if not raw:
            return home / "tasks.db"
        candidate = Path(raw).expanduser()
        if not candidate.is_absolute():
            candidate = home / candidate
        return candidate


def _table(data: dict, key: str) -> dict:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def load_config(path: Path) -> tuple[PmConfig, str]:
    """Load pm.toml.

    Returns (config, warning). Warning is empty on success; a missing file is
    not a warning.
    """

    if not path.exists():
        return PmConfig(), ""

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:  # noqa: BLE001
        return PmConfig(), f"pm.toml parse failed: {exc}"

    storage = _table(data, "storage")
    tasks = _table(data, "tasks")
    time_cfg = _table(data, "time")
    git = _table(data, "git")
    notes = _table(data, "notes")
    theme = _table(data, "theme")

    warnings: list[str] = []
    week_start = _as_str(time_cfg.get("week_start"), default=TimeConfig.week_start).lower()
    if week_start not in _WEEKDAYS:
        warnings.append(f"time.week_start={week_start!r} is not a weekday; using monday")
        week_start = TimeConfig.week_start

    aliases = dict(DEFAULT_ALIASES)
    aliases.update(_as_str_map(data.get("aliases")))

    cfg = PmConfig(
        storage=StorageConfig(
            database_path=_as_str(storage.get("database_path"), default=StorageConfig.database_path),
        ),
        tasks=TasksConfig(
            default_project=_as_str(tasks.get("default_project"), default=TasksConfig.default_project),
            date_format=_as_str(tasks.get("date_format"), default=TasksConfig.date_format) or TasksConfig.date_format,
        ),
        time=TimeConfig(
            time_format=_as_str(time_cfg.get("time_format"), default=TimeConfig.time_format) or TimeConfig.time_format,
            week_start=week_start,
        ),
        git=GitConfig(
            integration=_as_bool(git.get("integration"), default=GitConfig.integration),
        ),
        notes=NotesConfig(
            directory=_as_str(notes.get("directory"), default="") or _default_notes_dir(),
        ),
        theme=ThemeConfig(
            primary=_as_str(theme.get("primary"), default=ThemeConfig.primary),
            secondary=_as_str(theme.get("secondary"), default=ThemeConfig.secondary),
            success=_as_str(theme.get("success"), default=ThemeConfig.success),
            warning=_as_str(theme.get("warning"), default=ThemeConfig.warning),
            error=_as_str(theme.get("error"), default=ThemeConfig.error),
            muted=_as_str(theme.get("muted"), default=ThemeConfig.muted),
        ),
        aliases=aliases,
    )

    return cfg, "; ".join(warnings)


DEFAULT_CONFIG_TOML = """\
[storage]
# database_path = "tasks.db"

[tasks]
default_project = ""
date_format = "%Y-%m-%d"

[time]
time_format = "%H:%M"
week_start = "monday"

[git]
integration = true

[aliases]
ls = "list"
new = "add"
rm = "delete"
done = "complete"
"""


def write_default_config(path: Path) -> bool:
    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG_TOML, encoding="utf-8")
    return True


# key -> (section, toml key, kind)
SETTABLE_KEYS: dict[str, tuple[str, str, str]] = {
    "default_project": ("tasks", "default_project", "str"),
    "date_format": ("tasks", "date_format", "str"),
    "time_format": ("time", "time_format", "str"),
    "week_start": ("time", "week_start", "str"),
    "git_integration": ("git", "integration", "bool"),
    "database_path": ("storage", "database_path", "str"),
}


def set_config_value(path: Path, key: str, value: str) -> tuple[bool, str]:
    entry = SETTABLE_KEYS.get(key.strip().lower())
    if entry is None:
        known = ", ".join(sorted(SETTABLE_KEYS))
        return False, f"unknown config key: {key} (known: {known})"
    section, toml_key, kind = entry
    if kind == "bool":
        literal = "true" if _as_bool(value, default=False) else "false"
        shown = literal
    else:
        cleaned = " ".join((value or "").split()).strip()
        escaped = cleaned.replace("\\", "\\\\").replace('"', '\\"')
        literal = f'"{escaped}"'
        shown = cleaned
    ok, detail = _set_toml_value(path, section, toml_key, literal)
    if not ok:
        return False, detail
    return True, f"{section}.{toml_key} set to {shown}{detail}"


def _set_toml_value(path: Path, section: str, key: str, literal: str) -> tuple[bool, str]:
    line = f"{key} = {literal}"
    header = f"[{section}]"

    if not path.exists():
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(f"{header}\n{line}\n", encoding="utf-8")
        except Exception as exc:  # noqa: BLE001
            return False, f"failed writing pm.toml: {exc}"
        return True, " (new file)"

    try:
        text = path.read_text(encoding="utf-8")
    except Exception as exc:  # noqa: BLE001
        return False, f"failed reading pm.toml: {exc}"

    lines = text.splitlines()
    section_start = None
    for idx, raw in enumerate(lines):
        if raw.strip() == header:
            section_start = idx
            break

    if section_start is None:
        if lines and lines[-1].strip():
            lines.append("")
        lines.append(header)
        lines.append(line)
    else:
        section_end = len(lines)
        for idx in range(section_start + 1, len(lines)):
            stripped = lines[idx].strip()
            if stripped.startswith("[") and stripped.endswith("]"):
                section_end = idx
                break

        target_idx = None
        for idx in range(section_start + 1, section_end):
            stripped = lines[idx].strip()
            if stripped.split("=", 1)[0].strip() == key:
                target_idx = idx
                break

        if target_idx is not None:
            lines[target_idx] = line
        else:
            lines.insert(section_start + 1, line)

    updated = "\n".join(lines) + "\n"
    try:
        path.write_text(updated, encoding="utf-8")
    except Exception as exc:  # noqa: BLE001
        return False, f"failed writing pm.toml: {exc}"
    return True, ""


def explain_config(config: PmConfig, *, path: Path | None = None, database: Path | None = None) -> str:
    location = str(path) if path is not None else "pm.toml"
    aliases = ", ".join(f"{k}={v}" for k, v in sorted(config.aliases.items())) or "(none)"
    lines = [
        f"pm.toml guide ({location})",
        "",
        "[storage]",
        f"- database_path: SQLite file, relative to the pm home (current: {database or config.storage.database_path or 'tasks.db'})",
        "",
        "[tasks]",
        f"- default_project: project name used by `pm task add` without --project (current: {config.tasks.default_project or '(none)'})",
        f"- date_format: strftime format for due dates (current: {config.tasks.date_format})",
        "",
        "[time]",
        f"- time_format: strftime format for clock times (current: {config.time.time_format})",
        f"- week_start: first day of the week for reports (current: {config.time.week_start})",
        "",
        "[git]",
        f"- integration: tag new tasks with branch:<name> (current: {'true' if config.git.integration else 'false'})",
        "",
        "[notes]",
        f"- directory: where linked notes are looked up (current: {config.notes.directory})",
        "",
        "[aliases]",
        f"- sub-command aliases (current: {aliases})",
    ]
    return "\n".join(lines)
