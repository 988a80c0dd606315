from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from pathlib import Path
import re
from typing import Any

from .errors import InvalidNote, NoteNotFound


logger = logging.getLogger(__name__)

_FRONTMATTER_BOUNDARY = "---"
_KEY_LINE_RE = re.compile(r"^([A-Za-z0-9_-]+)\s*:(.*)$")


@dataclass(frozen=True)
class NoteMetadata:
    id: str
    created_at: datetime | None
    updated_at: datetime
    path: Path


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def _parse_fields(lines: list[str]) -> dict[str, Any]:
    """`key: value` scalars, and `key:` followed by `- item` lines as lists."""
    fields: dict[str, Any] = {}
    open_list: str | None = None
    for raw in lines:
        text = raw.strip()
        if not text or text.startswith("#"):
            continue
        match = _KEY_LINE_RE.match(raw.rstrip())
        if match is not None:
            name, value = match.group(1), match.group(2).strip()
            if value:
                fields[name] = _unquote(value)
                open_list = None
            else:
                fields[name] = []
                open_list = name
        elif open_list is not None and text.startswith("- "):
            fields[open_list].append(_unquote(text[2:].strip()))
    return fields


def split_frontmatter(text: str) -> dict[str, Any] | None:
    lines = text.splitlines()
    if not lines or lines[0].strip() != _FRONTMATTER_BOUNDARY:
        return None
    try:
        end = lines.index(_FRONTMATTER_BOUNDARY, 1)
    except ValueError:
        return None
    return _parse_fields(lines[1:end])


def _parse_created(value: Any, path: Path) -> datetime | None:
    if not value:
        return None
    raw = str(value).strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        raise InvalidNote(str(path), f"bad created timestamp {value!r}") from None


def parse_note_frontmatter(path: Path) -> NoteMetadata:
    try:
        text = path.read_text(encoding="utf-8")
        mtime = path.stat().st_mtime
    except OSError as exc:
        raise InvalidNote(str(path), f"cannot read note: {exc}") from exc
    fm = split_frontmatter(text)
    if fm is None:
        raise InvalidNote(str(path), "note does not contain frontmatter")
    return NoteMetadata(
        id=str(fm.get("id") or ""),
        created_at=_parse_created(fm.get("created"), path),
        updated_at=datetime.fromtimestamp(mtime).astimezone(),
        path=path,
    )


def find_note_by_id(notes_dir: Path, note_id: str) -> Path:
    """Return the markdown file in `notes_dir` whose frontmatter id is `note_id`."""

    if not notes_dir.is_dir():
        raise NoteNotFound(note_id, str(notes_dir))
    for path in sorted(notes_dir.glob("*.md")):
        if not path.is_file():
            continue
        try:
            fm = split_frontmatter(path.read_text(encoding="utf-8"))
        except OSError:
            logger.debug("skipping unreadable note %s", path)
            continue
        if fm and str(fm.get("id") or "") == note_id:
            return path
    raise NoteNotFound(note_id, str(notes_dir))
