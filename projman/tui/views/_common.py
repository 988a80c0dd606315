from __future__ import annotations

from datetime import datetime

from ...domain import Priority, Task, TaskStatus
from .. import keys


_STATUS_ICONS = {
    TaskStatus.TODO: "[ ]",
    TaskStatus.DOING: "[~]",
    TaskStatus.DONE: "[x]",
    TaskStatus.BLOCKED: "[!]",
    TaskStatus.BACKLOG: "[-]",
}

_PRIORITY_ICONS = {
    Priority.LOW: "[LOW]",
    Priority.NORMAL: "[NORM]",
    Priority.HIGH: "[HIGH]",
    Priority.CRITICAL: "[CRIT]",
}


def status_icon(status: TaskStatus) -> str:
    return _STATUS_ICONS.get(status, "[ ]")


def priority_icon(priority: Priority) -> str:
    return _PRIORITY_ICONS.get(priority, "[NORM]")


def move(selected: int, delta: int, count: int) -> int:
    """Clamp, no wraparound."""
    if count <= 0:
        return 0
    return max(0, min(count - 1, selected + delta))


def clamp(selected: int, count: int) -> int:
    return move(selected, 0, count)


def task_line(task: Task, *, now: datetime | None = None) -> str:
    line = f"{status_icon(task.status)} {priority_icon(task.priority)} {task.title}"
    if task.changelist:
        line += f" ({task.changelist})"
    if task.tags:
        line += f" [{', '.join(task.tags)}]"
    if task.due_date is not None:
        overdue = "!" if task.is_overdue(now) else ""
        line += f" (due{overdue}: {task.due_date.strftime('%b')} {task.due_date.day})"
    return line


def edit_form_field(
    values: tuple[str, ...],
    focus: int,
    key: str,
    limits: tuple[int, ...],
) -> tuple[tuple[str, ...], int] | None:
    """Apply a focus or text-editing key. None when the key is not one of those."""

    count = len(values)
    if key in (keys.FORM_NEXT, "enter"):
        return values, (focus + 1) % count
    if key == keys.FORM_PREV:
        return values, (focus - 1 + count) % count
    current = values[focus]
    if key == keys.FORM_BACKSPACE:
        updated = current[:-1]
    elif keys.is_printable(key):
        if len(current) >= limits[focus]:
            return values, focus
        updated = current + key
    else:
        return None
    return values[:focus] + (updated,) + values[focus + 1 :], focus


def render_form(title: str, labels: tuple[str, ...], values: tuple[str, ...], focus: int) -> str:
    lines = [title, ""]
    for index, (label, value) in enumerate(zip(labels, values)):
        marker = ">" if index == focus else " "
        cursor = "_" if index == focus else ""
        lines.append(f"{label}:")
        lines.append(f"{marker} [{value}{cursor}]")
        lines.append("")
    lines.append("tab: next field | shift+tab: prev field | ctrl+s: save | esc: cancel")
    return "\n".join(lines)
