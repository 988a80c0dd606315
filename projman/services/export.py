from __future__ import annotations

import csv
from datetime import datetime, timezone
import io
import json
from typing import Any, Iterable

from ..domain import Project, Task, TaskStatus, TimeEntry, local_now


EXPORT_FORMATS = ("json", "csv", "ical")
_CSV_TIME = "%Y-%m-%d %H:%M:%S"
_ICAL_TIME = "%Y%m%dT%H%M%SZ"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _csv_time(value: datetime | None) -> str:
    return value.strftime(_CSV_TIME) if value is not None else ""


def task_to_dict(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "status": task.status.value,
        "priority": task.priority.label,
        "project_id": task.project_id,
        "parent_id": task.parent_id,
        "tags": list(task.tags),
        "changelist": task.changelist,
        "due_date": _iso(task.due_date),
        "created_at": _iso(task.created_at),
        "updated_at": _iso(task.updated_at),
        "completed_at": _iso(task.completed_at),
        "metadata": task.metadata,
        "note": (
            {
                "id": task.note.id,
                "path": task.note.path,
                "created_at": _iso(task.note.created_at),
                "updated_at": _iso(task.note.updated_at),
            }
            if task.note
            else None
        ),
    }


def project_to_dict(project: Project) -> dict[str, Any]:
    return {
        "id": project.id,
        "name": project.name,
        "description": project.description,
        "status": project.status.value,
        "color": project.color,
        "created_at": _iso(project.created_at),
        "updated_at": _iso(project.updated_at),
        "archived_at": _iso(project.archived_at),
        "metadata": project.metadata,
    }


def time_entry_to_dict(entry: TimeEntry, *, now: datetime | None = None) -> dict[str, Any]:
    return {
        "id": entry.id,
        "task_id": entry.task_id,
        "project_id": entry.project_id,
        "description": entry.description,
        "start_time": _iso(entry.start_time),
        "end_time": _iso(entry.end_time),
        "duration_seconds": int(entry.elapsed(now).total_seconds()),
        "created_at": _iso(entry.created_at),
        "updated_at": _iso(entry.updated_at),
        "metadata": entry.metadata,
    }


def tasks_to_json(tasks: Iterable[Task]) -> str:
    return json.dumps([task_to_dict(t) for t in tasks], indent=2, ensure_ascii=False) + "\n"


def projects_to_json(projects: Iterable[Project]) -> str:
    return json.dumps([project_to_dict(p) for p in projects], indent=2, ensure_ascii=False) + "\n"


def time_entries_to_json(entries: Iterable[TimeEntry], *, now: datetime | None = None) -> str:
    payload = [time_entry_to_dict(e, now=now) for e in entries]
    return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"


TASK_CSV_HEADER = (
    "ID", "Title", "Description", "Status", "Priority", "Project ID",
    "Tags", "Due Date", "Created At", "Updated At", "Completed At",
    "Note ID", "Note Path", "Has Note", "Note Created", "Note Updated",
)


def tasks_to_csv(tasks: Iterable[Task]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(TASK_CSV_HEADER)
    for task in tasks:
        note = task.note
        writer.writerow(
            [
                task.id,
                task.title,
                task.description,
                task.status.value,
                task.priority.label,
                task.project_id or "",
                ";".join(task.tags),
                _csv_time(task.due_date),
                _csv_time(task.created_at),
                _csv_time(task.updated_at),
                _csv_time(task.completed_at),
                note.id if note else "",
                note.path if note else "",
                "true" if note else "false",
                _csv_time(note.created_at) if note else "",
                _csv_time(note.updated_at) if note else "",
            ]
        )
    return buf.getvalue()


TIME_CSV_HEADER = (
    "ID", "Task ID", "Project ID", "Description", "Start Time",
    "End Time", "Duration (seconds)", "Created At", "Updated At",
)


def time_entries_to_csv(entries: Iterable[TimeEntry], *, now: datetime | None = None) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(TIME_CSV_HEADER)
    for entry in entries:
        writer.writerow(
            [
                entry.id,
                entry.task_id,
                entry.project_id or "",
                entry.description,
                _csv_time(entry.start_time),
                _csv_time(entry.end_time),
                str(int(entry.elapsed(now).total_seconds())),
                _csv_time(entry.created_at),
                _csv_time(entry.updated_at),
            ]
        )
    return buf.getvalue()


def escape_ical_text(text: str) -> str:
    return (
        text.replace("\\", "\\\\")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace(",", "\\,")
        .replace(";", "\\;")
    )


_ICAL_STATUS = {
    TaskStatus.DONE: "COMPLETED",
    TaskStatus.DOING: "IN-PROCESS",
    TaskStatus.BLOCKED: "CANCELLED",
}


def _ical_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime(_ICAL_TIME)


def tasks_to_ical(tasks: Iterable[Task], *, now: datetime | None = None) -> str:
    """Tasks with a due date as VTODO components; CRLF line endings."""

    stamp = _ical_time(now or local_now())
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//projman//pm//EN",
        "CALSCALE:GREGORIAN",
    ]
    for task in tasks:
        if task.due_date is None:
            continue
        lines.append("BEGIN:VTODO")
        lines.append(f"UID:{task.id}@pm-cli")
        lines.append(f"DTSTAMP:{stamp}")
        lines.append(f"DUE:{_ical_time(task.due_date)}")
        lines.append(f"SUMMARY:{escape_ical_text(task.title)}")
        if task.description:
            lines.append(f"DESCRIPTION:{escape_ical_text(task.description)}")
        lines.append(f"PRIORITY:{_ical_priority(int(task.priority))}")
        lines.append(f"STATUS:{_ICAL_STATUS.get(task.status, 'NEEDS-ACTION')}")
        if task.completed_at is not None:
            lines.append(f"COMPLETED:{_ical_time(task.completed_at)}")
        lines.append("END:VTODO")
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"


def _ical_priority(priority: int) -> int:
    # RFC 5545: 1 highest, 9 lowest.
    return {3: 1, 2: 3, 1: 5, 0: 9}.get(priority, 0)
