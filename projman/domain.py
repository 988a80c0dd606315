from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any
import uuid

from .errors import InvalidPriority, InvalidStatus


DEFAULT_PROJECT_COLOR = "#3498db"


def local_now() -> datetime:
    return datetime.now().astimezone()


def new_id() -> str:
    return str(uuid.uuid4())


class TaskStatus(str, Enum):
    BACKLOG = "backlog"
    TODO = "todo"
    DOING = "doing"
    DONE = "done"
    BLOCKED = "blocked"

    @classmethod
    def parse(cls, raw: str | TaskStatus) -> TaskStatus:
        if isinstance(raw, TaskStatus):
            return raw
        cleaned = str(raw or "").strip().lower().replace("-", "_")
        aliases = {"in_progress": "doing", "progress": "doing", "complete": "done", "completed": "done"}
        cleaned = aliases.get(cleaned, cleaned)
        try:
            return cls(cleaned)
        except ValueError:
            raise InvalidStatus(str(raw)) from None


class Priority(int, Enum):
    LOW = 0
    NORMAL = 1
    HIGH = 2
    CRITICAL = 3

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, raw: str | int | Priority) -> Priority:
        if isinstance(raw, Priority):
            return raw
        if isinstance(raw, int):
            try:
                return cls(raw)
            except ValueError:
                raise InvalidPriority(str(raw)) from None
        cleaned = str(raw or "").strip().lower()
        if cleaned == "medium":
            return cls.NORMAL
        if cleaned.isdigit():
            return cls.parse(int(cleaned))
        for member in cls:
            if member.label == cleaned:
                return member
        raise InvalidPriority(str(raw))


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"

    @classmethod
    def parse(cls, raw: str | ProjectStatus) -> ProjectStatus:
        if isinstance(raw, ProjectStatus):
            return raw
        cleaned = str(raw or "").strip().lower().replace("-", "_").replace(" ", "_")
        if cleaned == "hold":
            cleaned = "on_hold"
        try:
            return cls(cleaned)
        except ValueError:
            raise InvalidStatus(str(raw)) from None


@dataclass(frozen=True)
class LinkedNote:
    id: str
    path: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Task:
    id: str
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.TODO
    priority: Priority = Priority.NORMAL
    project_id: str | None = None
    parent_id: str | None = None
    tags: list[str] = field(default_factory=list)
    changelist: str = ""
    due_date: datetime | None = None
    created_at: datetime = field(default_factory=local_now)
    updated_at: datetime = field(default_factory=local_now)
    completed_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    note: LinkedNote | None = None

    @property
    def is_done(self) -> bool:
        return self.status == TaskStatus.DONE

    def copy(self) -> Task:
        return replace(self, tags=list(self.tags), metadata=copy.deepcopy(self.metadata))

    def touch(self, now: datetime | None = None) -> None:
        self.updated_at = now or local_now()

    def set_status(self, status: TaskStatus | str, now: datetime | None = None) -> None:
        """Change status, keeping completed_at set exactly while the task is done."""
        stamp = now or local_now()
        target = TaskStatus.parse(status)
        if target == TaskStatus.DONE:
            if self.status != TaskStatus.DONE or self.completed_at is None:
                self.completed_at = stamp
        else:
            self.completed_at = None
        self.status = target
        self.updated_at = stamp

    def complete(self, now: datetime | None = None) -> None:
        self.set_status(TaskStatus.DONE, now)

    def start(self, now: datetime | None = None) -> None:
        self.set_status(TaskStatus.DOING, now)

    def block(self, now: datetime | None = None) -> None:
        self.set_status(TaskStatus.BLOCKED, now)

    def reopen(self, now: datetime | None = None) -> None:
        self.set_status(TaskStatus.TODO, now)

    def toggle_done(self, now: datetime | None = None) -> None:
        if self.is_done:
            self.reopen(now)
        else:
            self.complete(now)

    def add_tag(self, tag: str) -> bool:
        cleaned = tag.strip()
        if not cleaned or cleaned in self.tags:
            return False
        self.tags.append(cleaned)
        self.touch()
        return True

    def remove_tag(self, tag: str) -> bool:
        cleaned = tag.strip()
        if cleaned not in self.tags:
            return False
        self.tags.remove(cleaned)
        self.touch()
        return True

    def has_tag(self, tag: str) -> bool:
        return tag.strip() in self.tags

    def is_overdue(self, now: datetime | None = None) -> bool:
        if self.due_date is None or self.is_done:
            return False
        return (now or local_now()) > self.due_date

    def days_until_due(self, now: datetime | None = None) -> int:
        if self.due_date is None:
            return 0
        remaining = self.due_date - (now or local_now())
        return int(remaining.total_seconds() // 86400)

    def link_note(self, note: LinkedNote) -> None:
        self.note = note
        self.touch()

    def unlink_note(self) -> bool:
        if self.note is None:
            return False
        self.note = None
        self.touch()
        return True


@dataclass
class Project:
    id: str
    name: str
    description: str = ""
    status: ProjectStatus = ProjectStatus.ACTIVE
    color: str = DEFAULT_PROJECT_COLOR
    created_at: datetime = field(default_factory=local_now)
    updated_at: datetime = field(default_factory=local_now)
    archived_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def copy(self) -> Project:
        return replace(self, metadata=copy.deepcopy(self.metadata))

    def set_status(self, status: ProjectStatus | str, now: datetime | None = None) -> None:
        """Change status, keeping archived_at set exactly while archived."""
        stamp = now or local_now()
        target = ProjectStatus.parse(status)
        if target == ProjectStatus.ARCHIVED:
            if self.status != ProjectStatus.ARCHIVED or self.archived_at is None:
                self.archived_at = stamp
        else:
            self.archived_at = None
        self.status = target
        self.updated_at = stamp

    def archive(self, now: datetime | None = None) -> None:
        self.set_status(ProjectStatus.ARCHIVED, now)

    def complete(self, now: datetime | None = None) -> None:
        self.set_status(ProjectStatus.COMPLETED, now)

    def activate(self, now: datetime | None = None) -> None:
        self.set_status(ProjectStatus.ACTIVE, now)

    def put_on_hold(self, now: datetime | None = None) -> None:
        self.set_status(ProjectStatus.ON_HOLD, now)


@dataclass
class TimeEntry:
    id: str
    task_id: str
    project_id: str | None = None
    description: str = ""
    start_time: datetime = field(default_factory=local_now)
    end_time: datetime | None = None
    duration: timedelta = field(default_factory=timedelta)
    created_at: datetime = field(default_factory=local_now)
    updated_at: datetime = field(default_factory=local_now)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.end_time is None

    def copy(self) -> TimeEntry:
        return replace(self, metadata=copy.deepcopy(self.metadata))

    def stop(self, now: datetime | None = None) -> None:
        stamp = now or local_now()
        if stamp < self.start_time:
            stamp = self.start_time
        self.end_time = stamp
        self.duration = stamp - self.start_time
        self.updated_at = stamp

    def elapsed(self, now: datetime | None = None) -> timedelta:
        """Persisted duration once stopped, live now-start while running."""
        if self.end_time is not None:
            return self.duration
        delta = (now or local_now()) - self.start_time
        return delta if delta > timedelta(0) else timedelta(0)

    def formatted_duration(self, now: datetime | None = None) -> str:
        return format_duration(self.elapsed(now))


def format_duration(value: timedelta) -> str:
    total = int(value.total_seconds())
    if total < 0:
        total = 0
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def new_task(title: str, description: str = "", *, now: datetime | None = None) -> Task:
    stamp = now or local_now()
    return Task(
        id=new_id(),
        title=title,
        description=description,
        status=TaskStatus.TODO,
        priority=Priority.NORMAL,
        created_at=stamp,
        updated_at=stamp,
    )


def new_project(name: str, description: str = "", *, now: datetime | None = None) -> Project:
    stamp = now or local_now()
    return Project(id=new_id(), name=name, description=description, created_at=stamp, updated_at=stamp)


def new_time_entry(
    task_id: str,
    project_id: str | None,
    description: str = "",
    *,
    now: datetime | None = None,
) -> TimeEntry:
    stamp = now or local_now()
    return TimeEntry(
        id=new_id(),
        task_id=task_id,
        project_id=project_id or None,
        description=description,
        start_time=stamp,
        created_at=stamp,
        updated_at=stamp,
    )


@dataclass(frozen=True)
class TaskFilter:
    status: tuple[TaskStatus, ...] = ()
    priority: tuple[Priority, ...] = ()
    project_id: str | None = None
    tags: tuple[str, ...] = ()
    search: str = ""
    due_before: datetime | None = None
    due_after: datetime | None = None
    parent_id: str | None = None
    limit: int = 0
    offset: int = 0


@dataclass(frozen=True)
class ProjectFilter:
    status: tuple[ProjectStatus, ...] = ()
    search: str = ""
    limit: int = 0
    offset: int = 0


@dataclass(frozen=True)
class TimeEntryFilter:
    task_id: str | None = None
    project_id: str | None = None
    start_after: datetime | None = None
    start_before: datetime | None = None
    active: bool | None = None
    limit: int = 0
    offset: int = 0
