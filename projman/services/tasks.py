from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
from pathlib import Path
from typing import Callable, Protocol

from ..dates import parse_due_date
from ..domain import (
    LinkedNote,
    Priority,
    Task,
    TaskFilter,
    TaskStatus,
    local_now,
    new_task,
)
from ..errors import (
    CircularDependency,
    ConfigError,
    EmptyTitle,
    InvalidProjectId,
    InvalidTaskId,
)
from ..notes import find_note_by_id, parse_note_frontmatter
from ..store import Repositories


logger = logging.getLogger(__name__)

_OPEN_STATUSES = (TaskStatus.TODO, TaskStatus.DOING, TaskStatus.BLOCKED)


class BranchSource(Protocol):
    def is_in_repository(self) -> bool: ...

    def get_current_branch(self) -> str: ...


@dataclass(frozen=True)
class CreateTaskInput:
    title: str
    description: str = ""
    priority: Priority = Priority.NORMAL
    project_id: str | None = None
    parent_id: str | None = None
    tags: tuple[str, ...] = ()
    changelist: str = ""
    due_date: str = ""


@dataclass(frozen=True)
class UpdateTaskInput:
    """Partial update: fields left as None are not touched.

    `due_date=""` clears the due date; `project_id=""`/`parent_id=""` clear
    the reference.
    """

    id: str
    title: str | None = None
    description: str | None = None
    status: TaskStatus | None = None
    priority: Priority | None = None
    project_id: str | None = None
    parent_id: str | None = None
    tags: tuple[str, ...] | None = None
    changelist: str | None = None
    due_date: str | None = None


@dataclass
class TaskService:
    repos: Repositories
    git: BranchSource | None = None
    notes_dir: Path | None = None
    clock: Callable[[], datetime] = field(default=local_now)

    def create_task(self, data: CreateTaskInput) -> Task:
        title = data.title.strip()
        if not title:
            raise EmptyTitle()

        now = self.clock()
        task = new_task(title, data.description, now=now)
        task.priority = Priority.parse(data.priority)
        task.project_id = data.project_id or None
        task.changelist = data.changelist.strip()
        for tag in data.tags:
            task.add_tag(tag)
        if data.due_date.strip():
            task.due_date = parse_due_date(data.due_date, now=now)
        if data.parent_id:
            # Existence check; a brand-new task cannot close a cycle.
            self.repos.tasks.get_by_id(data.parent_id)
            task.parent_id = data.parent_id

        branch = self._current_branch()
        if branch:
            task.add_tag(f"branch:{branch}")
            task.metadata["git_branch"] = branch
        task.updated_at = now

        self.repos.tasks.create(task)
        logger.debug("created task %s %r", task.id, task.title)
        return task

    def _current_branch(self) -> str:
        if self.git is None:
            return ""
        try:
            if not self.git.is_in_repository():
                return ""
            return self.git.get_current_branch()
        except Exception as exc:  # noqa: BLE001
            logger.debug("git branch lookup skipped: %s", exc)
            return ""

    def get_task(self, task_id: str) -> Task:
        if not task_id:
            raise InvalidTaskId()
        return self.repos.tasks.get_by_id(task_id)

    def update_task(self, data: UpdateTaskInput) -> Task:
        if not data.id:
            raise InvalidTaskId()
        task = self.repos.tasks.get_by_id(data.id)
        now = self.clock()

        if data.title is not None:
            title = data.title.strip()
            if not title:
                raise EmptyTitle()
            task.title = title
        if data.description is not None:
            task.description = data.description
        if data.status is not None:
            task.set_status(data.status, now)
        if data.priority is not None:
            task.priority = Priority.parse(data.priority)
        if data.project_id is not None:
            task.project_id = data.project_id or None
        if data.parent_id is not None:
            parent_id = data.parent_id or None
            if parent_id:
                self._check_parent(task.id, parent_id)
            task.parent_id = parent_id
        if data.tags is not None:
            task.tags = []
            for tag in data.tags:
                task.add_tag(tag)
        if data.changelist is not None:
            task.changelist = data.changelist.strip()
        if data.due_date is not None:
            task.due_date = parse_due_date(data.due_date, now=now) if data.due_date.strip() else None

        task.updated_at = now
        self.repos.tasks.update(task)
        logger.debug("updated task %s", task.id)
        return task

    def save_task(self, task: Task, *, create: bool = False) -> Task:
        """Persist a fully-populated task from the form.

        With `create=False` the row must still exist: an edit never brings
        back a task deleted in the meantime, it raises TaskNotFound instead.
        """

        if not task.title.strip():
            raise EmptyTitle()
        task.title = task.title.strip()
        if task.parent_id:
            self._check_parent(task.id, task.parent_id)
        task.updated_at = self.clock()
        if create:
            branch = self._current_branch()
            if branch and not task.has_tag(f"branch:{branch}"):
                task.add_tag(f"branch:{branch}")
                task.metadata["git_branch"] = branch
            self.repos.tasks.create(task)
            logger.debug("created task %s from form", task.id)
            return task
        self.repos.tasks.update(task)
        logger.debug("saved task %s from form", task.id)
        return task

    def _check_parent(self, task_id: str, parent_id: str) -> None:
        if parent_id == task_id:
            raise CircularDependency(task_id, parent_id)
        self.repos.tasks.get_by_id(parent_id)
        if task_id in self.repos.tasks.ancestor_ids(parent_id):
            raise CircularDependency(task_id, parent_id)

    def delete_task(self, task_id: str) -> None:
        if not task_id:
            raise InvalidTaskId()
        self.repos.tasks.delete(task_id)
        logger.debug("deleted task %s", task_id)

    def list_tasks(self, flt: TaskFilter | None = None) -> list[Task]:
        return self.repos.tasks.list(flt)

    def set_status(self, task_id: str, status: TaskStatus) -> Task:
        return self.update_task(UpdateTaskInput(id=task_id, status=status))

    def complete_task(self, task_id: str) -> Task:
        return self.set_status(task_id, TaskStatus.DONE)

    def start_task(self, task_id: str) -> Task:
        return self.set_status(task_id, TaskStatus.DOING)

    def block_task(self, task_id: str) -> Task:
        return self.set_status(task_id, TaskStatus.BLOCKED)

    def get_subtasks(self, parent_id: str) -> list[Task]:
        if not parent_id:
            raise InvalidTaskId()
        return self.repos.tasks.get_subtasks(parent_id)

    def get_tasks_by_project(self, project_id: str) -> list[Task]:
        if not project_id:
            raise InvalidProjectId()
        return self.repos.tasks.get_by_project(project_id)

    def add_tag(self, task_id: str, tag: str) -> Task:
        task = self.repos.tasks.get_by_id(task_id)
        if task.add_tag(tag):
            task.updated_at = self.clock()
            self.repos.tasks.update(task)
        return task

    def remove_tag(self, task_id: str, tag: str) -> Task:
        task = self.repos.tasks.get_by_id(task_id)
        if task.remove_tag(tag):
            task.updated_at = self.clock()
            self.repos.tasks.update(task)
        return task

    def get_overdue_tasks(self) -> list[Task]:
        return self.list_tasks(TaskFilter(status=_OPEN_STATUSES, due_before=self.clock()))

    def get_tasks_due_today(self) -> list[Task]:
        now = self.clock()
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return self.list_tasks(
            TaskFilter(status=_OPEN_STATUSES, due_after=start, due_before=start + timedelta(days=1))
        )

    def link_note(self, task_id: str, note_id: str) -> Task:
        if self.notes_dir is None:
            raise ConfigError("notes directory is not configured")
        task = self.repos.tasks.get_by_id(task_id)
        path = find_note_by_id(self.notes_dir, note_id)
        meta = parse_note_frontmatter(path)
        task.link_note(
            LinkedNote(
                id=meta.id or note_id,
                path=str(path),
                created_at=meta.created_at,
                updated_at=meta.updated_at,
            )
        )
        task.updated_at = self.clock()
        self.repos.tasks.update(task)
        logger.debug("linked note %s to task %s", note_id, task_id)
        return task

    def unlink_note(self, task_id: str) -> bool:
        task = self.repos.tasks.get_by_id(task_id)
        if not task.unlink_note():
            return False
        task.updated_at = self.clock()
        self.repos.tasks.update(task)
        return True
