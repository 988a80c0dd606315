from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Iterator

from projman.domain import Project, ProjectFilter, Task, TaskFilter, TaskStatus, TimeEntry, new_time_entry
from projman.errors import (
    ActiveTimerExists,
    NoActiveTimer,
    ProjectNotFound,
    StorageFailure,
    TaskNotFound,
)
from projman.services import Services, build_services
from projman.services.reports import TimeReport, build_report
from projman.services.timer import TimerStart
from projman.store import Repositories, open_repositories
from projman.tui.controller import RootController
from projman.tui.effects import Effect
from projman.tui.messages import KeyPressed, Message
from projman.tui.scheduler import Scheduler


UTC = timezone.utc
BASE_TIME = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class FixedClock:
    """Deterministic clock: returns the same instant until advanced."""

    def __init__(self, start: datetime = BASE_TIME) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@contextmanager
def temp_repositories() -> Iterator[Repositories]:
    with TemporaryDirectory() as tmp:
        repos = open_repositories(Path(tmp) / "tasks.db")
        try:
            yield repos
        finally:
            repos.close()


@contextmanager
def temp_services(clock: FixedClock | None = None) -> Iterator[tuple[Services, Repositories]]:
    clock = clock or FixedClock()
    with temp_repositories() as repos:
        yield build_services(repos, clock=clock), repos


# -- in-memory service bundle -------------------------------------------------------


@dataclass
class FakeTaskService:
    tasks: dict[str, Task] = field(default_factory=dict)
    fail_with: Exception | None = None

    def list_tasks(self, flt: TaskFilter | None = None) -> list[Task]:
        self._maybe_fail()
        flt = flt or TaskFilter()
        found = [t.copy() for t in self.tasks.values()]
        if flt.project_id:
            found = [t for t in found if t.project_id == flt.project_id]
        return found

    def get_task(self, task_id: str) -> Task:
        self._maybe_fail()
        try:
            return self.tasks[task_id].copy()
        except KeyError:
            raise TaskNotFound(task_id) from None

    def save_task(self, task: Task, *, create: bool = False) -> Task:
        self._maybe_fail()
        if not create and task.id not in self.tasks:
            raise TaskNotFound(task.id)
        self.tasks[task.id] = task.copy()
        return task

    def delete_task(self, task_id: str) -> None:
        self._maybe_fail()
        if task_id not in self.tasks:
            raise TaskNotFound(task_id)
        del self.tasks[task_id]

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with


@dataclass
class FakeProjectService:
    projects: dict[str, Project] = field(default_factory=dict)
    tasks: FakeTaskService | None = None

    def list_projects(self, flt: ProjectFilter | None = None) -> list[Project]:
        return sorted((p.copy() for p in self.projects.values()), key=lambda p: p.name.lower())

    def save_project(self, project: Project, *, create: bool = False) -> Project:
        if not create and project.id not in self.projects:
            raise ProjectNotFound(project.id)
        self.projects[project.id] = project.copy()
        return project

    def delete_project(self, project_id: str) -> None:
        if project_id not in self.projects:
            raise ProjectNotFound(project_id)
        del self.projects[project_id]
        if self.tasks is not None:
            for task_id in [t.id for t in self.tasks.tasks.values() if t.project_id == project_id]:
                del self.tasks.tasks[task_id]


@dataclass
class FakeTimerService:
    tasks: FakeTaskService
    clock: FixedClock
    entries: list[TimeEntry] = field(default_factory=list)

    def _active(self) -> TimeEntry | None:
        for entry in self.entries:
            if entry.is_active:
                return entry
        return None

    def start_time_tracking(self, task_id: str, description: str = ""):
        active = self._active()
        if active is not None:
            raise ActiveTimerExists(active.id)
        task = self.tasks.tasks.get(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        entry = new_time_entry(task_id, task.project_id, description, now=self.clock())
        self.entries.append(entry)
        task.set_status(TaskStatus.DOING, self.clock())
        return TimerStart(entry=entry.copy())

    def stop_time_tracking(self) -> TimeEntry:
        active = self._active()
        if active is None:
            raise NoActiveTimer()
        active.stop(self.clock())
        return active.copy()

    def get_active_time_entry(self) -> TimeEntry | None:
        active = self._active()
        return active.copy() if active is not None else None

    def today_report(self) -> TimeReport:
        start = self.clock().replace(hour=0, minute=0, second=0, microsecond=0)
        return build_report(self.entries, start, start + timedelta(days=1), now=self.clock())

    yesterday_report = today_report
    week_report = today_report
    month_report = today_report


def fake_services(clock: FixedClock | None = None) -> Services:
    clock = clock or FixedClock()
    tasks = FakeTaskService()
    return Services(
        tasks=tasks,  # type: ignore[arg-type]
        projects=FakeProjectService(tasks=tasks),  # type: ignore[arg-type]
        timer=FakeTimerService(tasks=tasks, clock=clock),  # type: ignore[arg-type]
    )


def storage_down() -> StorageFailure:
    return StorageFailure("database is locked")


# -- driving the controller -------------------------------------------------------------


def pump(controller: RootController, scheduler: Scheduler, effects: list[Effect]) -> list[Message]:
    """Execute effects in issue order, feeding each result back until nothing is pending."""

    delivered: list[Message] = []
    queue = list(effects)
    while queue:
        effect = queue.pop(0)
        message = scheduler.execute(effect)
        delivered.append(message)
        queue.extend(controller.dispatch(message))
    return delivered


def press(controller: RootController, *keys: str) -> list[Effect]:
    effects: list[Effect] = []
    for key in keys:
        effects.extend(controller.dispatch(KeyPressed(key)))
    return effects
