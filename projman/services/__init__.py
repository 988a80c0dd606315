from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable

from ..domain import local_now
from ..store import Repositories
from .projects import ProjectService, UpdateProjectInput
from .reports import TimeReport, build_report
from .tasks import BranchSource, CreateTaskInput, TaskService, UpdateTaskInput
from .timer import TimerStart, TimeTrackingService


@dataclass(frozen=True)
class Services:
    tasks: TaskService
    projects: ProjectService
    timer: TimeTrackingService


def build_services(
    repos: Repositories,
    *,
    git: BranchSource | None = None,
    notes_dir: Path | None = None,
    week_start: int = 0,
    clock: Callable[[], datetime] = local_now,
) -> Services:
    return Services(
        tasks=TaskService(repos=repos, git=git, notes_dir=notes_dir, clock=clock),
        projects=ProjectService(repos=repos, clock=clock),
        timer=TimeTrackingService(repos=repos, clock=clock, week_start=week_start),
    )


__all__ = [
    "CreateTaskInput",
    "ProjectService",
    "Services",
    "TaskService",
    "TimeReport",
    "TimeTrackingService",
    "TimerStart",
    "UpdateProjectInput",
    "UpdateTaskInput",
    "build_report",
    "build_services",
]
