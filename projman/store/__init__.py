from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .db import Database
from .projects import ProjectRepository
from .tasks import TaskRepository
from .time_entries import TimeEntryRepository


@dataclass(frozen=True)
class Repositories:
    db: Database
    tasks: TaskRepository
    projects: ProjectRepository
    time_entries: TimeEntryRepository

    def close(self) -> None:
        self.db.close()


def open_repositories(path: str | Path) -> Repositories:
    """Open (and migrate) the database at `path`. Raises StorageFailure."""

    db = Database(path)
    return Repositories(
        db=db,
        tasks=TaskRepository(db),
        projects=ProjectRepository(db),
        time_entries=TimeEntryRepository(db),
    )


__all__ = [
    "Database",
    "ProjectRepository",
    "Repositories",
    "TaskRepository",
    "TimeEntryRepository",
    "open_repositories",
]
