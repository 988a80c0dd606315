"""Effect descriptors: data describing deferred work, interpreted by the scheduler."""

from __future__ import annotations

from dataclasses import dataclass

from ..domain import Project, Task, TaskFilter


@dataclass(frozen=True)
class Effect:
    @property
    def kind(self) -> str:
        return type(self).__name__

    # banner prefix used when the effect fails
    action_label = "Operation"


@dataclass(frozen=True)
class LoadTasks(Effect):
    request_id: int
    project_id: str | None = None

    action_label = "Load tasks"

    @property
    def filter(self) -> TaskFilter:
        return TaskFilter(project_id=self.project_id)


@dataclass(frozen=True)
class LoadProjects(Effect):
    request_id: int

    action_label = "Load projects"


@dataclass(frozen=True)
class LoadActiveTimer(Effect):
    request_id: int

    action_label = "Load active timer"


@dataclass(frozen=True)
class LoadReport(Effect):
    request_id: int
    period: str = "today"

    action_label = "Load report"


@dataclass(frozen=True)
class SaveTask(Effect):
    task: Task
    is_new: bool = False

    action_label = "Save task"


@dataclass(frozen=True)
class DeleteTask(Effect):
    task_id: str

    action_label = "Delete task"


@dataclass(frozen=True)
class SaveProject(Effect):
    project: Project
    is_new: bool = False

    action_label = "Save project"


@dataclass(frozen=True)
class DeleteProject(Effect):
    project_id: str

    action_label = "Delete project"


@dataclass(frozen=True)
class StartTimer(Effect):
    task_id: str
    description: str = ""

    action_label = "Start timer"


@dataclass(frozen=True)
class StopTimer(Effect):
    action_label = "Stop timer"


ALL_EFFECTS: tuple[type[Effect], ...] = (
    LoadTasks,
    LoadProjects,
    LoadActiveTimer,
    LoadReport,
    SaveTask,
    DeleteTask,
    SaveProject,
    DeleteProject,
    StartTimer,
    StopTimer,
)
