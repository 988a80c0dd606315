"""Every value the root controller consumes.

Three families share one closed set of variants: input (keys, resize, tick),
actions emitted by view sub-models, and results delivered by the scheduler.
`ALL_MESSAGES` lists them; the controller keeps one handler per variant.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..domain import Project, Task, TimeEntry
from ..services.reports import TimeReport


@dataclass(frozen=True)
class Message:
    pass


# -- input ------------------------------------------------------------------


@dataclass(frozen=True)
class KeyPressed(Message):
    key: str


@dataclass(frozen=True)
class Resized(Message):
    width: int
    height: int


@dataclass(frozen=True)
class Tick(Message):
    now: datetime


# -- actions from sub-models --------------------------------------------------


@dataclass(frozen=True)
class MenuSelected(Message):
    action: str


@dataclass(frozen=True)
class TaskSelected(Message):
    task_id: str


@dataclass(frozen=True)
class NewTaskRequested(Message):
    pass


@dataclass(frozen=True)
class EditTaskRequested(Message):
    task_id: str


@dataclass(frozen=True)
class DeleteTaskRequested(Message):
    task_id: str


@dataclass(frozen=True)
class TaskStatusToggled(Message):
    """The sub-model already flipped the task locally; it still needs persisting."""

    task: Task


@dataclass(frozen=True)
class StartTimerRequested(Message):
    task_id: str


@dataclass(frozen=True)
class StopTimerRequested(Message):
    pass


@dataclass(frozen=True)
class TaskSubmitted(Message):
    task: Task
    is_new: bool


@dataclass(frozen=True)
class ProjectOpened(Message):
    project_id: str


@dataclass(frozen=True)
class NewProjectRequested(Message):
    pass


@dataclass(frozen=True)
class EditProjectRequested(Message):
    project_id: str


@dataclass(frozen=True)
class DeleteProjectRequested(Message):
    project_id: str


@dataclass(frozen=True)
class ProjectSubmitted(Message):
    project: Project
    is_new: bool


@dataclass(frozen=True)
class FormCancelled(Message):
    pass


@dataclass(frozen=True)
class ValidationFailed(Message):
    text: str


# -- effect results -------------------------------------------------------------


@dataclass(frozen=True)
class TasksLoaded(Message):
    request_id: int
    tasks: tuple[Task, ...]
    project_id: str | None = None


@dataclass(frozen=True)
class ProjectsLoaded(Message):
    request_id: int
    projects: tuple[Project, ...]


@dataclass(frozen=True)
class ActiveTimerLoaded(Message):
    request_id: int
    entry: TimeEntry | None
    task_title: str = ""


@dataclass(frozen=True)
class ReportLoaded(Message):
    request_id: int
    report: TimeReport


@dataclass(frozen=True)
class TaskSaved(Message):
    task: Task
    is_new: bool


@dataclass(frozen=True)
class TaskDeleted(Message):
    task_id: str


@dataclass(frozen=True)
class ProjectSaved(Message):
    project: Project
    is_new: bool


@dataclass(frozen=True)
class ProjectDeleted(Message):
    project_id: str


@dataclass(frozen=True)
class TimerStarted(Message):
    entry: TimeEntry
    warning: str = ""


@dataclass(frozen=True)
class TimerStopped(Message):
    entry: TimeEntry


@dataclass(frozen=True)
class EffectFailed(Message):
    action: str
    error: str
    effect_kind: str = ""

    @property
    def banner_text(self) -> str:
        return f"{self.action} failed: {self.error}"


ALL_MESSAGES: tuple[type[Message], ...] = (
    KeyPressed,
    Resized,
    Tick,
    MenuSelected,
    TaskSelected,
    NewTaskRequested,
    EditTaskRequested,
    DeleteTaskRequested,
    TaskStatusToggled,
    StartTimerRequested,
    StopTimerRequested,
    TaskSubmitted,
    ProjectOpened,
    NewProjectRequested,
    EditProjectRequested,
    DeleteProjectRequested,
    ProjectSubmitted,
    FormCancelled,
    ValidationFailed,
    TasksLoaded,
    ProjectsLoaded,
    ActiveTimerLoaded,
    ReportLoaded,
    TaskSaved,
    TaskDeleted,
    ProjectSaved,
    ProjectDeleted,
    TimerStarted,
    TimerStopped,
    EffectFailed,
)
