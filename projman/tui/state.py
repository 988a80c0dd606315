from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum

from ..domain import Project, Task, TimeEntry
from ..services.reports import TimeReport


ACTIVITY_LOG_MAX = 50


class ViewState(str, Enum):
    DASHBOARD = "dashboard"
    TASK_LIST = "task_list"
    TASK_DETAIL = "task_detail"
    TASK_FORM = "task_form"
    PROJECT_LIST = "project_list"
    PROJECT_FORM = "project_form"
    TIME_TRACKING = "time_tracking"
    HELP = "help"


FORM_VIEWS = frozenset({ViewState.TASK_FORM, ViewState.PROJECT_FORM})


class LoadTarget(str, Enum):
    TASKS = "tasks"
    PROJECTS = "projects"
    ACTIVE_TIMER = "active_timer"
    REPORT = "report"


class BannerKind(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    SUCCESS = "success"


@dataclass(frozen=True)
class Banner:
    kind: BannerKind
    text: str


@dataclass(frozen=True)
class DashboardItem:
    title: str
    description: str
    action: str
    icon: str


DASHBOARD_ITEMS: tuple[DashboardItem, ...] = (
    DashboardItem("Tasks", "View and manage your tasks", "tasks", "[T]"),
    DashboardItem("Projects", "Manage your projects", "projects", "[P]"),
    DashboardItem("Time Tracking", "Track time spent on tasks", "time", "[TM]"),
    DashboardItem("New Task", "Create a new task", "new_task", "[+]"),
    DashboardItem("Reports", "View today's time report", "reports", "[R]"),
)


# Sub-model states are frozen: reducers return new values and never mutate.


@dataclass(frozen=True)
class DashboardState:
    selected: int = 0


@dataclass(frozen=True)
class TaskListState:
    tasks: tuple[Task, ...] = ()
    selected: int = 0
    project_id: str | None = None
    project_name: str = ""
    loading: bool = False


@dataclass(frozen=True)
class TaskDetailState:
    task: Task | None = None
    project_name: str = ""


TASK_FORM_FIELDS = ("title", "description", "tags", "changelist", "due_date")
TASK_FORM_LABELS = (
    "Title",
    "Description",
    "Tags (comma-separated)",
    "Changelist (e.g., c/1234)",
    "Due Date (YYYY-MM-DD)",
)
TASK_FORM_LIMITS = (200, 500, 200, 100, 10)


@dataclass(frozen=True)
class TaskFormState:
    values: tuple[str, ...] = ("",) * len(TASK_FORM_FIELDS)
    focus: int = 0
    editing: Task | None = None
    project_id: str | None = None

    @property
    def is_editing(self) -> bool:
        return self.editing is not None


@dataclass(frozen=True)
class ProjectListState:
    projects: tuple[Project, ...] = ()
    selected: int = 0
    loading: bool = False


PROJECT_FORM_FIELDS = ("name", "description", "color")
PROJECT_FORM_LABELS = ("Name", "Description", "Color (#rrggbb)")
PROJECT_FORM_LIMITS = (100, 500, 7)


@dataclass(frozen=True)
class ProjectFormState:
    values: tuple[str, ...] = ("", "", "")
    focus: int = 0
    editing: Project | None = None

    @property
    def is_editing(self) -> bool:
        return self.editing is not None


@dataclass(frozen=True)
class TimeTrackingState:
    active: TimeEntry | None = None
    active_title: str = ""
    report: TimeReport | None = None


@dataclass
class AppState:
    """Everything the root controller owns. Only the controller mutates it."""

    view: ViewState = ViewState.DASHBOARD
    width: int = 80
    height: int = 24
    selected_task_id: str | None = None
    selected_project_id: str | None = None
    active_timer: TimeEntry | None = None
    banner: Banner | None = None
    quitting: bool = False
    # last issued load request id per target
    request_ids: dict[LoadTarget, int] = field(default_factory=dict)
    dashboard: DashboardState = field(default_factory=DashboardState)
    task_list: TaskListState = field(default_factory=TaskListState)
    task_detail: TaskDetailState = field(default_factory=TaskDetailState)
    task_form: TaskFormState = field(default_factory=TaskFormState)
    project_list: ProjectListState = field(default_factory=ProjectListState)
    project_form: ProjectFormState = field(default_factory=ProjectFormState)
    time_tracking: TimeTrackingState = field(default_factory=TimeTrackingState)
    projects_by_id: dict[str, Project] = field(default_factory=dict)
    activity: deque[str] = field(default_factory=lambda: deque(maxlen=ACTIVITY_LOG_MAX))
