from __future__ import annotations

from dataclasses import replace
from datetime import datetime
import logging
from typing import Callable

from ..domain import format_duration, local_now
from . import keys
from .effects import (
    DeleteProject,
    DeleteTask,
    Effect,
    LoadActiveTimer,
    LoadProjects,
    LoadReport,
    LoadTasks,
    SaveProject,
    SaveTask,
    StartTimer,
    StopTimer,
)
from .messages import (
    ActiveTimerLoaded,
    DeleteProjectRequested,
    DeleteTaskRequested,
    EditProjectRequested,
    EditTaskRequested,
    EffectFailed,
    FormCancelled,
    KeyPressed,
    MenuSelected,
    Message,
    NewProjectRequested,
    NewTaskRequested,
    ProjectDeleted,
    ProjectOpened,
    ProjectSaved,
    ProjectsLoaded,
    ProjectSubmitted,
    ReportLoaded,
    Resized,
    StartTimerRequested,
    StopTimerRequested,
    TaskDeleted,
    TaskSaved,
    TaskSelected,
    TasksLoaded,
    TaskStatusToggled,
    TaskSubmitted,
    Tick,
    TimerStarted,
    TimerStopped,
    ValidationFailed,
)
from .state import FORM_VIEWS, AppState, Banner, BannerKind, LoadTarget, ViewState
from .views import (
    dashboard,
    help as help_view,
    project_form,
    project_list,
    task_detail,
    task_form,
    task_list,
    time_tracking,
)


logger = logging.getLogger(__name__)

TASK_GONE = "Task no longer exists"
PROJECT_GONE = "Project no longer exists"

_REDUCERS = {
    ViewState.DASHBOARD: ("dashboard", dashboard.reduce),
    ViewState.TASK_LIST: ("task_list", task_list.reduce),
    ViewState.TASK_DETAIL: ("task_detail", task_detail.reduce),
    ViewState.TASK_FORM: ("task_form", task_form.reduce),
    ViewState.PROJECT_LIST: ("project_list", project_list.reduce),
    ViewState.PROJECT_FORM: ("project_form", project_form.reduce),
    ViewState.TIME_TRACKING: ("time_tracking", time_tracking.reduce),
}


class RootController:
    """Owns AppState. Consumes one message at a time and returns the effects to run.

    View sub-models only see their own slice of state; the actions they emit
    come back through `dispatch`, so every mutation happens here.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = local_now,
        time_format: str = "%H:%M",
    ) -> None:
        self.state = AppState()
        self.clock = clock
        self.time_format = time_format
        self._handlers: dict[type[Message], Callable[[Message], list[Effect]]] = {
            KeyPressed: self._on_key,
            Resized: self._on_resized,
            Tick: self._on_tick,
            MenuSelected: self._on_menu_selected,
            TaskSelected: self._on_task_selected,
            NewTaskRequested: self._on_new_task,
            EditTaskRequested: self._on_edit_task,
            DeleteTaskRequested: self._on_delete_task,
            TaskStatusToggled: self._on_task_toggled,
            StartTimerRequested: self._on_start_timer,
            StopTimerRequested: self._on_stop_timer,
            TaskSubmitted: self._on_task_submitted,
            ProjectOpened: self._on_project_opened,
            NewProjectRequested: self._on_new_project,
            EditProjectRequested: self._on_edit_project,
            DeleteProjectRequested: self._on_delete_project,
            ProjectSubmitted: self._on_project_submitted,
            FormCancelled: self._on_form_cancelled,
            ValidationFailed: self._on_validation_failed,
            TasksLoaded: self._on_tasks_loaded,
            ProjectsLoaded: self._on_projects_loaded,
            ActiveTimerLoaded: self._on_active_timer_loaded,
            ReportLoaded: self._on_report_loaded,
            TaskSaved: self._on_task_saved,
            TaskDeleted: self._on_task_deleted,
            ProjectSaved: self._on_project_saved,
            ProjectDeleted: self._on_project_deleted,
            TimerStarted: self._on_timer_started,
            TimerStopped: self._on_timer_stopped,
            EffectFailed: self._on_effect_failed,
        }

    @property
    def handled_messages(self) -> frozenset[type[Message]]:
        return frozenset(self._handlers)

    # -- entry points -------------------------------------------------------------

    def start(self) -> list[Effect]:
        """Effects for the initial screen."""
        return self._full_reload()

    def dispatch(self, msg: Message) -> list[Effect]:
        if self.state.quitting:
            return []
        handler = self._handlers.get(type(msg))
        if handler is None:
            raise TypeError(f"unhandled message type: {type(msg).__name__}")
        return handler(msg)

    # -- helpers ----------------------------------------------------------------------

    def _next_request(self, target: LoadTarget) -> int:
        request_id = self.state.request_ids.get(target, 0) + 1
        self.state.request_ids[target] = request_id
        return request_id

    def _is_stale(self, target: LoadTarget, request_id: int) -> bool:
        latest = self.state.request_ids.get(target, 0)
        if request_id < latest:
            logger.debug("discarding stale %s result %s (latest %s)", target.value, request_id, latest)
            return True
        return False

    def _load_tasks(self) -> LoadTasks:
        return LoadTasks(self._next_request(LoadTarget.TASKS), self.state.task_list.project_id)

    def _load_projects(self) -> LoadProjects:
        return LoadProjects(self._next_request(LoadTarget.PROJECTS))

    def _load_active(self) -> LoadActiveTimer:
        return LoadActiveTimer(self._next_request(LoadTarget.ACTIVE_TIMER))

    def _load_report(self) -> LoadReport:
        return LoadReport(self._next_request(LoadTarget.REPORT), "today")

    def _full_reload(self) -> list[Effect]:
        return [self._load_tasks(), self._load_projects(), self._load_active()]

    def _reload_current(self) -> list[Effect]:
        view = self.state.view
        if view in (ViewState.TASK_LIST, ViewState.TASK_DETAIL):
            return [self._load_tasks(), self._load_active()]
        if view == ViewState.PROJECT_LIST:
            return [self._load_projects()]
        if view == ViewState.TIME_TRACKING:
            return [self._load_active(), self._load_report()]
        if view in FORM_VIEWS:
            return []
        return self._full_reload()

    def _after_task_change(self) -> list[Effect]:
        effects: list[Effect] = [self._load_tasks(), self._load_active()]
        if self.state.view == ViewState.TIME_TRACKING:
            effects.append(self._load_report())
        return effects

    def _set_banner(self, kind: BannerKind, text: str) -> None:
        self.state.banner = Banner(kind, text)
        self._log(text)

    def _log(self, text: str) -> None:
        stamp = self.clock().strftime("%H:%M:%S")
        self.state.activity.append(f"{stamp} {text}")

    def _go(self, view: ViewState) -> None:
        if view != self.state.view:
            logger.debug("view %s -> %s", self.state.view.value, view.value)
        self.state.view = view

    def _find_task(self, task_id: str):
        for task in self.state.task_list.tasks:
            if task.id == task_id:
                return task
        detail = self.state.task_detail.task
        if detail is not None and detail.id == task_id:
            return detail
        return None

    def _project_name(self, project_id: str | None) -> str:
        if not project_id:
            return ""
        project = self.state.projects_by_id.get(project_id)
        return project.name if project is not None else ""

    def _go_back(self) -> list[Effect]:
        """Global back: dashboard, no banner, no project filter, everything reloaded."""
        self._go(ViewState.DASHBOARD)
        self.state.banner = None
        self.state.task_list = replace(self.state.task_list, project_id=None, project_name="")
        return self._full_reload()

    def _quit(self) -> list[Effect]:
        self.state.quitting = True
        logger.debug("quit requested")
        return []

    # -- input --------------------------------------------------------------------------

    def _on_key(self, msg: KeyPressed) -> list[Effect]:
        key = msg.key
        view = self.state.view

        if view in FORM_VIEWS:
            if key == keys.FORM_QUIT:
                return self._quit()
            return self._delegate(msg)

        if key in keys.QUIT_KEYS:
            return self._quit()
        if key in keys.HELP_KEYS:
            self._go(ViewState.HELP)
            return []
        if key in keys.BACK_KEYS:
            if view == ViewState.DASHBOARD:
                return []
            return self._go_back()
        if key in keys.REFRESH_KEYS:
            return self._reload_current()
        return self._delegate(msg)

    def _delegate(self, msg: Message) -> list[Effect]:
        entry = _REDUCERS.get(self.state.view)
        if entry is None:
            return []
        attr, reduce = entry
        new_sub, actions = reduce(getattr(self.state, attr), msg)
        setattr(self.state, attr, new_sub)
        effects: list[Effect] = []
        for action in actions:
            effects.extend(self.dispatch(action))
        return effects

    def _on_resized(self, msg: Resized) -> list[Effect]:
        self.state.width = max(1, msg.width)
        self.state.height = max(1, msg.height)
        return []

    def _on_tick(self, msg: Tick) -> list[Effect]:
        return []

    # -- actions ------------------------------------------------------------------------

    def _on_menu_selected(self, msg: MenuSelected) -> list[Effect]:
        action = msg.action
        if action == "tasks":
            self.state.task_list = replace(self.state.task_list, project_id=None, project_name="", loading=True)
            self._go(ViewState.TASK_LIST)
            return [self._load_tasks()]
        if action == "projects":
            self.state.project_list = replace(self.state.project_list, loading=True)
            self._go(ViewState.PROJECT_LIST)
            return [self._load_projects()]
        if action in ("time", "reports"):
            self._go(ViewState.TIME_TRACKING)
            return [self._load_active(), self._load_report()]
        if action == "new_task":
            self.state.task_form = task_form.open_new()
            self._go(ViewState.TASK_FORM)
            return []
        self._set_banner(BannerKind.ERROR, f"Unknown action: {action}")
        return []

    def _on_task_selected(self, msg: TaskSelected) -> list[Effect]:
        task = self._find_task(msg.task_id)
        if task is None:
            self._set_banner(BannerKind.ERROR, TASK_GONE)
            return []
        self.state.selected_task_id = task.id
        self.state.task_detail = task_detail.bind(
            self.state.task_detail, task, self._project_name(task.project_id)
        )
        self._go(ViewState.TASK_DETAIL)
        return []

    def _on_new_task(self, msg: NewTaskRequested) -> list[Effect]:
        self.state.task_form = task_form.open_new(self.state.task_list.project_id)
        self._go(ViewState.TASK_FORM)
        return []

    def _on_edit_task(self, msg: EditTaskRequested) -> list[Effect]:
        task = self._find_task(msg.task_id)
        if task is None:
            self._set_banner(BannerKind.ERROR, TASK_GONE)
            return []
        self.state.selected_task_id = task.id
        self.state.task_form = task_form.open_edit(task)
        self._go(ViewState.TASK_FORM)
        return []

    def _on_delete_task(self, msg: DeleteTaskRequested) -> list[Effect]:
        # The reload is issued once the delete has landed.
        return [DeleteTask(msg.task_id)]

    def _on_task_toggled(self, msg: TaskStatusToggled) -> list[Effect]:
        return [SaveTask(msg.task, is_new=False)]

    def _on_start_timer(self, msg: StartTimerRequested) -> list[Effect]:
        # The store decides whether a timer is already running.
        return [StartTimer(msg.task_id)]

    def _on_stop_timer(self, msg: StopTimerRequested) -> list[Effect]:
        return [StopTimer()]

    def _on_task_submitted(self, msg: TaskSubmitted) -> list[Effect]:
        self.state.selected_task_id = msg.task.id
        self.state.banner = None
        self._go(ViewState.TASK_LIST)
        return [SaveTask(msg.task, is_new=msg.is_new)]

    def _on_project_opened(self, msg: ProjectOpened) -> list[Effect]:
        self.state.selected_project_id = msg.project_id
        self.state.task_list = replace(
            self.state.task_list,
            tasks=(),
            selected=0,
            project_id=msg.project_id,
            project_name=self._project_name(msg.project_id),
            loading=True,
        )
        self._go(ViewState.TASK_LIST)
        return [self._load_tasks()]

    def _on_new_project(self, msg: NewProjectRequested) -> list[Effect]:
        self.state.project_form = project_form.open_new()
        self._go(ViewState.PROJECT_FORM)
        return []

    def _on_edit_project(self, msg: EditProjectRequested) -> list[Effect]:
        project = self.state.projects_by_id.get(msg.project_id)
        if project is None:
            self._set_banner(BannerKind.ERROR, PROJECT_GONE)
            return []
        self.state.selected_project_id = project.id
        self.state.project_form = project_form.open_edit(project)
        self._go(ViewState.PROJECT_FORM)
        return []

    def _on_delete_project(self, msg: DeleteProjectRequested) -> list[Effect]:
        return [DeleteProject(msg.project_id)]

    def _on_project_submitted(self, msg: ProjectSubmitted) -> list[Effect]:
        self.state.banner = None
        self._go(ViewState.PROJECT_LIST)
        return [SaveProject(msg.project, is_new=msg.is_new)]

    def _on_form_cancelled(self, msg: FormCancelled) -> list[Effect]:
        return self._go_back()

    def _on_validation_failed(self, msg: ValidationFailed) -> list[Effect]:
        self._set_banner(BannerKind.ERROR, msg.text)
        return []

    # -- effect results ------------------------------------------------------------------

    def _on_tasks_loaded(self, msg: TasksLoaded) -> list[Effect]:
        if self._is_stale(LoadTarget.TASKS, msg.request_id):
            return []
        self.state.task_list = task_list.load(self.state.task_list, msg.tasks, msg.project_id)
        self.state.task_list = replace(self.state.task_list, project_name=self._project_name(msg.project_id))
        self._rebind_detail()
        return []

    def _rebind_detail(self) -> None:
        selected = self.state.selected_task_id
        if selected is None:
            return
        for task in self.state.task_list.tasks:
            if task.id == selected:
                self.state.task_detail = task_detail.bind(
                    self.state.task_detail, task, self._project_name(task.project_id)
                )
                return
        if self.state.view == ViewState.TASK_DETAIL:
            self.state.selected_task_id = None
            self.state.task_detail = task_detail.bind(self.state.task_detail, None)
            self._go(ViewState.TASK_LIST)
            self._set_banner(BannerKind.WARNING, TASK_GONE)

    def _on_projects_loaded(self, msg: ProjectsLoaded) -> list[Effect]:
        if self._is_stale(LoadTarget.PROJECTS, msg.request_id):
            return []
        self.state.project_list = project_list.load(self.state.project_list, msg.projects)
        self.state.projects_by_id = {p.id: p for p in msg.projects}
        self.state.task_list = replace(
            self.state.task_list, project_name=self._project_name(self.state.task_list.project_id)
        )
        return []

    def _on_active_timer_loaded(self, msg: ActiveTimerLoaded) -> list[Effect]:
        if self._is_stale(LoadTarget.ACTIVE_TIMER, msg.request_id):
            return []
        self.state.active_timer = msg.entry
        self.state.time_tracking = time_tracking.with_active(self.state.time_tracking, msg.entry, msg.task_title)
        return []

    def _on_report_loaded(self, msg: ReportLoaded) -> list[Effect]:
        if self._is_stale(LoadTarget.REPORT, msg.request_id):
            return []
        self.state.time_tracking = time_tracking.with_report(self.state.time_tracking, msg.report)
        return []

    def _on_task_saved(self, msg: TaskSaved) -> list[Effect]:
        verb = "created" if msg.is_new else "saved"
        self._set_banner(BannerKind.SUCCESS, f"Task {verb}: {msg.task.title}")
        if self.state.selected_task_id == msg.task.id:
            self.state.task_detail = task_detail.bind(
                self.state.task_detail, msg.task, self._project_name(msg.task.project_id)
            )
        return self._after_task_change()

    def _on_task_deleted(self, msg: TaskDeleted) -> list[Effect]:
        self._set_banner(BannerKind.SUCCESS, "Task deleted")
        if self.state.selected_task_id == msg.task_id:
            self.state.selected_task_id = None
            self.state.task_detail = task_detail.bind(self.state.task_detail, None)
            if self.state.view == ViewState.TASK_DETAIL:
                self._go(ViewState.TASK_LIST)
        return self._after_task_change()

    def _on_project_saved(self, msg: ProjectSaved) -> list[Effect]:
        verb = "created" if msg.is_new else "saved"
        self._set_banner(BannerKind.SUCCESS, f"Project {verb}: {msg.project.name}")
        return [self._load_projects()]

    def _on_project_deleted(self, msg: ProjectDeleted) -> list[Effect]:
        self._set_banner(BannerKind.SUCCESS, "Project deleted with its tasks")
        if self.state.selected_project_id == msg.project_id:
            self.state.selected_project_id = None
        if self.state.task_list.project_id == msg.project_id:
            self.state.task_list = replace(self.state.task_list, project_id=None, project_name="")
        return self._full_reload()

    def _on_timer_started(self, msg: TimerStarted) -> list[Effect]:
        self.state.active_timer = msg.entry
        if msg.warning:
            self._set_banner(BannerKind.WARNING, f"Timer started; {msg.warning}")
        else:
            self._set_banner(BannerKind.SUCCESS, "Timer started")
        return self._after_task_change()

    def _on_timer_stopped(self, msg: TimerStopped) -> list[Effect]:
        self.state.active_timer = None
        self._set_banner(BannerKind.SUCCESS, f"Timer stopped: {format_duration(msg.entry.duration)}")
        effects: list[Effect] = [self._load_active()]
        if self.state.view == ViewState.TIME_TRACKING:
            effects.append(self._load_report())
        return effects

    def _on_effect_failed(self, msg: EffectFailed) -> list[Effect]:
        self._set_banner(BannerKind.ERROR, msg.banner_text)
        # Lists may still show an in-memory toggle the store never took.
        if msg.effect_kind in ("SaveTask", "DeleteTask"):
            return [self._load_tasks()]
        if msg.effect_kind in ("SaveProject", "DeleteProject"):
            return [self._load_projects()]
        return []

    # -- rendering -------------------------------------------------------------------------

    def render(self) -> str:
        state = self.state
        now = self.clock()
        view = state.view
        if view == ViewState.DASHBOARD:
            body = dashboard.render(state.dashboard)
        elif view == ViewState.TASK_LIST:
            body = task_list.render(state.task_list, now=now)
        elif view == ViewState.TASK_DETAIL:
            body = task_detail.render(state.task_detail, now=now, time_format=self.time_format)
        elif view == ViewState.TASK_FORM:
            body = task_form.render(state.task_form)
        elif view == ViewState.PROJECT_LIST:
            body = project_list.render(state.project_list)
        elif view == ViewState.PROJECT_FORM:
            body = project_form.render(state.project_form)
        elif view == ViewState.TIME_TRACKING:
            body = time_tracking.render(state.time_tracking, now=now, time_format=self.time_format)
        else:
            body = help_view.render(state.activity)

        if state.banner is not None:
            prefix = {
                BannerKind.ERROR: "Error",
                BannerKind.WARNING: "Warning",
                BannerKind.SUCCESS: "OK",
            }[state.banner.kind]
            body += f"\n\n{prefix}: {state.banner.text}"
        return body

    def status_line(self) -> str:
        timer = "idle"
        active = self.state.active_timer
        if active is not None:
            label = self.state.time_tracking.active_title or active.task_id[:8]
            timer = f"{label} {active.formatted_duration(self.clock())}"
        return f"view={self.state.view.value} | timer={timer} | ?: help | q: quit"
