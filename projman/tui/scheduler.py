"""Run effect descriptors against the services and turn each outcome into one message."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from ..errors import NotFoundError, PmError
from ..services import Services
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
    EffectFailed,
    Message,
    ProjectDeleted,
    ProjectSaved,
    ProjectsLoaded,
    ReportLoaded,
    TaskDeleted,
    TaskSaved,
    TasksLoaded,
    TimerStarted,
    TimerStopped,
)


logger = logging.getLogger(__name__)

Deliver = Callable[[Message], Awaitable[None] | None]


class Scheduler:
    def __init__(self, services: Services) -> None:
        self.services = services
        self._runners: dict[type[Effect], Callable[[Effect], Message]] = {
            LoadTasks: self._load_tasks,
            LoadProjects: self._load_projects,
            LoadActiveTimer: self._load_active_timer,
            LoadReport: self._load_report,
            SaveTask: self._save_task,
            DeleteTask: self._delete_task,
            SaveProject: self._save_project,
            DeleteProject: self._delete_project,
            StartTimer: self._start_timer,
            StopTimer: self._stop_timer,
        }

    @property
    def handled_effects(self) -> frozenset[type[Effect]]:
        return frozenset(self._runners)

    def execute(self, effect: Effect) -> Message:
        """Run one effect synchronously. Never raises; failures come back as EffectFailed."""

        runner = self._runners.get(type(effect))
        if runner is None:
            return EffectFailed(effect.action_label, f"unsupported effect {effect.kind}", effect.kind)
        try:
            return runner(effect)
        except PmError as exc:
            logger.warning("%s failed: %s", effect.kind, exc)
            return EffectFailed(effect.action_label, str(exc), effect.kind)
        except Exception as exc:  # noqa: BLE001
            logger.exception("%s crashed", effect.kind)
            return EffectFailed(effect.action_label, f"{type(exc).__name__}: {exc}", effect.kind)

    async def submit(self, effect: Effect, deliver: Deliver) -> None:
        message = await asyncio.to_thread(self.execute, effect)
        result = deliver(message)
        if asyncio.iscoroutine(result):
            await result

    # -- runners ----------------------------------------------------------------------

    def _load_tasks(self, effect: LoadTasks) -> Message:
        tasks = self.services.tasks.list_tasks(effect.filter)
        return TasksLoaded(effect.request_id, tuple(tasks), effect.project_id)

    def _load_projects(self, effect: LoadProjects) -> Message:
        projects = self.services.projects.list_projects()
        return ProjectsLoaded(effect.request_id, tuple(projects))

    def _load_active_timer(self, effect: LoadActiveTimer) -> Message:
        entry = self.services.timer.get_active_time_entry()
        title = ""
        if entry is not None:
            try:
                title = self.services.tasks.get_task(entry.task_id).title
            except NotFoundError:
                title = ""
        return ActiveTimerLoaded(effect.request_id, entry, title)

    def _load_report(self, effect: LoadReport) -> Message:
        timer = self.services.timer
        builders = {
            "today": timer.today_report,
            "yesterday": timer.yesterday_report,
            "week": timer.week_report,
            "month": timer.month_report,
        }
        build = builders.get(effect.period, timer.today_report)
        return ReportLoaded(effect.request_id, build())

    def _save_task(self, effect: SaveTask) -> Message:
        saved = self.services.tasks.save_task(effect.task, create=effect.is_new)
        return TaskSaved(saved, effect.is_new)

    def _delete_task(self, effect: DeleteTask) -> Message:
        self.services.tasks.delete_task(effect.task_id)
        return TaskDeleted(effect.task_id)

    def _save_project(self, effect: SaveProject) -> Message:
        saved = self.services.projects.save_project(effect.project, create=effect.is_new)
        return ProjectSaved(saved, effect.is_new)

    def _delete_project(self, effect: DeleteProject) -> Message:
        self.services.projects.delete_project(effect.project_id)
        return ProjectDeleted(effect.project_id)

    def _start_timer(self, effect: StartTimer) -> Message:
        started = self.services.timer.start_time_tracking(effect.task_id, effect.description)
        return TimerStarted(started.entry, started.warning)

    def _stop_timer(self, effect: StopTimer) -> Message:
        entry = self.services.timer.stop_time_tracking()
        return TimerStopped(entry)
