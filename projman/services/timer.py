from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
from typing import Callable

from ..domain import TaskStatus, TimeEntry, TimeEntryFilter, format_duration, local_now, new_time_entry
from ..errors import (
    ActiveTimerExists,
    InvalidProjectId,
    InvalidTaskId,
    NoActiveTimer,
    NotFoundError,
    PmError,
    TimeEntryNotFound,
)
from ..store import Repositories
from .reports import TimeReport, build_report


logger = logging.getLogger(__name__)

__all__ = ["TimeTrackingService", "TimerStart", "format_duration"]


@dataclass(frozen=True)
class TimerStart:
    entry: TimeEntry
    warning: str = ""


@dataclass
class TimeTrackingService:
    """Timer guard and reports.

    The store is the source of truth for "is something running": a start is
    refused when the store reports an active entry, and the store itself
    refuses a second running row.
    """

    repos: Repositories
    clock: Callable[[], datetime] = field(default=local_now)
    week_start: int = 0

    def start_time_tracking(self, task_id: str, description: str = "") -> TimerStart:
        if not task_id:
            raise InvalidTaskId()

        try:
            active = self.repos.time_entries.get_active()
        except NoActiveTimer:
            pass
        else:
            raise ActiveTimerExists(active.id)

        task = self.repos.tasks.get_by_id(task_id)
        entry = new_time_entry(task.id, task.project_id, description, now=self.clock())
        self.repos.time_entries.create(entry)
        logger.debug("timer started entry=%s task=%s", entry.id, task.id)

        warning = ""
        if task.status != TaskStatus.DOING:
            try:
                task.start(self.clock())
                self.repos.tasks.update(task)
            except PmError as exc:
                warning = f"failed to update task status: {exc}"
                logger.warning("timer started but task %s stayed %s: %s", task.id, task.status.value, exc)
        return TimerStart(entry=entry, warning=warning)

    def stop_time_tracking(self) -> TimeEntry:
        entry = self.repos.time_entries.stop_active(self.clock())
        logger.debug("timer stopped entry=%s duration=%s", entry.id, entry.duration)
        return entry

    def get_active_time_entry(self) -> TimeEntry | None:
        try:
            return self.repos.time_entries.get_active()
        except NoActiveTimer:
            return None

    def list_time_entries(self, flt: TimeEntryFilter | None = None) -> list[TimeEntry]:
        return self.repos.time_entries.list(flt)

    def get_time_entries_by_task(self, task_id: str) -> list[TimeEntry]:
        if not task_id:
            raise InvalidTaskId()
        return self.repos.time_entries.get_by_task(task_id)

    def get_time_entries_by_project(self, project_id: str) -> list[TimeEntry]:
        if not project_id:
            raise InvalidProjectId()
        return self.repos.time_entries.get_by_project(project_id)

    def delete_time_entry(self, entry_id: str) -> None:
        if not entry_id:
            raise TimeEntryNotFound(entry_id)
        self.repos.time_entries.delete(entry_id)

    def update_time_entry(self, entry: TimeEntry) -> TimeEntry:
        entry.updated_at = self.clock()
        return self.repos.time_entries.update(entry)

    def generate_report(self, start: datetime, end: datetime) -> TimeReport:
        entries = self.list_time_entries(TimeEntryFilter(start_after=start, start_before=end))
        return build_report(
            entries,
            start,
            end,
            now=self.clock(),
            task_title=self._task_title,
            project_name=self._project_name,
        )

    def _task_title(self, task_id: str) -> str | None:
        try:
            return self.repos.tasks.get_by_id(task_id).title
        except NotFoundError:
            return None

    def _project_name(self, project_id: str) -> str | None:
        try:
            return self.repos.projects.get_by_id(project_id).name
        except NotFoundError:
            return None

    def _start_of_day(self) -> datetime:
        return self.clock().replace(hour=0, minute=0, second=0, microsecond=0)

    def today_report(self) -> TimeReport:
        start = self._start_of_day()
        return self.generate_report(start, start + timedelta(days=1))

    def yesterday_report(self) -> TimeReport:
        end = self._start_of_day()
        return self.generate_report(end - timedelta(days=1), end)

    def week_report(self) -> TimeReport:
        today = self._start_of_day()
        start = today - timedelta(days=(today.weekday() - self.week_start) % 7)
        return self.generate_report(start, start + timedelta(days=7))

    def month_report(self) -> TimeReport:
        today = self._start_of_day()
        start = today.replace(day=1)
        if start.month == 12:
            end = start.replace(year=start.year + 1, month=1)
        else:
            end = start.replace(month=start.month + 1)
        return self.generate_report(start, end)
