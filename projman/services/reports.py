from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Iterable

from ..domain import TimeEntry


NO_PROJECT_NAME = "(no project)"


@dataclass
class TaskTotal:
    task_id: str
    task_title: str
    total: timedelta = field(default_factory=timedelta)
    entries: list[TimeEntry] = field(default_factory=list)


@dataclass
class ProjectTotal:
    project_id: str
    project_name: str
    total: timedelta = field(default_factory=timedelta)
    entries: list[TimeEntry] = field(default_factory=list)


@dataclass
class DayTotal:
    day: date
    total: timedelta = field(default_factory=timedelta)
    entries: list[TimeEntry] = field(default_factory=list)


@dataclass
class TimeReport:
    start: datetime
    end: datetime
    total: timedelta = field(default_factory=timedelta)
    entries: list[TimeEntry] = field(default_factory=list)
    by_task: dict[str, TaskTotal] = field(default_factory=dict)
    by_project: dict[str, ProjectTotal] = field(default_factory=dict)
    by_day: dict[date, DayTotal] = field(default_factory=dict)

    def day_totals(self) -> list[DayTotal]:
        return [self.by_day[key] for key in sorted(self.by_day)]

    def task_totals(self) -> list[TaskTotal]:
        return sorted(self.by_task.values(), key=lambda t: (-t.total, t.task_title))


def build_report(
    entries: Iterable[TimeEntry],
    start: datetime,
    end: datetime,
    *,
    now: datetime,
    task_title: Callable[[str], str | None] = lambda _id: None,
    project_name: Callable[[str], str | None] = lambda _id: None,
) -> TimeReport:
    """Aggregate entries whose start lies in [start, end).

    Running entries count `now - start`. Grouping is by task, by project and
    by local calendar day of the start; the three groupings and the total are
    built from the same per-entry durations.
    """

    report = TimeReport(start=start, end=end)
    for entry in entries:
        if not (start <= entry.start_time < end):
            continue
        spent = entry.elapsed(now)
        report.entries.append(entry)
        report.total += spent

        task = report.by_task.get(entry.task_id)
        if task is None:
            task = TaskTotal(task_id=entry.task_id, task_title=task_title(entry.task_id) or entry.task_id)
            report.by_task[entry.task_id] = task
        task.total += spent
        task.entries.append(entry)

        project_key = entry.project_id or ""
        project = report.by_project.get(project_key)
        if project is None:
            if project_key:
                name = project_name(project_key) or project_key
            else:
                name = NO_PROJECT_NAME
            project = ProjectTotal(project_id=project_key, project_name=name)
            report.by_project[project_key] = project
        project.total += spent
        project.entries.append(entry)

        day_key = entry.start_time.astimezone().date()
        day = report.by_day.get(day_key)
        if day is None:
            day = DayTotal(day=day_key)
            report.by_day[day_key] = day
        day.total += spent
        day.entries.append(entry)

    return report
