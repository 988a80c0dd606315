from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from ...domain import TimeEntry, format_duration
from ...services.reports import TimeReport
from .. import keys
from ..messages import KeyPressed, Message, StopTimerRequested
from ..state import TimeTrackingState


def with_active(state: TimeTrackingState, entry: TimeEntry | None, title: str = "") -> TimeTrackingState:
    return replace(state, active=entry, active_title=title if entry is not None else "")


def with_report(state: TimeTrackingState, report: TimeReport) -> TimeTrackingState:
    return replace(state, report=report)


def reduce(state: TimeTrackingState, msg: Message) -> tuple[TimeTrackingState, tuple[Message, ...]]:
    if isinstance(msg, KeyPressed) and msg.key in keys.STOP_KEYS:
        return state, (StopTimerRequested(),)
    return state, ()


def render(state: TimeTrackingState, *, now: datetime | None = None, time_format: str = "%H:%M") -> str:
    lines = ["Time Tracking", ""]
    if state.active is None:
        lines.append("No timer running. Press 's' on a task to start one.")
    else:
        label = state.active_title or state.active.task_id
        since = state.active.start_time.strftime(time_format)
        lines.append(f"Running: {label} since {since} ({state.active.formatted_duration(now)})")
        if state.active.description:
            lines.append(f"    {state.active.description}")
    lines.append("")

    report = state.report
    if report is None:
        lines.append("Loading today's report...")
    else:
        lines.append(f"Today: {format_duration(report.total)}")
        for total in report.task_totals():
            lines.append(f"  {format_duration(total.total):>12}  {total.task_title}")
        if report.by_project:
            lines.append("")
            lines.append("By project:")
            for project in sorted(report.by_project.values(), key=lambda p: p.project_name):
                lines.append(f"  {format_duration(project.total):>12}  {project.project_name}")
    lines.append("")
    lines.append("S: stop timer | r: refresh | esc: back")
    return "\n".join(lines)
