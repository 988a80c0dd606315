from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from ...domain import Task
from .. import keys
from ..messages import (
    DeleteTaskRequested,
    EditTaskRequested,
    KeyPressed,
    Message,
    StartTimerRequested,
    StopTimerRequested,
    TaskStatusToggled,
)
from ..state import TaskDetailState
from ._common import priority_icon, status_icon


def bind(state: TaskDetailState, task: Task | None, project_name: str = "") -> TaskDetailState:
    return replace(state, task=task, project_name=project_name)


def reduce(state: TaskDetailState, msg: Message) -> tuple[TaskDetailState, tuple[Message, ...]]:
    if not isinstance(msg, KeyPressed) or state.task is None:
        return state, ()
    key = msg.key
    task = state.task
    if key in keys.EDIT_KEYS:
        return state, (EditTaskRequested(task.id),)
    if key in keys.DELETE_KEYS:
        return state, (DeleteTaskRequested(task.id),)
    if key in keys.START_KEYS:
        return state, (StartTimerRequested(task.id),)
    if key in keys.STOP_KEYS:
        return state, (StopTimerRequested(),)
    if key in keys.TOGGLE_KEYS:
        toggled = task.copy()
        toggled.toggle_done()
        return replace(state, task=toggled), (TaskStatusToggled(toggled),)
    return state, ()


def render(state: TaskDetailState, *, now: datetime | None = None, time_format: str = "%H:%M") -> str:
    task = state.task
    if task is None:
        return "No task selected"

    lines = ["Task Details", "", "Title:", task.title, ""]
    lines += ["Status:", f"{status_icon(task.status)} {task.status.value}", ""]
    lines += ["Priority:", f"{priority_icon(task.priority)} {task.priority.label}", ""]
    if state.project_name:
        lines += ["Project:", state.project_name, ""]
    if task.description:
        lines += ["Description:", task.description, ""]
    if task.changelist:
        lines += ["Changelist:", task.changelist, ""]
    if task.tags:
        lines += ["Tags:", ", ".join(task.tags), ""]
    if task.due_date is not None:
        due = task.due_date.strftime("%Y-%m-%d")
        if task.is_overdue(now):
            due += " (overdue)"
        lines += ["Due Date:", due, ""]
    if task.note is not None:
        lines += ["Note:", f"{task.note.id} ({task.note.path})", ""]
    stamp = f"%Y-%m-%d {time_format}"
    lines.append(f"Created: {task.created_at.strftime(stamp)}")
    lines.append(f"Updated: {task.updated_at.strftime(stamp)}")
    if task.completed_at is not None:
        lines.append(f"Completed: {task.completed_at.strftime(stamp)}")
    lines.append("")
    lines.append("e: edit | d: delete | t: toggle status | s: start timer | S: stop timer | esc: back")
    return "\n".join(lines)
