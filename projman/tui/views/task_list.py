from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Iterable

from ...domain import Task
from .. import keys
from ..messages import (
    DeleteTaskRequested,
    EditTaskRequested,
    KeyPressed,
    Message,
    NewTaskRequested,
    StartTimerRequested,
    StopTimerRequested,
    TaskSelected,
    TaskStatusToggled,
)
from ..state import TaskListState
from ._common import clamp, move, task_line


def load(state: TaskListState, tasks: Iterable[Task], project_id: str | None = None) -> TaskListState:
    """Replace the list, keeping the selection on the same task when it is still there."""

    fresh = tuple(tasks)
    selected = state.selected
    if state.tasks and 0 <= state.selected < len(state.tasks):
        current_id = state.tasks[state.selected].id
        for index, task in enumerate(fresh):
            if task.id == current_id:
                selected = index
                break
    return replace(state, tasks=fresh, selected=clamp(selected, len(fresh)), project_id=project_id, loading=False)


def selected_task(state: TaskListState) -> Task | None:
    if not state.tasks:
        return None
    return state.tasks[clamp(state.selected, len(state.tasks))]


def reduce(state: TaskListState, msg: Message) -> tuple[TaskListState, tuple[Message, ...]]:
    if not isinstance(msg, KeyPressed):
        return state, ()
    key = msg.key

    if key in keys.NEW_KEYS:
        return state, (NewTaskRequested(),)
    if key in keys.STOP_KEYS:
        return state, (StopTimerRequested(),)

    task = selected_task(state)
    if task is None:
        return state, ()

    if key in keys.UP_KEYS:
        return replace(state, selected=move(state.selected, -1, len(state.tasks))), ()
    if key in keys.DOWN_KEYS:
        return replace(state, selected=move(state.selected, 1, len(state.tasks))), ()
    if key in keys.ENTER_KEYS:
        return state, (TaskSelected(task.id),)
    if key in keys.EDIT_KEYS:
        return state, (EditTaskRequested(task.id),)
    if key in keys.DELETE_KEYS:
        return state, (DeleteTaskRequested(task.id),)
    if key in keys.START_KEYS:
        return state, (StartTimerRequested(task.id),)
    if key in keys.TOGGLE_KEYS:
        toggled = task.copy()
        toggled.toggle_done()
        index = clamp(state.selected, len(state.tasks))
        tasks = state.tasks[:index] + (toggled,) + state.tasks[index + 1 :]
        return replace(state, tasks=tasks), (TaskStatusToggled(toggled),)
    return state, ()


def render(state: TaskListState, *, now: datetime | None = None) -> str:
    title = f"Tasks: {state.project_name}" if state.project_name else "Tasks"
    lines = [title, ""]
    if state.loading and not state.tasks:
        lines.append("Loading tasks...")
        return "\n".join(lines)
    if not state.tasks:
        lines.append("No tasks found. Press 'n' to create a new task.")
        lines.append("")
        lines.append("n: new task | esc: back")
        return "\n".join(lines)

    for index, task in enumerate(state.tasks):
        pointer = ">" if index == state.selected else " "
        lines.append(f"{pointer} {task_line(task, now=now)}")
        if index == state.selected and task.description:
            lines.append(f"    {task.description}")
    lines.append("")
    lines.append(
        "up/down: navigate | enter: details | n: new | e: edit | t: toggle | d: delete | "
        "s: start timer | S: stop timer | esc: back"
    )
    return "\n".join(lines)
