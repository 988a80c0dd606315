from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from ...dates import validate_due_date_text
from ...domain import Task, local_now, new_task
from .. import keys
from ..messages import FormCancelled, KeyPressed, Message, TaskSubmitted, ValidationFailed
from ..state import TASK_FORM_LABELS, TASK_FORM_LIMITS, TaskFormState
from ._common import edit_form_field, render_form


TITLE_REQUIRED = "Title is required"
BAD_DUE_DATE = "Invalid due date format. Use YYYY-MM-DD"


def open_new(project_id: str | None = None) -> TaskFormState:
    return TaskFormState(project_id=project_id)


def open_edit(task: Task) -> TaskFormState:
    due = task.due_date.strftime("%Y-%m-%d") if task.due_date is not None else ""
    return TaskFormState(
        values=(task.title, task.description, ", ".join(task.tags), task.changelist, due),
        editing=task.copy(),
        project_id=task.project_id,
    )


def reduce(state: TaskFormState, msg: Message) -> tuple[TaskFormState, tuple[Message, ...]]:
    if not isinstance(msg, KeyPressed):
        return state, ()
    key = msg.key
    if key == keys.FORM_SUBMIT:
        return state, (submit(state),)
    if key == keys.FORM_CANCEL:
        return state, (FormCancelled(),)
    edited = edit_form_field(state.values, state.focus, key, TASK_FORM_LIMITS)
    if edited is None:
        return state, ()
    values, focus = edited
    return replace(state, values=values, focus=focus), ()


def submit(state: TaskFormState) -> Message:
    """Validate the fields; a TaskSubmitted carrying the populated task, or ValidationFailed."""

    title, description, tags_text, changelist, due_text = (v.strip() for v in state.values)
    if not title:
        return ValidationFailed(TITLE_REQUIRED)
    if not validate_due_date_text(due_text):
        return ValidationFailed(BAD_DUE_DATE)

    now = local_now()
    if state.editing is not None:
        task = state.editing.copy()
        task.title = title
        task.description = description
    else:
        task = new_task(title, description, now=now)
        task.project_id = state.project_id

    task.tags = []
    for tag in tags_text.split(","):
        task.add_tag(tag)
    task.changelist = changelist
    if due_text:
        day = datetime.strptime(due_text, "%Y-%m-%d")
        task.due_date = day.replace(tzinfo=now.tzinfo)
    else:
        task.due_date = None
    task.updated_at = now
    return TaskSubmitted(task=task, is_new=state.editing is None)


def render(state: TaskFormState) -> str:
    title = "Edit Task" if state.is_editing else "New Task"
    return render_form(title, TASK_FORM_LABELS, state.values, state.focus)
