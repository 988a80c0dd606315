from __future__ import annotations

from dataclasses import replace
import re

from ...domain import DEFAULT_PROJECT_COLOR, Project, local_now, new_project
from .. import keys
from ..messages import FormCancelled, KeyPressed, Message, ProjectSubmitted, ValidationFailed
from ..state import PROJECT_FORM_LABELS, PROJECT_FORM_LIMITS, ProjectFormState
from ._common import edit_form_field, render_form


NAME_REQUIRED = "Name is required"
BAD_COLOR = "Invalid color. Use #rrggbb"
_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")


def open_new() -> ProjectFormState:
    return ProjectFormState(values=("", "", DEFAULT_PROJECT_COLOR))


def open_edit(project: Project) -> ProjectFormState:
    return ProjectFormState(values=(project.name, project.description, project.color), editing=project.copy())


def reduce(state: ProjectFormState, msg: Message) -> tuple[ProjectFormState, tuple[Message, ...]]:
    if not isinstance(msg, KeyPressed):
        return state, ()
    key = msg.key
    if key == keys.FORM_SUBMIT:
        return state, (submit(state),)
    if key == keys.FORM_CANCEL:
        return state, (FormCancelled(),)
    edited = edit_form_field(state.values, state.focus, key, PROJECT_FORM_LIMITS)
    if edited is None:
        return state, ()
    values, focus = edited
    return replace(state, values=values, focus=focus), ()


def submit(state: ProjectFormState) -> Message:
    name, description, color = (v.strip() for v in state.values)
    if not name:
        return ValidationFailed(NAME_REQUIRED)
    color = color or DEFAULT_PROJECT_COLOR
    if not _COLOR_RE.match(color):
        return ValidationFailed(BAD_COLOR)

    now = local_now()
    if state.editing is not None:
        project = state.editing.copy()
        project.name = name
        project.description = description
    else:
        project = new_project(name, description, now=now)
    project.color = color
    project.updated_at = now
    return ProjectSubmitted(project=project, is_new=state.editing is None)


def render(state: ProjectFormState) -> str:
    title = "Edit Project" if state.is_editing else "New Project"
    return render_form(title, PROJECT_FORM_LABELS, state.values, state.focus)
