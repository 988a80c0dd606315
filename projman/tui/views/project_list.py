from __future__ import annotations

from dataclasses import replace
from typing import Iterable

from ...domain import Project
from .. import keys
from ..messages import (
    DeleteProjectRequested,
    EditProjectRequested,
    KeyPressed,
    Message,
    NewProjectRequested,
    ProjectOpened,
)
from ..state import ProjectListState
from ._common import clamp, move


def load(state: ProjectListState, projects: Iterable[Project]) -> ProjectListState:
    fresh = tuple(projects)
    return replace(state, projects=fresh, selected=clamp(state.selected, len(fresh)), loading=False)


def reduce(state: ProjectListState, msg: Message) -> tuple[ProjectListState, tuple[Message, ...]]:
    if not isinstance(msg, KeyPressed):
        return state, ()
    key = msg.key
    if key in keys.NEW_KEYS:
        return state, (NewProjectRequested(),)
    if not state.projects:
        return state, ()

    project = state.projects[clamp(state.selected, len(state.projects))]
    if key in keys.UP_KEYS:
        return replace(state, selected=move(state.selected, -1, len(state.projects))), ()
    if key in keys.DOWN_KEYS:
        return replace(state, selected=move(state.selected, 1, len(state.projects))), ()
    if key in keys.ENTER_KEYS:
        return state, (ProjectOpened(project.id),)
    if key in keys.EDIT_KEYS:
        return state, (EditProjectRequested(project.id),)
    if key in keys.DELETE_KEYS:
        return state, (DeleteProjectRequested(project.id),)
    return state, ()


def render(state: ProjectListState) -> str:
    lines = ["Projects", ""]
    if state.loading and not state.projects:
        lines.append("Loading projects...")
        return "\n".join(lines)
    if not state.projects:
        lines.append("No projects found. Press 'n' to create a new project.")
        lines.append("")
        lines.append("n: new project | esc: back")
        return "\n".join(lines)

    for index, project in enumerate(state.projects):
        pointer = ">" if index == state.selected else " "
        lines.append(f"{pointer} {project.name} [{project.status.value}] {project.color}")
        if index == state.selected and project.description:
            lines.append(f"    {project.description}")
    lines.append("")
    lines.append("up/down: navigate | enter: tasks | n: new | e: edit | d: delete (with its tasks) | esc: back")
    return "\n".join(lines)
