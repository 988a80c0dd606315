from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
from typing import Callable

from ..domain import (
    DEFAULT_PROJECT_COLOR,
    Project,
    ProjectFilter,
    ProjectStatus,
    local_now,
    new_project,
)
from ..errors import DuplicateProject, EmptyName, InvalidProjectId, ProjectNotFound
from ..store import Repositories


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpdateProjectInput:
    id: str
    name: str | None = None
    description: str | None = None
    status: ProjectStatus | None = None
    color: str | None = None


@dataclass
class ProjectService:
    repos: Repositories
    clock: Callable[[], datetime] = field(default=local_now)

    def create_project(self, name: str, description: str = "", color: str = "") -> Project:
        cleaned = name.strip()
        if not cleaned:
            raise EmptyName()
        try:
            self.repos.projects.get_by_name(cleaned)
        except ProjectNotFound:
            pass
        else:
            raise DuplicateProject(cleaned)

        project = new_project(cleaned, description, now=self.clock())
        project.color = color.strip() or DEFAULT_PROJECT_COLOR
        self.repos.projects.create(project)
        logger.debug("created project %s %r", project.id, project.name)
        return project

    def save_project(self, project: Project, *, create: bool = False) -> Project:
        """Persist a project coming from the form; updates raise ProjectNotFound once it is gone."""

        project.name = project.name.strip()
        if not project.name:
            raise EmptyName()
        project.updated_at = self.clock()
        if create:
            return self.create_project(project.name, project.description, project.color)
        self.repos.projects.update(project)
        logger.debug("saved project %s from form", project.id)
        return project

    def get_project(self, project_id: str) -> Project:
        if not project_id:
            raise InvalidProjectId()
        return self.repos.projects.get_by_id(project_id)

    def get_project_by_name(self, name: str) -> Project:
        if not name.strip():
            raise EmptyName()
        return self.repos.projects.get_by_name(name.strip())

    def update_project(self, data: UpdateProjectInput) -> Project:
        if not data.id:
            raise InvalidProjectId()
        project = self.repos.projects.get_by_id(data.id)
        now = self.clock()
        if data.name is not None:
            cleaned = data.name.strip()
            if not cleaned:
                raise EmptyName()
            project.name = cleaned
        if data.description is not None:
            project.description = data.description
        if data.color is not None:
            project.color = data.color.strip() or DEFAULT_PROJECT_COLOR
        if data.status is not None:
            project.set_status(data.status, now)
        project.updated_at = now
        self.repos.projects.update(project)
        logger.debug("updated project %s", project.id)
        return project

    def delete_project(self, project_id: str) -> None:
        if not project_id:
            raise InvalidProjectId()
        self.repos.projects.delete(project_id)
        logger.debug("deleted project %s with its tasks", project_id)

    def list_projects(self, flt: ProjectFilter | None = None) -> list[Project]:
        return self.repos.projects.list(flt)

    def archive_project(self, project_id: str) -> Project:
        return self.update_project(UpdateProjectInput(id=project_id, status=ProjectStatus.ARCHIVED))

    def complete_project(self, project_id: str) -> Project:
        return self.update_project(UpdateProjectInput(id=project_id, status=ProjectStatus.COMPLETED))

    def activate_project(self, project_id: str) -> Project:
        return self.update_project(UpdateProjectInput(id=project_id, status=ProjectStatus.ACTIVE))

    def put_project_on_hold(self, project_id: str) -> Project:
        return self.update_project(UpdateProjectInput(id=project_id, status=ProjectStatus.ON_HOLD))

    def get_active_projects(self) -> list[Project]:
        return self.list_projects(ProjectFilter(status=(ProjectStatus.ACTIVE,)))
