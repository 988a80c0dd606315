from __future__ import annotations

import logging
import sqlite3

from ..domain import Project, ProjectFilter, ProjectStatus
from ..errors import DuplicateProject, InvalidProjectId, ProjectNotFound
from .db import Database, from_db_json, from_db_time, to_db_json, to_db_time


logger = logging.getLogger(__name__)

_COLUMNS = "id, name, description, status, color, created_at, updated_at, archived_at, metadata"


def _row_to_project(row: sqlite3.Row) -> Project:
    return Project(
        id=row["id"],
        name=row["name"],
        description=row["description"] or "",
        status=ProjectStatus(row["status"]),
        color=row["color"],
        created_at=from_db_time(row["created_at"]),
        updated_at=from_db_time(row["updated_at"]),
        archived_at=from_db_time(row["archived_at"]),
        metadata=from_db_json(row["metadata"], {}),
    )


def _is_name_conflict(exc: sqlite3.IntegrityError) -> bool:
    return "UNIQUE" in str(exc) and "name" in str(exc)


class ProjectRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    def create(self, project: Project) -> Project:
        if not project.id:
            raise InvalidProjectId()
        with self.db.write() as conn:
            try:
                conn.execute(
                    f"INSERT INTO projects ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        project.id,
                        project.name,
                        project.description,
                        project.status.value,
                        project.color,
                        to_db_time(project.created_at),
                        to_db_time(project.updated_at),
                        to_db_time(project.archived_at),
                        to_db_json(project.metadata),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                if _is_name_conflict(exc):
                    raise DuplicateProject(project.name) from exc
                raise
        logger.debug("project created id=%s name=%s", project.id, project.name)
        return project

    def get_by_id(self, project_id: str) -> Project:
        row = self.db.query_one(f"SELECT {_COLUMNS} FROM projects WHERE id = ?", (project_id,))
        if row is None:
            raise ProjectNotFound(project_id)
        return _row_to_project(row)

    def get_by_name(self, name: str) -> Project:
        row = self.db.query_one(f"SELECT {_COLUMNS} FROM projects WHERE name = ?", (name,))
        if row is None:
            raise ProjectNotFound(name)
        return _row_to_project(row)

    def find_by_prefix(self, prefix: str) -> list[Project]:
        cleaned = prefix.strip()
        if not cleaned:
            return []
        escaped = cleaned.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        rows = self.db.query(
            f"SELECT {_COLUMNS} FROM projects WHERE id LIKE ? ESCAPE '\\' ORDER BY created_at",
            (escaped + "%",),
        )
        return [_row_to_project(row) for row in rows]

    def list(self, flt: ProjectFilter | None = None) -> list[Project]:
        flt = flt or ProjectFilter()
        clauses: list[str] = []
        params: list = []
        if flt.status:
            clauses.append(f"status IN ({', '.join('?' for _ in flt.status)})")
            params.extend(s.value for s in flt.status)
        if flt.search:
            clauses.append("(name LIKE ? OR description LIKE ?)")
            needle = f"%{flt.search}%"
            params.extend([needle, needle])

        sql = f"SELECT {_COLUMNS} FROM projects"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY name COLLATE NOCASE ASC"
        if flt.limit > 0:
            sql += " LIMIT ? OFFSET ?"
            params.extend([flt.limit, max(flt.offset, 0)])
        elif flt.offset > 0:
            sql += " LIMIT -1 OFFSET ?"
            params.append(flt.offset)
        return [_row_to_project(row) for row in self.db.query(sql, params)]

    def update(self, project: Project) -> Project:
        with self.db.write() as conn:
            try:
                cur = conn.execute(
                    "UPDATE projects SET name = ?, description = ?, status = ?, color = ?, "
                    "updated_at = ?, archived_at = ?, metadata = ? WHERE id = ?",
                    (
                        project.name,
                        project.description,
                        project.status.value,
                        project.color,
                        to_db_time(project.updated_at),
                        to_db_time(project.archived_at),
                        to_db_json(project.metadata),
                        project.id,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                if _is_name_conflict(exc):
                    raise DuplicateProject(project.name) from exc
                raise
            if cur.rowcount == 0:
                raise ProjectNotFound(project.id)
        logger.debug("project updated id=%s status=%s", project.id, project.status.value)
        return project

    def delete(self, project_id: str) -> None:
        """Delete a project with its tasks and their time entries in one transaction."""

        with self.db.write() as conn:
            row = conn.execute("SELECT 1 FROM projects WHERE id = ?", (project_id,)).fetchone()
            if row is None:
                raise ProjectNotFound(project_id)
            # Subtasks owned by another project survive as top-level tasks.
            conn.execute(
                "UPDATE tasks SET parent_id = NULL "
                "WHERE parent_id IN (SELECT id FROM tasks WHERE project_id = ?) "
                "AND (project_id IS NULL OR project_id != ?)",
                (project_id, project_id),
            )
            conn.execute(
                "DELETE FROM time_entries WHERE project_id = ? "
                "OR task_id IN (SELECT id FROM tasks WHERE project_id = ?)",
                (project_id, project_id),
            )
            removed = conn.execute("DELETE FROM tasks WHERE project_id = ?", (project_id,)).rowcount
            conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
        logger.debug("project deleted id=%s tasks=%s", project_id, removed)
