from __future__ import annotations

import logging
import sqlite3

from ..domain import LinkedNote, Priority, Task, TaskFilter, TaskStatus
from ..errors import InvalidTaskId, ProjectNotFound, TaskNotFound
from .db import Database, from_db_json, from_db_time, to_db_json, to_db_time


logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, title, description, status, priority, project_id, parent_id, tags, changelist, "
    "due_date, created_at, updated_at, completed_at, metadata, "
    "note_id, note_path, note_created_at, note_updated_at"
)


def _row_to_task(row: sqlite3.Row) -> Task:
    note = None
    if row["note_id"]:
        note = LinkedNote(
            id=row["note_id"],
            path=row["note_path"] or "",
            created_at=from_db_time(row["note_created_at"]),
            updated_at=from_db_time(row["note_updated_at"]),
        )
    return Task(
        id=row["id"],
        title=row["title"],
        description=row["description"] or "",
        status=TaskStatus(row["status"]),
        priority=Priority(int(row["priority"])),
        project_id=row["project_id"] or None,
        parent_id=row["parent_id"] or None,
        tags=[str(t) for t in from_db_json(row["tags"], [])],
        changelist=row["changelist"] or "",
        due_date=from_db_time(row["due_date"]),
        created_at=from_db_time(row["created_at"]),
        updated_at=from_db_time(row["updated_at"]),
        completed_at=from_db_time(row["completed_at"]),
        metadata=from_db_json(row["metadata"], {}),
        note=note,
    )


def _task_values(task: Task) -> tuple:
    note = task.note
    return (
        task.title,
        task.description,
        task.status.value,
        int(task.priority),
        task.project_id,
        task.parent_id,
        to_db_json(list(task.tags)) if task.tags else "[]",
        task.changelist,
        to_db_time(task.due_date),
        to_db_time(task.created_at),
        to_db_time(task.updated_at),
        to_db_time(task.completed_at),
        to_db_json(task.metadata),
        note.id if note else None,
        note.path if note else None,
        to_db_time(note.created_at) if note else None,
        to_db_time(note.updated_at) if note else None,
    )


class TaskRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    def create(self, task: Task) -> Task:
        if not task.id:
            raise InvalidTaskId()
        with self.db.write() as conn:
            self._check_refs(conn, task)
            conn.execute(
                f"INSERT INTO tasks ({_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (task.id, *_task_values(task)),
            )
        logger.debug("task created id=%s", task.id)
        return task

    def get_by_id(self, task_id: str) -> Task:
        row = self.db.query_one(f"SELECT {_COLUMNS} FROM tasks WHERE id = ?", (task_id,))
        if row is None:
            raise TaskNotFound(task_id)
        return _row_to_task(row)

    def find_by_prefix(self, prefix: str) -> list[Task]:
        cleaned = prefix.strip()
        if not cleaned:
            return []
        escaped = cleaned.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        rows = self.db.query(
            f"SELECT {_COLUMNS} FROM tasks WHERE id LIKE ? ESCAPE '\\' ORDER BY created_at",
            (escaped + "%",),
        )
        return [_row_to_task(row) for row in rows]

    def list(self, flt: TaskFilter | None = None) -> list[Task]:
        flt = flt or TaskFilter()
        clauses: list[str] = []
        params: list = []

        if flt.status:
            clauses.append(f"status IN ({', '.join('?' for _ in flt.status)})")
            params.extend(s.value for s in flt.status)
        if flt.priority:
            clauses.append(f"priority IN ({', '.join('?' for _ in flt.priority)})")
            params.extend(int(p) for p in flt.priority)
        if flt.project_id:
            clauses.append("project_id = ?")
            params.append(flt.project_id)
        if flt.parent_id:
            clauses.append("parent_id = ?")
            params.append(flt.parent_id)
        if flt.search:
            clauses.append("(title LIKE ? OR description LIKE ?)")
            needle = f"%{flt.search}%"
            params.extend([needle, needle])
        if flt.due_before is not None:
            clauses.append("due_date IS NOT NULL AND due_date < ?")
            params.append(to_db_time(flt.due_before))
        if flt.due_after is not None:
            clauses.append("due_date IS NOT NULL AND due_date >= ?")
            params.append(to_db_time(flt.due_after))

        sql = f"SELECT {_COLUMNS} FROM tasks"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY created_at DESC, rowid DESC"

        tasks = [_row_to_task(row) for row in self.db.query(sql, params)]

        # Tags live in a JSON column; match any-of in Python.
        if flt.tags:
            wanted = set(flt.tags)
            tasks = [t for t in tasks if wanted.intersection(t.tags)]

        if flt.offset > 0:
            tasks = tasks[flt.offset:]
        if flt.limit > 0:
            tasks = tasks[: flt.limit]
        return tasks

    def update(self, task: Task) -> Task:
        with self.db.write() as conn:
            self._check_refs(conn, task)
            cur = conn.execute(
                "UPDATE tasks SET title = ?, description = ?, status = ?, priority = ?, project_id = ?, "
                "parent_id = ?, tags = ?, changelist = ?, due_date = ?, created_at = ?, updated_at = ?, "
                "completed_at = ?, metadata = ?, note_id = ?, note_path = ?, note_created_at = ?, "
                "note_updated_at = ? WHERE id = ?",
                (*_task_values(task), task.id),
            )
            if cur.rowcount == 0:
                raise TaskNotFound(task.id)
        logger.debug("task updated id=%s status=%s", task.id, task.status.value)
        return task

    def delete(self, task_id: str) -> None:
        with self.db.write() as conn:
            subtree = _subtree_ids(conn, task_id)
            marks = ", ".join("?" for _ in subtree)
            conn.execute(f"DELETE FROM time_entries WHERE task_id IN ({marks})", subtree)
            cur = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            if cur.rowcount == 0:
                raise TaskNotFound(task_id)
        logger.debug("task deleted id=%s", task_id)

    def get_by_project(self, project_id: str) -> list[Task]:
        return self.list(TaskFilter(project_id=project_id))

    def get_subtasks(self, parent_id: str) -> list[Task]:
        rows = self.db.query(
            f"SELECT {_COLUMNS} FROM tasks WHERE parent_id = ? ORDER BY created_at ASC, rowid ASC",
            (parent_id,),
        )
        return [_row_to_task(row) for row in rows]

    def ancestor_ids(self, task_id: str) -> list[str]:
        """Parent chain of `task_id`, nearest first. Stops on a repeated id."""

        seen: list[str] = []
        current = task_id
        while True:
            row = self.db.query_one("SELECT parent_id FROM tasks WHERE id = ?", (current,))
            if row is None or not row["parent_id"] or row["parent_id"] in seen:
                return seen
            current = row["parent_id"]
            seen.append(current)

    @staticmethod
    def _check_refs(conn: sqlite3.Connection, task: Task) -> None:
        if task.project_id:
            row = conn.execute("SELECT 1 FROM projects WHERE id = ?", (task.project_id,)).fetchone()
            if row is None:
                raise ProjectNotFound(task.project_id)
        if task.parent_id:
            row = conn.execute("SELECT 1 FROM tasks WHERE id = ?", (task.parent_id,)).fetchone()
            if row is None:
                raise TaskNotFound(task.parent_id)


def _subtree_ids(conn: sqlite3.Connection, task_id: str) -> list[str]:
    ids = [task_id]
    frontier = [task_id]
    while frontier:
        marks = ", ".join("?" for _ in frontier)
        rows = conn.execute(f"SELECT id FROM tasks WHERE parent_id IN ({marks})", frontier).fetchall()
        frontier = [row[0] for row in rows if row[0] not in ids]
        ids.extend(frontier)
    return ids
