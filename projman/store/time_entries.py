from __future__ import annotations

from datetime import timedelta
import logging
import sqlite3

from ..domain import TimeEntry, TimeEntryFilter
from ..errors import ActiveTimerExists, NoActiveTimer, TaskNotFound, TimeEntryNotFound
from .db import (
    Database,
    from_db_duration,
    from_db_json,
    from_db_time,
    to_db_duration,
    to_db_json,
    to_db_time,
)


logger = logging.getLogger(__name__)

_WINDOW_SLACK = timedelta(seconds=1)

_COLUMNS = (
    "id, task_id, project_id, description, start_time, end_time, duration, "
    "created_at, updated_at, metadata"
)


def _row_to_entry(row: sqlite3.Row) -> TimeEntry:
    return TimeEntry(
        id=row["id"],
        task_id=row["task_id"],
        project_id=row["project_id"] or None,
        description=row["description"] or "",
        start_time=from_db_time(row["start_time"]),
        end_time=from_db_time(row["end_time"]),
        duration=from_db_duration(row["duration"]),
        created_at=from_db_time(row["created_at"]),
        updated_at=from_db_time(row["updated_at"]),
        metadata=from_db_json(row["metadata"], {}),
    )


def _entry_values(entry: TimeEntry) -> tuple:
    return (
        entry.task_id,
        entry.project_id,
        entry.description,
        to_db_time(entry.start_time),
        to_db_time(entry.end_time),
        to_db_duration(entry.duration),
        to_db_time(entry.created_at),
        to_db_time(entry.updated_at),
        to_db_json(entry.metadata),
    )


class TimeEntryRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    def create(self, entry: TimeEntry) -> TimeEntry:
        """Insert an entry. A running entry is refused while another one runs."""

        with self.db.write() as conn:
            if entry.is_active:
                row = conn.execute("SELECT id FROM time_entries WHERE end_time IS NULL LIMIT 1").fetchone()
                if row is not None:
                    raise ActiveTimerExists(row["id"])
            if conn.execute("SELECT 1 FROM tasks WHERE id = ?", (entry.task_id,)).fetchone() is None:
                raise TaskNotFound(entry.task_id)
            try:
                conn.execute(
                    f"INSERT INTO time_entries ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (entry.id, *_entry_values(entry)),
                )
            except sqlite3.IntegrityError as exc:
                if "idx_time_entries_single_active" in str(exc) or "end_time" in str(exc):
                    raise ActiveTimerExists() from exc
                raise
        logger.debug("time entry created id=%s task=%s", entry.id, entry.task_id)
        return entry

    def get_by_id(self, entry_id: str) -> TimeEntry:
        row = self.db.query_one(f"SELECT {_COLUMNS} FROM time_entries WHERE id = ?", (entry_id,))
        if row is None:
            raise TimeEntryNotFound(entry_id)
        return _row_to_entry(row)

    def find_by_prefix(self, prefix: str) -> list[TimeEntry]:
        cleaned = prefix.strip()
        if not cleaned:
            return []
        escaped = cleaned.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        rows = self.db.query(
            f"SELECT {_COLUMNS} FROM time_entries WHERE id LIKE ? ESCAPE '\\' ORDER BY start_time",
            (escaped + "%",),
        )
        return [_row_to_entry(row) for row in rows]

    def list(self, flt: TimeEntryFilter | None = None) -> list[TimeEntry]:
        flt = flt or TimeEntryFilter()
        clauses: list[str] = []
        params: list = []
        if flt.task_id:
            clauses.append("task_id = ?")
            params.append(flt.task_id)
        if flt.project_id:
            clauses.append("project_id = ?")
            params.append(flt.project_id)
        if flt.active is True:
            clauses.append("end_time IS NULL")
        elif flt.active is False:
            clauses.append("end_time IS NOT NULL")
        # julianday() resolves whole milliseconds across offsets; the exact bound is applied below.
        if flt.start_after is not None:
            clauses.append("julianday(start_time) >= julianday(?)")
            params.append(to_db_time(flt.start_after - _WINDOW_SLACK))
        if flt.start_before is not None:
            clauses.append("julianday(start_time) < julianday(?)")
            params.append(to_db_time(flt.start_before + _WINDOW_SLACK))

        sql = f"SELECT {_COLUMNS} FROM time_entries"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        entries = [_row_to_entry(row) for row in self.db.query(sql, params)]

        if flt.start_after is not None:
            entries = [e for e in entries if e.start_time >= flt.start_after]
        if flt.start_before is not None:
            entries = [e for e in entries if e.start_time < flt.start_before]
        entries.sort(key=lambda e: e.start_time, reverse=True)

        if flt.offset > 0:
            entries = entries[flt.offset:]
        if flt.limit > 0:
            entries = entries[: flt.limit]
        return entries

    def update(self, entry: TimeEntry) -> TimeEntry:
        with self.db.write() as conn:
            try:
                cur = conn.execute(
                    "UPDATE time_entries SET task_id = ?, project_id = ?, description = ?, start_time = ?, "
                    "end_time = ?, duration = ?, created_at = ?, updated_at = ?, metadata = ? WHERE id = ?",
                    (*_entry_values(entry), entry.id),
                )
            except sqlite3.IntegrityError as exc:
                if "idx_time_entries_single_active" in str(exc) or "end_time" in str(exc):
                    raise ActiveTimerExists() from exc
                raise
            if cur.rowcount == 0:
                raise TimeEntryNotFound(entry.id)
        logger.debug("time entry updated id=%s active=%s", entry.id, entry.is_active)
        return entry

    def delete(self, entry_id: str) -> None:
        with self.db.write() as conn:
            cur = conn.execute("DELETE FROM time_entries WHERE id = ?", (entry_id,))
            if cur.rowcount == 0:
                raise TimeEntryNotFound(entry_id)
        logger.debug("time entry deleted id=%s", entry_id)

    def get_active(self) -> TimeEntry:
        row = self.db.query_one(
            f"SELECT {_COLUMNS} FROM time_entries WHERE end_time IS NULL ORDER BY start_time DESC LIMIT 1"
        )
        if row is None:
            raise NoActiveTimer()
        return _row_to_entry(row)

    def stop_active(self, now) -> TimeEntry:
        """Stop the running entry inside one write so two stops cannot both succeed."""

        with self.db.write() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM time_entries WHERE end_time IS NULL LIMIT 1"
            ).fetchone()
            if row is None:
                raise NoActiveTimer()
            entry = _row_to_entry(row)
            entry.stop(now)
            conn.execute(
                "UPDATE time_entries SET end_time = ?, duration = ?, updated_at = ? WHERE id = ?",
                (to_db_time(entry.end_time), to_db_duration(entry.duration), to_db_time(entry.updated_at), entry.id),
            )
        logger.debug("time entry stopped id=%s duration=%s", entry.id, entry.duration)
        return entry

    def get_by_task(self, task_id: str) -> list[TimeEntry]:
        return self.list(TimeEntryFilter(task_id=task_id))

    def get_by_project(self, project_id: str) -> list[TimeEntry]:
        return self.list(TimeEntryFilter(project_id=project_id))
