from __future__ import annotations

import logging
import sqlite3

from ..errors import MigrationFailed


logger = logging.getLogger(__name__)

SCHEMA_VERSION = 3

_BASE_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS projects (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        description TEXT NOT NULL DEFAULT '',
        status TEXT NOT NULL DEFAULT 'active',
        color TEXT NOT NULL DEFAULT '#3498db',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        archived_at TEXT,
        metadata TEXT NOT NULL DEFAULT '{}'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tasks (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        status TEXT NOT NULL DEFAULT 'todo',
        priority INTEGER NOT NULL DEFAULT 1,
        project_id TEXT,
        parent_id TEXT,
        tags TEXT NOT NULL DEFAULT '[]',
        due_date TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        completed_at TEXT,
        metadata TEXT NOT NULL DEFAULT '{}',
        FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE,
        FOREIGN KEY (parent_id) REFERENCES tasks(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS time_entries (
        id TEXT PRIMARY KEY,
        task_id TEXT NOT NULL,
        project_id TEXT,
        description TEXT NOT NULL DEFAULT '',
        start_time TEXT NOT NULL,
        end_time TEXT,
        duration INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        metadata TEXT NOT NULL DEFAULT '{}',
        FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE,
        FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_tasks_project_id ON tasks(project_id)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_due_date ON tasks(due_date)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_parent_id ON tasks(parent_id)",
    "CREATE INDEX IF NOT EXISTS idx_time_entries_task_id ON time_entries(task_id)",
    "CREATE INDEX IF NOT EXISTS idx_time_entries_project_id ON time_entries(project_id)",
    "CREATE INDEX IF NOT EXISTS idx_time_entries_start_time ON time_entries(start_time)",
    # At most one running entry in the whole store.
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_time_entries_single_active "
    "ON time_entries((end_time IS NULL)) WHERE end_time IS NULL",
)

# version -> (column, declaration) added to tasks
_TASK_COLUMNS: dict[int, tuple[tuple[str, str], ...]] = {
    2: (("changelist", "TEXT NOT NULL DEFAULT ''"),),
    3: (
        ("note_id", "TEXT"),
        ("note_path", "TEXT"),
        ("note_created_at", "TEXT"),
        ("note_updated_at", "TEXT"),
    ),
}


def current_version(conn: sqlite3.Connection) -> int:
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'schema_version'"
    ).fetchone()
    if row is None:
        return 0
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return int(row[0] or 0)


def run_migrations(conn: sqlite3.Connection) -> int:
    """Bring the schema up to SCHEMA_VERSION. Returns the version found before migrating."""

    try:
        found = current_version(conn)
        if found >= SCHEMA_VERSION:
            return found

        conn.execute("BEGIN IMMEDIATE")
        try:
            for statement in _BASE_SCHEMA:
                conn.execute(statement)

            existing = {row[1] for row in conn.execute("PRAGMA table_info(tasks)").fetchall()}
            for version in sorted(_TASK_COLUMNS):
                if version <= found:
                    continue
                for name, decl in _TASK_COLUMNS[version]:
                    if name in existing:
                        continue
                    conn.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                    existing.add(name)
                    logger.info("schema migration v%s: added tasks.%s", version, name)

            conn.execute("INSERT OR REPLACE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
    except sqlite3.Error as exc:
        raise MigrationFailed(f"failed to run migrations: {exc}") from exc

    logger.info("schema migrated from v%s to v%s", found, SCHEMA_VERSION)
    return found
