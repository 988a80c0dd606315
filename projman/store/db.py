from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timedelta
import json
import logging
from pathlib import Path
import sqlite3
import threading
from typing import Any, Iterator

from ..errors import DatabaseConnectionFailed, PmError, StorageFailure
from ..locks import exclusive_file_lock
from .migrations import run_migrations


logger = logging.getLogger(__name__)


class Database:
    """One SQLite connection shared by the repositories of a bundle.

    Writes are serialized by an in-process lock, a file lock next to the
    database and `BEGIN IMMEDIATE`. Reads take the in-process lock only.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self._lock = threading.RLock()
        self._depth = 0
        self._conn = self._connect()

    def _connect(self) -> sqlite3.Connection:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.path),
                timeout=30.0,
                check_same_thread=False,
                isolation_level=None,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("PRAGMA journal_mode=WAL")
        except (OSError, sqlite3.Error) as exc:
            raise DatabaseConnectionFailed(f"failed to open database {self.path}: {exc}") from exc
        with self._lock, exclusive_file_lock(self.lock_path):
            run_migrations(conn)
        logger.debug("database ready path=%s", self.path)
        return conn

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def query(self, sql: str, params: tuple | list = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise StorageFailure(f"query failed: {exc}") from exc

    def query_one(self, sql: str, params: tuple | list = ()) -> sqlite3.Row | None:
        rows = self.query(sql, params)
        return rows[0] if rows else None

    @contextmanager
    def write(self) -> Iterator[sqlite3.Connection]:
        """Run the body as one write transaction; nested calls join the outer one."""

        with self._lock:
            if self._depth > 0:
                self._depth += 1
                try:
                    yield self._conn
                finally:
                    self._depth -= 1
                return
            with exclusive_file_lock(self.lock_path):
                self._conn.execute("BEGIN IMMEDIATE")
                self._depth = 1
                try:
                    yield self._conn
                except PmError:
                    self._conn.execute("ROLLBACK")
                    raise
                except sqlite3.Error as exc:
                    self._conn.execute("ROLLBACK")
                    raise StorageFailure(f"write failed: {exc}") from exc
                except BaseException:
                    self._conn.execute("ROLLBACK")
                    raise
                else:
                    self._conn.execute("COMMIT")
                finally:
                    self._depth = 0


def to_db_time(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.astimezone()
    return value.isoformat()


def from_db_time(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def to_db_duration(value: timedelta) -> int:
    return (value.days * 86400 + value.seconds) * 1_000_000 + value.microseconds


def from_db_duration(value: int | None) -> timedelta:
    return timedelta(microseconds=int(value or 0))


def to_db_json(value: Any) -> str:
    if not value:
        return "{}"
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        logger.exception("failed to JSON-encode value; storing {}")
        return "{}"


def from_db_json(value: str | None, default: Any) -> Any:
    if not value:
        return default
    try:
        decoded = json.loads(value)
    except ValueError:
        return default
    return decoded if isinstance(decoded, type(default)) else default
