from __future__ import annotations

from contextlib import contextmanager
import fcntl
from pathlib import Path
from typing import Iterator

from .errors import StorageFailure


@contextmanager
def exclusive_file_lock(lock_path: Path) -> Iterator[None]:
    """Block until this process holds `lock_path` exclusively.

    Store writes from separate processes on one database (a `pm time start`
    while the terminal app is open) queue up behind each other here.
    """

    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with lock_path.open("a+", encoding="utf-8") as handle:
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        except OSError as exc:
            raise StorageFailure(f"could not lock {lock_path} for writing: {exc}") from exc
        try:
            yield
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
