from __future__ import annotations


class PmError(Exception):
    """Root of every error raised by projman on purpose."""


class NotFoundError(PmError):
    pass


class ValidationError(PmError):
    pass


class ConflictError(PmError):
    pass


class IntegrityViolation(PmError):
    pass


class StorageFailure(PmError):
    pass


class ConfigError(PmError):
    pass


class TaskNotFound(NotFoundError):
    def __init__(self, task_id: str = "") -> None:
        detail = f": {task_id}" if task_id else ""
        super().__init__(f"task not found{detail}")
        self.task_id = task_id


class ProjectNotFound(NotFoundError):
    def __init__(self, ref: str = "") -> None:
        detail = f": {ref}" if ref else ""
        super().__init__(f"project not found{detail}")
        self.ref = ref


class TimeEntryNotFound(NotFoundError):
    def __init__(self, entry_id: str = "") -> None:
        detail = f": {entry_id}" if entry_id else ""
        super().__init__(f"time entry not found{detail}")
        self.entry_id = entry_id


class EmptyTitle(ValidationError):
    def __init__(self) -> None:
        super().__init__("title cannot be empty")


class EmptyName(ValidationError):
    def __init__(self) -> None:
        super().__init__("name cannot be empty")


class InvalidDueDate(ValidationError):
    def __init__(self, raw: str) -> None:
        super().__init__(f"invalid due date format: {raw!r} (use YYYY-MM-DD)")
        self.raw = raw


class InvalidStatus(ValidationError):
    def __init__(self, raw: str) -> None:
        super().__init__(f"invalid status: {raw!r}")
        self.raw = raw


class InvalidPriority(ValidationError):
    def __init__(self, raw: str) -> None:
        super().__init__(f"invalid priority: {raw!r}")
        self.raw = raw


class InvalidTaskId(ValidationError):
    def __init__(self) -> None:
        super().__init__("invalid task ID")


class InvalidProjectId(ValidationError):
    def __init__(self) -> None:
        super().__init__("invalid project ID")


class DuplicateProject(ConflictError):
    def __init__(self, name: str = "") -> None:
        detail = f": {name}" if name else ""
        super().__init__(f"project with this name already exists{detail}")
        self.name = name


class ActiveTimerExists(ConflictError):
    def __init__(self, entry_id: str = "") -> None:
        super().__init__("there is already an active time entry")
        self.entry_id = entry_id


class NoActiveTimer(ConflictError, NotFoundError):
    def __init__(self) -> None:
        super().__init__("no active time entry found")


class CircularDependency(IntegrityViolation):
    def __init__(self, task_id: str, parent_id: str) -> None:
        super().__init__(f"circular dependency detected: {task_id} -> {parent_id}")
        self.task_id = task_id
        self.parent_id = parent_id


class DatabaseConnectionFailed(StorageFailure):
    pass


class MigrationFailed(StorageFailure):
    pass


class NoteNotFound(NotFoundError):
    def __init__(self, note_id: str, notes_dir: str = "") -> None:
        where = f" in {notes_dir}" if notes_dir else ""
        super().__init__(f"note with ID {note_id} not found{where}")
        self.note_id = note_id


class InvalidNote(ValidationError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"invalid note {path}: {reason}")
        self.path = path


class GitError(PmError):
    pass


class AmbiguousId(ValidationError):
    def __init__(self, kind: str, prefix: str, count: int) -> None:
        super().__init__(f"{kind} id prefix {prefix!r} matches {count} {kind}s; use more characters")
        self.prefix = prefix
        self.count = count
