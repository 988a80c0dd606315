from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
from pathlib import Path
import sys
from typing import Callable

from . import __version__
from .config import PmConfig, SETTABLE_KEYS, explain_config, load_config, set_config_value, write_default_config
from .domain import (
    Priority,
    Project,
    ProjectFilter,
    ProjectStatus,
    Task,
    TaskFilter,
    TaskStatus,
    TimeEntryFilter,
    format_duration,
)
from .errors import AmbiguousId, PmError, ProjectNotFound, TaskNotFound, ValidationError
from .gitinfo import GitCollaborator
from .logging_setup import detach_console_handlers, setup_logging
from .paths import RuntimePaths, ensure_runtime_dirs, runtime_paths
from .services import CreateTaskInput, Services, UpdateTaskInput, build_services
from .services import export
from .services.reports import TimeReport
from .store import Repositories, open_repositories


logger = logging.getLogger(__name__)

_GROUPS = ("task", "project", "time", "export", "config", "git")
_REPORT_PERIODS = ("today", "yesterday", "week", "month")


@dataclass
class CliContext:
    paths: RuntimePaths
    config: PmConfig
    config_warning: str = ""
    git: GitCollaborator | None = None
    _repos: Repositories | None = field(default=None, repr=False)
    _services: Services | None = field(default=None, repr=False)

    @property
    def database(self) -> Path:
        return self.config.database_path(self.paths.root)

    @property
    def repos(self) -> Repositories:
        if self._repos is None:
            self._repos = open_repositories(self.database)
        return self._repos

    @property
    def services(self) -> Services:
        if self._services is None:
            self._services = build_services(
                self.repos,
                git=self.git if self.config.git.integration else None,
                notes_dir=Path(self.config.notes.directory).expanduser(),
                week_start=self.config.time.week_start_index,
            )
        return self._services

    def close(self) -> None:
        if self._repos is not None:
            self._repos.close()
            self._repos = None
            self._services = None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pm",
        description="projman: tasks, projects and time tracking in the terminal",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    sub = parser.add_subparsers(dest="cmd", required=False)

    sub.add_parser("app", help="Start the interactive terminal app.")
    sub.add_parser("version", help="Print the version.")

    # task
    task = sub.add_parser("task", help="Manage tasks.")
    task_sub = task.add_subparsers(dest="action", required=True)

    t_list = task_sub.add_parser("list", help="List tasks.")
    t_list.add_argument("--status", action="append", default=[], help="Filter by status (repeatable)")
    t_list.add_argument("--priority", action="append", default=[], help="Filter by priority (repeatable)")
    t_list.add_argument("--project", help="Project name or id")
    t_list.add_argument("--tag", action="append", default=[], help="Filter by tag (any of, repeatable)")
    t_list.add_argument("--search", default="", help="Text search over title and description")
    t_list.add_argument("--overdue", action="store_true", help="Only open tasks past their due date")
    t_list.add_argument("--limit", type=int, default=0)

    t_add = task_sub.add_parser("add", help="Create a task.")
    t_add.add_argument("title")
    t_add.add_argument("-d", "--description", default="")
    t_add.add_argument("-p", "--priority", default="normal")
    t_add.add_argument("--project", help="Project name or id (defaults to tasks.default_project)")
    t_add.add_argument("--parent", help="Parent task id")
    t_add.add_argument("--tag", action="append", default=[])
    t_add.add_argument("--changelist", default="")
    t_add.add_argument("--due", default="", help="YYYY-MM-DD, today, tomorrow, next week, in 3 days, friday")

    t_show = task_sub.add_parser("show", help="Show one task.")
    t_show.add_argument("id")

    t_update = task_sub.add_parser("update", help="Change fields of a task.")
    t_update.add_argument("id")
    t_update.add_argument("--title")
    t_update.add_argument("--description")
    t_update.add_argument("--status")
    t_update.add_argument("--priority")
    t_update.add_argument("--project", help='Project name or id ("" clears)')
    t_update.add_argument("--parent", help='Parent task id ("" clears)')
    t_update.add_argument("--tags", help="Comma-separated tags, replaces the current set")
    t_update.add_argument("--changelist")
    t_update.add_argument("--due", help='Due date ("" clears)')

    t_complete = task_sub.add_parser("complete", help="Mark a task done.")
    t_complete.add_argument("id")

    t_delete = task_sub.add_parser("delete", help="Delete a task, its subtasks and their time entries.")
    t_delete.add_argument("id")

    t_note = task_sub.add_parser("note", help="Linked notes.")
    note_sub = t_note.add_subparsers(dest="note_action", required=True)
    n_link = note_sub.add_parser("link", help="Link a note by its frontmatter id.")
    n_link.add_argument("id")
    n_link.add_argument("note_id")
    n_unlink = note_sub.add_parser("unlink", help="Remove the linked note.")
    n_unlink.add_argument("id")
    n_show = note_sub.add_parser("show", help="Show the linked note.")
    n_show.add_argument("id")

    # project
    project = sub.add_parser("project", help="Manage projects.")
    project_sub = project.add_subparsers(dest="action", required=True)
    p_list = project_sub.add_parser("list", help="List projects.")
    p_list.add_argument("--status", action="append", default=[])
    p_add = project_sub.add_parser("add", help="Create a project.")
    p_add.add_argument("name")
    p_add.add_argument("-d", "--description", default="")
    p_add.add_argument("--color", default="")
    for name, help_text in (
        ("delete", "Delete a project with all of its tasks and time entries."),
        ("archive", "Archive a project."),
        ("activate", "Mark a project active."),
        ("complete", "Mark a project completed."),
        ("hold", "Put a project on hold."),
    ):
        p_cmd = project_sub.add_parser(name, help=help_text)
        p_cmd.add_argument("project", help="Project name or id")

    # time
    time_cmd = sub.add_parser("time", help="Time tracking.")
    time_sub = time_cmd.add_subparsers(dest="action", required=True)
    tm_start = time_sub.add_parser("start", help="Start a timer on a task.")
    tm_start.add_argument("id")
    tm_start.add_argument("-d", "--description", default="")
    time_sub.add_parser("stop", help="Stop the running timer.")
    time_sub.add_parser("status", help="Show the running timer.")
    tm_report = time_sub.add_parser("report", help="Time report.")
    tm_report.add_argument("--period", choices=_REPORT_PERIODS, default="today")
    tm_list = time_sub.add_parser("list", help="List time entries.")
    tm_list.add_argument("--task", help="Task id")
    tm_list.add_argument("--project", help="Project name or id")
    tm_list.add_argument("--limit", type=int, default=20)

    # export
    export_cmd = sub.add_parser("export", help="Export tasks or time entries.")
    export_cmd.add_argument("what", choices=("tasks", "time"))
    export_cmd.add_argument("--format", choices=export.EXPORT_FORMATS, default="json")
    export_cmd.add_argument("--output", help="Write to FILE instead of stdout")
    export_cmd.add_argument("--project", help="Only this project (name or id)")

    # config
    config = sub.add_parser("config", help="Inspect or change pm.toml.")
    config_sub = config.add_subparsers(dest="action", required=True)
    config_sub.add_parser("show", help="Print the effective configuration.")
    config_sub.add_parser("explain", help="Describe every setting.")
    c_set = config_sub.add_parser("set", help="Set one value.")
    c_set.add_argument("key", choices=sorted(SETTABLE_KEYS))
    c_set.add_argument("value")

    # git
    git = sub.add_parser("git", help="Git integration.")
    git_sub = git.add_subparsers(dest="action", required=True)
    hook = git_sub.add_parser("hook", help="Install or remove the prepare-commit-msg hook.")
    hook_target = hook.add_mutually_exclusive_group(required=True)
    hook_target.add_argument("--task", help="Task id appended to commit messages")
    hook_target.add_argument("--remove", action="store_true")

    return parser


def apply_aliases(argv: list[str], aliases: dict[str, str]) -> list[str]:
    """Rewrite `pm task ls` into `pm task list` using the configured aliases."""

    out = list(argv)
    if len(out) >= 2 and out[0] in _GROUPS:
        out[1] = aliases.get(out[1], out[1])
    return out


# -- id resolution -------------------------------------------------------------------


def resolve_task(ctx: CliContext, ref: str) -> Task:
    ref = (ref or "").strip()
    if not ref:
        raise TaskNotFound(ref)
    try:
        return ctx.repos.tasks.get_by_id(ref)
    except TaskNotFound:
        pass
    matches = ctx.repos.tasks.find_by_prefix(ref)
    if not matches:
        raise TaskNotFound(ref)
    if len(matches) > 1:
        raise AmbiguousId("task", ref, len(matches))
    return matches[0]


def resolve_project(ctx: CliContext, ref: str) -> Project:
    ref = (ref or "").strip()
    if not ref:
        raise ProjectNotFound(ref)
    try:
        return ctx.repos.projects.get_by_id(ref)
    except ProjectNotFound:
        pass
    try:
        return ctx.repos.projects.get_by_name(ref)
    except ProjectNotFound:
        pass
    matches = ctx.repos.projects.find_by_prefix(ref)
    if not matches:
        raise ProjectNotFound(ref)
    if len(matches) > 1:
        raise AmbiguousId("project", ref, len(matches))
    return matches[0]


# -- formatting -------------------------------------------------------------------------

_STATUS_MARK = {
    TaskStatus.BACKLOG: "[ ]",
    TaskStatus.TODO: "[ ]",
    TaskStatus.DOING: "[>]",
    TaskStatus.DONE: "[x]",
    TaskStatus.BLOCKED: "[!]",
}


def _task_row(task: Task, *, date_format: str) -> str:
    due = f"  due {task.due_date.strftime(date_format)}" if task.due_date is not None else ""
    overdue = " (overdue)" if task.is_overdue() else ""
    tags = f"  #{' #'.join(task.tags)}" if task.tags else ""
    return f"{task.id[:8]}  {_STATUS_MARK[task.status]} {task.priority.label:<8} {task.title}{due}{overdue}{tags}"


def _stamp(value: datetime | None, ctx: CliContext) -> str:
    if value is None:
        return "-"
    return value.strftime(f"{ctx.config.tasks.date_format} {ctx.config.time.time_format}")


def _format_report(report: TimeReport, period: str) -> str:
    lines = [
        f"Time report ({period}): {report.start:%Y-%m-%d} .. {report.end:%Y-%m-%d}",
        f"Total: {format_duration(report.total)}",
    ]
    if not report.entries:
        lines.append("No time tracked.")
        return "\n".join(lines)
    lines.append("")
    lines.append("By task:")
    for total in report.task_totals():
        lines.append(f"  {format_duration(total.total):>12}  {total.task_title}")
    lines.append("")
    lines.append("By project:")
    for total in sorted(report.by_project.values(), key=lambda p: p.project_name):
        lines.append(f"  {format_duration(total.total):>12}  {total.project_name}")
    lines.append("")
    lines.append("By day:")
    for total in report.day_totals():
        lines.append(f"  {format_duration(total.total):>12}  {total.day.isoformat()}")
    return "\n".join(lines)


# -- commands ----------------------------------------------------------------------------


def cmd_app(ctx: CliContext, args: argparse.Namespace) -> int:
    try:
        from .tui.app import run_terminal_app
    except ModuleNotFoundError as exc:
        if exc.name == "textual":
            print("Interactive app requires `textual`. Install projman with its dependencies, then retry.", file=sys.stderr)
            return 1
        raise

    services = ctx.services
    if ctx.config_warning:
        logger.warning("config: %s", ctx.config_warning)
    detach_console_handlers()
    return run_terminal_app(services, time_format=ctx.config.time.time_format, theme=ctx.config.theme)


def cmd_version(ctx: CliContext, args: argparse.Namespace) -> int:
    print(f"pm {__version__}")
    return 0


def cmd_task(ctx: CliContext, args: argparse.Namespace) -> int:
    tasks = ctx.services.tasks
    date_format = ctx.config.tasks.date_format
    action = args.action

    if action == "list":
        if args.overdue:
            found = tasks.get_overdue_tasks()
        else:
            flt = TaskFilter(
                status=tuple(TaskStatus.parse(s) for s in args.status),
                priority=tuple(Priority.parse(p) for p in args.priority),
                project_id=resolve_project(ctx, args.project).id if args.project else None,
                tags=tuple(args.tag),
                search=args.search,
                limit=max(0, args.limit),
            )
            found = tasks.list_tasks(flt)
        if not found:
            print("No tasks found.")
            return 0
        for task in found:
            print(_task_row(task, date_format=date_format))
        return 0

    if action == "add":
        project_ref = args.project or ctx.config.tasks.default_project
        project_id = resolve_project(ctx, project_ref).id if project_ref else None
        parent_id = resolve_task(ctx, args.parent).id if args.parent else None
        task = tasks.create_task(
            CreateTaskInput(
                title=args.title,
                description=args.description,
                priority=Priority.parse(args.priority),
                project_id=project_id,
                parent_id=parent_id,
                tags=tuple(args.tag),
                changelist=args.changelist,
                due_date=args.due,
            )
        )
        print(f"Created task {task.id[:8]}: {task.title}")
        return 0

    if action == "show":
        task = resolve_task(ctx, args.id)
        _print_task(ctx, task)
        return 0

    if action == "update":
        task = resolve_task(ctx, args.id)
        project_id = None
        if args.project is not None:
            project_id = resolve_project(ctx, args.project).id if args.project else ""
        parent_id = None
        if args.parent is not None:
            parent_id = resolve_task(ctx, args.parent).id if args.parent else ""
        tags = None
        if args.tags is not None:
            tags = tuple(t.strip() for t in args.tags.split(",") if t.strip())
        updated = tasks.update_task(
            UpdateTaskInput(
                id=task.id,
                title=args.title,
                description=args.description,
                status=TaskStatus.parse(args.status) if args.status else None,
                priority=Priority.parse(args.priority) if args.priority else None,
                project_id=project_id,
                parent_id=parent_id,
                tags=tags,
                changelist=args.changelist,
                due_date=args.due,
            )
        )
        print(f"Updated task {updated.id[:8]}: {updated.title}")
        return 0

    if action == "complete":
        task = tasks.complete_task(resolve_task(ctx, args.id).id)
        print(f"Completed task {task.id[:8]}: {task.title}")
        return 0

    if action == "delete":
        task = resolve_task(ctx, args.id)
        tasks.delete_task(task.id)
        print(f"Deleted task {task.id[:8]}: {task.title}")
        return 0

    if action == "note":
        return _cmd_task_note(ctx, args)

    raise ValidationError(f"unknown task command: {action}")


def _print_task(ctx: CliContext, task: Task) -> None:
    print(f"ID:          {task.id}")
    print(f"Title:       {task.title}")
    print(f"Status:      {task.status.value}")
    print(f"Priority:    {task.priority.label}")
    if task.project_id:
        try:
            print(f"Project:     {ctx.repos.projects.get_by_id(task.project_id).name}")
        except ProjectNotFound:
            print(f"Project:     {task.project_id}")
    if task.parent_id:
        print(f"Parent:      {task.parent_id}")
    if task.description:
        print(f"Description: {task.description}")
    if task.tags:
        print(f"Tags:        {', '.join(task.tags)}")
    if task.changelist:
        print(f"Changelist:  {task.changelist}")
    if task.due_date is not None:
        overdue = " (overdue)" if task.is_overdue() else ""
        print(f"Due:         {task.due_date.strftime(ctx.config.tasks.date_format)}{overdue}")
    if task.note is not None:
        print(f"Note:        {task.note.id} ({task.note.path})")
    print(f"Created:     {_stamp(task.created_at, ctx)}")
    print(f"Updated:     {_stamp(task.updated_at, ctx)}")
    if task.completed_at is not None:
        print(f"Completed:   {_stamp(task.completed_at, ctx)}")

    subtasks = ctx.services.tasks.get_subtasks(task.id)
    if subtasks:
        print("Subtasks:")
        for child in subtasks:
            print(f"  {_task_row(child, date_format=ctx.config.tasks.date_format)}")
    entries = ctx.services.timer.get_time_entries_by_task(task.id)
    if entries:
        spent = sum((e.elapsed() for e in entries), timedelta())
        print(f"Time spent:  {format_duration(spent)} over {len(entries)} entries")


def _cmd_task_note(ctx: CliContext, args: argparse.Namespace) -> int:
    task = resolve_task(ctx, args.id)
    if args.note_action == "link":
        linked = ctx.services.tasks.link_note(task.id, args.note_id)
        print(f"Linked note {linked.note.id} to task {task.id[:8]}")
        return 0
    if args.note_action == "unlink":
        if ctx.services.tasks.unlink_note(task.id):
            print(f"Unlinked note from task {task.id[:8]}")
        else:
            print(f"Task {task.id[:8]} has no linked note")
        return 0
    if task.note is None:
        print(f"Task {task.id[:8]} has no linked note")
        return 0
    print(f"Note ID:  {task.note.id}")
    print(f"Path:     {task.note.path}")
    print(f"Created:  {_stamp(task.note.created_at, ctx)}")
    print(f"Updated:  {_stamp(task.note.updated_at, ctx)}")
    return 0


def cmd_project(ctx: CliContext, args: argparse.Namespace) -> int:
    projects = ctx.services.projects
    action = args.action

    if action == "list":
        found = projects.list_projects(ProjectFilter(status=tuple(ProjectStatus.parse(s) for s in args.status)))
        if not found:
            print("No projects found.")
            return 0
        for project in found:
            count = len(ctx.services.tasks.get_tasks_by_project(project.id))
            print(f"{project.id[:8]}  {project.status.value:<9} {project.name} ({count} tasks)")
        return 0

    if action == "add":
        project = projects.create_project(args.name, args.description, args.color)
        print(f"Created project {project.id[:8]}: {project.name}")
        return 0

    project = resolve_project(ctx, args.project)
    if action == "delete":
        projects.delete_project(project.id)
        print(f"Deleted project {project.name} with its tasks and time entries")
        return 0

    transitions: dict[str, Callable[[str], Project]] = {
        "archive": projects.archive_project,
        "activate": projects.activate_project,
        "complete": projects.complete_project,
        "hold": projects.put_project_on_hold,
    }
    change = transitions.get(action)
    if change is None:
        raise ValidationError(f"unknown project command: {action}")
    updated = change(project.id)
    print(f"Project {updated.name} is now {updated.status.value}")
    return 0


def cmd_time(ctx: CliContext, args: argparse.Namespace) -> int:
    timer = ctx.services.timer
    action = args.action

    if action == "start":
        task = resolve_task(ctx, args.id)
        started = timer.start_time_tracking(task.id, args.description)
        print(f"Started timer on {task.title} at {started.entry.start_time.strftime(ctx.config.time.time_format)}")
        if started.warning:
            print(f"Warning: {started.warning}", file=sys.stderr)
        return 0

    if action == "stop":
        entry = timer.stop_time_tracking()
        print(f"Stopped timer: {format_duration(entry.duration)}")
        return 0

    if action == "status":
        entry = timer.get_active_time_entry()
        if entry is None:
            print("No active timer.")
            return 0
        try:
            title = ctx.repos.tasks.get_by_id(entry.task_id).title
        except TaskNotFound:
            title = entry.task_id
        since = entry.start_time.strftime(ctx.config.time.time_format)
        print(f"Running: {title} since {since} ({entry.formatted_duration()})")
        return 0

    if action == "report":
        builders = {
            "today": timer.today_report,
            "yesterday": timer.yesterday_report,
            "week": timer.week_report,
            "month": timer.month_report,
        }
        print(_format_report(builders[args.period](), args.period))
        return 0

    if action == "list":
        flt = TimeEntryFilter(
            task_id=resolve_task(ctx, args.task).id if args.task else None,
            project_id=resolve_project(ctx, args.project).id if args.project else None,
            limit=max(0, args.limit),
        )
        entries = timer.list_time_entries(flt)
        if not entries:
            print("No time entries.")
            return 0
        for entry in entries:
            state = "running" if entry.is_active else _stamp(entry.end_time, ctx)
            print(f"{entry.id[:8]}  {_stamp(entry.start_time, ctx)} -> {state}  {entry.formatted_duration():>10}  {entry.task_id[:8]}")
        return 0

    raise ValidationError(f"unknown time command: {action}")


def cmd_export(ctx: CliContext, args: argparse.Namespace) -> int:
    project_id = resolve_project(ctx, args.project).id if args.project else None
    if args.what == "tasks":
        found = ctx.services.tasks.list_tasks(TaskFilter(project_id=project_id))
        encoders = {"json": export.tasks_to_json, "csv": export.tasks_to_csv, "ical": export.tasks_to_ical}
        payload = encoders[args.format](found)
    else:
        if args.format == "ical":
            raise ValidationError("iCal export is only available for tasks")
        entries = ctx.services.timer.list_time_entries(TimeEntryFilter(project_id=project_id))
        encoders = {"json": export.time_entries_to_json, "csv": export.time_entries_to_csv}
        payload = encoders[args.format](entries)

    if args.output:
        target = Path(args.output).expanduser()
        target.parent.mkdir(parents=True, exist_ok=True)
        newline = "" if args.format in ("csv", "ical") else None
        with target.open("w", encoding="utf-8", newline=newline) as handle:
            handle.write(payload)
        print(f"Exported {args.what} to {target}")
    else:
        sys.stdout.write(payload)
        if not payload.endswith("\n"):
            sys.stdout.write("\n")
    return 0


def cmd_config(ctx: CliContext, args: argparse.Namespace) -> int:
    path = ctx.paths.config_toml
    if args.action == "explain":
        print(explain_config(ctx.config, path=path, database=ctx.database))
        return 0
    if args.action == "set":
        write_default_config(path)
        ok, summary = set_config_value(path, args.key, args.value)
        if not ok:
            print(f"Error: {summary}", file=sys.stderr)
            return 1
        print(summary)
        return 0

    cfg = ctx.config
    print(f"config: {path}{'' if path.exists() else ' (defaults, file missing)'}")
    print(f"storage.database_path = {ctx.database}")
    print(f"tasks.default_project = {cfg.tasks.default_project or '(none)'}")
    print(f"tasks.date_format = {cfg.tasks.date_format}")
    print(f"time.time_format = {cfg.time.time_format}")
    print(f"time.week_start = {cfg.time.week_start}")
    print(f"git.integration = {'true' if cfg.git.integration else 'false'}")
    print(f"notes.directory = {cfg.notes.directory}")
    for alias, target in sorted(cfg.aliases.items()):
        print(f"aliases.{alias} = {target}")
    if ctx.config_warning:
        print(f"warning: {ctx.config_warning}")
    return 0


def cmd_git(ctx: CliContext, args: argparse.Namespace) -> int:
    git = ctx.git or GitCollaborator()
    if args.remove:
        if git.remove_commit_hook():
            print("Removed pm commit hook")
        else:
            print("No commit hook installed")
        return 0
    task = resolve_task(ctx, args.task)
    hook = git.create_commit_hook(task.id)
    print(f"Installed commit hook for task {task.id[:8]} at {hook}")
    return 0


_COMMANDS: dict[str, Callable[[CliContext, argparse.Namespace], int]] = {
    "app": cmd_app,
    "version": cmd_version,
    "task": cmd_task,
    "project": cmd_project,
    "time": cmd_time,
    "export": cmd_export,
    "config": cmd_config,
    "git": cmd_git,
}


def main(argv: list[str] | None = None) -> int:
    argv = list(argv) if argv is not None else list(sys.argv[1:])
    if not argv:
        argv = ["app"]

    paths = ensure_runtime_dirs(runtime_paths())
    log_file = setup_logging(log_dir=paths.logs_dir)
    config, warning = load_config(paths.config_toml)
    if warning:
        logger.warning("config: %s", warning)

    parser = build_parser()
    args = parser.parse_args(apply_aliases(argv, config.aliases))
    command = _COMMANDS.get(args.cmd or "app")
    if command is None:
        parser.error(f"Unknown command: {args.cmd}")
        return 2

    ctx = CliContext(paths=paths, config=config, config_warning=warning, git=GitCollaborator())
    logger.debug("pm %s (log: %s)", " ".join(argv), log_file)
    try:
        return command(ctx, args)
    except PmError as exc:
        logger.debug("command failed: %s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        ctx.close()


if __name__ == "__main__":
    raise SystemExit(main())
