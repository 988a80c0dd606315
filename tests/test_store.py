from __future__ import annotations

from datetime import timedelta, timezone
import sqlite3
import tempfile
import threading
import unittest
from pathlib import Path
from unittest import mock

from projman.domain import (
    LinkedNote,
    Priority,
    TaskFilter,
    TaskStatus,
    TimeEntryFilter,
    new_project,
    new_task,
    new_time_entry,
)
from projman.errors import (
    ActiveTimerExists,
    DuplicateProject,
    InvalidTaskId,
    NoActiveTimer,
    ProjectNotFound,
    StorageFailure,
    TaskNotFound,
)
from projman.store import open_repositories
from projman.store.migrations import SCHEMA_VERSION, current_version
from tests.helpers import BASE_TIME, temp_repositories


def _task(title: str, minutes: int = 0, **fields):
    task = new_task(title, now=BASE_TIME + timedelta(minutes=minutes))
    for key, value in fields.items():
        setattr(task, key, value)
    return task


class TestTaskRepository(unittest.TestCase):
    def test_create_and_read_back_every_field(self) -> None:
        with temp_repositories() as repos:
            project = repos.projects.create(new_project("Web", now=BASE_TIME))
            task = _task(
                "Write docs",
                description="api section",
                priority=Priority.HIGH,
                project_id=project.id,
                tags=["docs", "api"],
                changelist="1234",
                due_date=BASE_TIME + timedelta(days=2),
                note=LinkedNote(id="n1", path="/notes/a.md", created_at=BASE_TIME),
            )
            task.metadata["estimate"] = 3
            repos.tasks.create(task)

            loaded = repos.tasks.get_by_id(task.id)
            self.assertEqual(task.title, loaded.title)
            self.assertEqual(Priority.HIGH, loaded.priority)
            self.assertEqual(["docs", "api"], loaded.tags)
            self.assertEqual("1234", loaded.changelist)
            self.assertEqual(task.due_date, loaded.due_date)
            self.assertEqual({"estimate": 3}, loaded.metadata)
            self.assertEqual("n1", loaded.note.id)
            self.assertEqual(project.id, loaded.project_id)

    def test_create_requires_id_and_existing_refs(self) -> None:
        with temp_repositories() as repos:
            task = _task("x")
            task.id = ""
            with self.assertRaises(InvalidTaskId):
                repos.tasks.create(task)
            with self.assertRaises(ProjectNotFound):
                repos.tasks.create(_task("y", project_id="missing"))
            with self.assertRaises(TaskNotFound):
                repos.tasks.create(_task("z", parent_id="missing"))
            self.assertEqual([], repos.tasks.list())

    def test_missing_task_operations_raise_not_found(self) -> None:
        with temp_repositories() as repos:
            with self.assertRaises(TaskNotFound):
                repos.tasks.get_by_id("nope")
            with self.assertRaises(TaskNotFound):
                repos.tasks.update(_task("ghost"))
            with self.assertRaises(TaskNotFound):
                repos.tasks.delete("nope")

    def test_list_orders_newest_first(self) -> None:
        with temp_repositories() as repos:
            first = repos.tasks.create(_task("first", 0))
            second = repos.tasks.create(_task("second", 5))
            third = repos.tasks.create(_task("third", 10))
            ids = [t.id for t in repos.tasks.list()]
            self.assertEqual([third.id, second.id, first.id], ids)

    def test_list_filters_combine(self) -> None:
        with temp_repositories() as repos:
            project = repos.projects.create(new_project("Web", now=BASE_TIME))
            repos.tasks.create(_task("Fix login bug", 0, project_id=project.id, tags=["backend"]))
            repos.tasks.create(_task("Style login page", 1, project_id=project.id, tags=["frontend"]))
            done = _task("Ship release", 2, priority=Priority.CRITICAL)
            done.complete(BASE_TIME)
            repos.tasks.create(done)

            by_project = repos.tasks.list(TaskFilter(project_id=project.id))
            self.assertEqual(2, len(by_project))

            searched = repos.tasks.list(TaskFilter(search="login", tags=("frontend", "ops")))
            self.assertEqual(["Style login page"], [t.title for t in searched])

            finished = repos.tasks.list(TaskFilter(status=(TaskStatus.DONE,)))
            self.assertEqual(["Ship release"], [t.title for t in finished])

            critical = repos.tasks.list(TaskFilter(priority=(Priority.CRITICAL, Priority.HIGH)))
            self.assertEqual(["Ship release"], [t.title for t in critical])

            paged = repos.tasks.list(TaskFilter(limit=1, offset=1))
            self.assertEqual(["Style login page"], [t.title for t in paged])

    def test_due_window_bounds(self) -> None:
        with temp_repositories() as repos:
            day = BASE_TIME + timedelta(days=1)
            repos.tasks.create(_task("on the day", 0, due_date=day))
            repos.tasks.create(_task("later", 1, due_date=day + timedelta(days=3)))
            repos.tasks.create(_task("undated", 2))

            before = repos.tasks.list(TaskFilter(due_before=day))
            self.assertEqual([], before)
            after = repos.tasks.list(TaskFilter(due_after=day))
            self.assertEqual({"on the day", "later"}, {t.title for t in after})

    def test_delete_removes_subtree_and_its_time_entries(self) -> None:
        with temp_repositories() as repos:
            parent = repos.tasks.create(_task("parent", 0))
            child = repos.tasks.create(_task("child", 1, parent_id=parent.id))
            grandchild = repos.tasks.create(_task("grandchild", 2, parent_id=child.id))
            other = repos.tasks.create(_task("other", 3))
            entry = new_time_entry(grandchild.id, None, now=BASE_TIME)
            entry.stop(BASE_TIME + timedelta(minutes=5))
            repos.time_entries.create(entry)
            kept = new_time_entry(other.id, None, now=BASE_TIME)
            kept.stop(BASE_TIME + timedelta(minutes=1))
            repos.time_entries.create(kept)

            repos.tasks.delete(parent.id)

            self.assertEqual([other.id], [t.id for t in repos.tasks.list()])
            self.assertEqual([kept.id], [e.id for e in repos.time_entries.list()])

    def test_subtasks_and_ancestors(self) -> None:
        with temp_repositories() as repos:
            root = repos.tasks.create(_task("root", 0))
            mid = repos.tasks.create(_task("mid", 1, parent_id=root.id))
            leaf = repos.tasks.create(_task("leaf", 2, parent_id=mid.id))
            self.assertEqual([mid.id], [t.id for t in repos.tasks.get_subtasks(root.id)])
            self.assertEqual([mid.id, root.id], repos.tasks.ancestor_ids(leaf.id))

    def test_prefix_lookup_escapes_wildcards(self) -> None:
        with temp_repositories() as repos:
            task = repos.tasks.create(_task("x"))
            self.assertEqual([task.id], [t.id for t in repos.tasks.find_by_prefix(task.id[:6])])
            self.assertEqual([], repos.tasks.find_by_prefix("%"))
            self.assertEqual([], repos.tasks.find_by_prefix("  "))


class TestProjectRepository(unittest.TestCase):
    def test_names_are_unique(self) -> None:
        with temp_repositories() as repos:
            repos.projects.create(new_project("Web", now=BASE_TIME))
            with self.assertRaises(DuplicateProject):
                repos.projects.create(new_project("Web", now=BASE_TIME))
            other = repos.projects.create(new_project("Mobile", now=BASE_TIME))
            other.name = "Web"
            with self.assertRaises(DuplicateProject):
                repos.projects.update(other)

    def test_list_is_sorted_by_name(self) -> None:
        with temp_repositories() as repos:
            for name in ("beta", "Alpha", "gamma"):
                repos.projects.create(new_project(name, now=BASE_TIME))
            self.assertEqual(["Alpha", "beta", "gamma"], [p.name for p in repos.projects.list()])
            self.assertEqual("beta", repos.projects.get_by_name("beta").name)

    def test_delete_cascades_to_tasks_and_time_entries(self) -> None:
        with temp_repositories() as repos:
            web = repos.projects.create(new_project("Web", now=BASE_TIME))
            mobile = repos.projects.create(new_project("Mobile", now=BASE_TIME))
            parent = repos.tasks.create(_task("web parent", 0, project_id=web.id))
            foreign_child = repos.tasks.create(
                _task("mobile child", 1, project_id=mobile.id, parent_id=parent.id)
            )
            entry = new_time_entry(parent.id, web.id, now=BASE_TIME)
            entry.stop(BASE_TIME + timedelta(minutes=2))
            repos.time_entries.create(entry)

            repos.projects.delete(web.id)

            with self.assertRaises(ProjectNotFound):
                repos.projects.get_by_id(web.id)
            with self.assertRaises(TaskNotFound):
                repos.tasks.get_by_id(parent.id)
            survivor = repos.tasks.get_by_id(foreign_child.id)
            self.assertIsNone(survivor.parent_id)
            self.assertEqual([], repos.time_entries.list())

    def test_delete_unknown_project(self) -> None:
        with temp_repositories() as repos:
            with self.assertRaises(ProjectNotFound):
                repos.projects.delete("missing")


class TestTimeEntryRepository(unittest.TestCase):
    def test_only_one_entry_may_run(self) -> None:
        with temp_repositories() as repos:
            a = repos.tasks.create(_task("a"))
            b = repos.tasks.create(_task("b"))
            repos.time_entries.create(new_time_entry(a.id, None, now=BASE_TIME))
            with self.assertRaises(ActiveTimerExists):
                repos.time_entries.create(new_time_entry(b.id, None, now=BASE_TIME))
            self.assertEqual(1, len(repos.time_entries.list(TimeEntryFilter(active=True))))

    def test_unique_index_backs_the_single_active_rule(self) -> None:
        with temp_repositories() as repos:
            a = repos.tasks.create(_task("a"))
            repos.time_entries.create(new_time_entry(a.id, None, now=BASE_TIME))
            with self.assertRaises(StorageFailure):
                with repos.db.write() as conn:
                    conn.execute(
                        "INSERT INTO time_entries (id, task_id, start_time, created_at, updated_at) "
                        "VALUES ('raw', ?, ?, ?, ?)",
                        (a.id, BASE_TIME.isoformat(), BASE_TIME.isoformat(), BASE_TIME.isoformat()),
                    )

    def test_stop_active_records_duration(self) -> None:
        with temp_repositories() as repos:
            a = repos.tasks.create(_task("a"))
            started = repos.time_entries.create(new_time_entry(a.id, None, now=BASE_TIME))
            stopped = repos.time_entries.stop_active(BASE_TIME + timedelta(minutes=25))
            self.assertEqual(started.id, stopped.id)
            stored = repos.time_entries.get_by_id(started.id)
            self.assertEqual(timedelta(minutes=25), stored.duration)
            self.assertFalse(stored.is_active)
            with self.assertRaises(NoActiveTimer):
                repos.time_entries.stop_active(BASE_TIME)
            with self.assertRaises(NoActiveTimer):
                repos.time_entries.get_active()

    def test_entries_need_an_existing_task(self) -> None:
        with temp_repositories() as repos:
            with self.assertRaises(TaskNotFound):
                repos.time_entries.create(new_time_entry("missing", None, now=BASE_TIME))

    def test_time_window_filter(self) -> None:
        with temp_repositories() as repos:
            a = repos.tasks.create(_task("a"))
            for hours in (0, 2, 4):
                entry = new_time_entry(a.id, None, now=BASE_TIME + timedelta(hours=hours))
                entry.stop(entry.start_time + timedelta(minutes=10))
                repos.time_entries.create(entry)
            window = repos.time_entries.list(
                TimeEntryFilter(
                    start_after=BASE_TIME + timedelta(hours=1),
                    start_before=BASE_TIME + timedelta(hours=4),
                )
            )
            self.assertEqual([BASE_TIME + timedelta(hours=2)], [e.start_time for e in window])

    def test_time_window_is_applied_in_sql_across_offsets(self) -> None:
        plus_two = timezone(timedelta(hours=2))
        with temp_repositories() as repos:
            a = repos.tasks.create(_task("a"))
            for minutes in (-30, 0, 59, 60):
                start = (BASE_TIME + timedelta(minutes=minutes)).astimezone(plus_two)
                entry = new_time_entry(a.id, None, now=start)
                entry.stop(start + timedelta(minutes=5))
                repos.time_entries.create(entry)

            flt = TimeEntryFilter(start_after=BASE_TIME, start_before=BASE_TIME + timedelta(hours=1))
            with mock.patch.object(repos.db, "query", wraps=repos.db.query) as query:
                window = repos.time_entries.list(flt)

            sql, params = query.call_args.args
            self.assertIn("julianday(start_time) >=", sql)
            self.assertEqual(2, len(params))
            self.assertEqual(
                [BASE_TIME + timedelta(minutes=59), BASE_TIME],
                [e.start_time for e in window],
            )


class TestConcurrentTimers(unittest.TestCase):
    """Two bundles on one file, each shared by two threads, racing on the timer."""

    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        path = Path(tmp.name) / "tasks.db"
        self.bundles = [open_repositories(path), open_repositories(path)]
        for bundle in self.bundles:
            self.addCleanup(bundle.close)
        self.tasks = [self.bundles[0].tasks.create(_task(f"t{i}", i)) for i in range(4)]

    def race(self, work: list) -> list:
        barrier = threading.Barrier(len(work))
        outcomes: list = [None] * len(work)

        def run(index: int) -> None:
            barrier.wait()
            try:
                outcomes[index] = work[index]()
            except Exception as exc:  # noqa: BLE001
                outcomes[index] = exc

        threads = [threading.Thread(target=run, args=(i,)) for i in range(len(work))]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)
            self.assertFalse(thread.is_alive())
        return outcomes

    def running(self) -> list:
        counts = [len(b.time_entries.list(TimeEntryFilter(active=True))) for b in self.bundles]
        self.assertEqual(counts[0], counts[1])
        return self.bundles[1].time_entries.list(TimeEntryFilter(active=True))

    def start(self, index: int):
        bundle = self.bundles[index % 2]
        return lambda: bundle.time_entries.create(new_time_entry(self.tasks[index].id, None, now=BASE_TIME))

    def stop(self, index: int):
        bundle = self.bundles[index % 2]
        return lambda: bundle.time_entries.stop_active(BASE_TIME + timedelta(minutes=10 + index))

    def test_concurrent_starts_leave_exactly_one_running(self) -> None:
        outcomes = self.race([self.start(i) for i in range(4)])

        started = [o for o in outcomes if not isinstance(o, Exception)]
        refused = [o for o in outcomes if isinstance(o, ActiveTimerExists)]
        self.assertEqual((1, 3), (len(started), len(refused)))
        self.assertEqual([started[0].id], [e.id for e in self.running()])

    def test_concurrent_stops_stop_the_entry_once(self) -> None:
        entry = self.bundles[0].time_entries.create(new_time_entry(self.tasks[0].id, None, now=BASE_TIME))

        outcomes = self.race([self.stop(i) for i in range(4)])

        stopped = [o for o in outcomes if not isinstance(o, Exception)]
        missing = [o for o in outcomes if isinstance(o, NoActiveTimer)]
        self.assertEqual((1, 3), (len(stopped), len(missing)))
        self.assertEqual(entry.id, stopped[0].id)
        self.assertEqual([], self.running())
        self.assertEqual(stopped[0].duration, self.bundles[1].time_entries.get_by_id(entry.id).duration)

    def test_mixed_starts_and_stops_never_run_two_entries(self) -> None:
        self.bundles[0].time_entries.create(new_time_entry(self.tasks[0].id, None, now=BASE_TIME))
        for _round in range(5):
            outcomes = self.race([self.stop(0), self.start(1), self.start(2), self.stop(3)])
            for outcome in outcomes:
                if isinstance(outcome, Exception):
                    self.assertIsInstance(outcome, (ActiveTimerExists, NoActiveTimer))
            self.assertLessEqual(len(self.running()), 1)


class TestMigrations(unittest.TestCase):
    def test_reopening_keeps_data_and_version(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "tasks.db"
            repos = open_repositories(path)
            task = repos.tasks.create(_task("persisted"))
            repos.close()

            repos = open_repositories(path)
            try:
                self.assertEqual("persisted", repos.tasks.get_by_id(task.id).title)
                with repos.db.write() as conn:
                    self.assertEqual(SCHEMA_VERSION, current_version(conn))
            finally:
                repos.close()

    def test_old_schema_gains_new_task_columns(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "tasks.db"
            conn = sqlite3.connect(str(path))
            conn.executescript(
                """
                CREATE TABLE schema_version (version INTEGER PRIMARY KEY);
                INSERT INTO schema_version (version) VALUES (1);
                CREATE TABLE tasks (
                    id TEXT PRIMARY KEY, title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '', status TEXT NOT NULL DEFAULT 'todo',
                    priority INTEGER NOT NULL DEFAULT 1, project_id TEXT, parent_id TEXT,
                    tags TEXT NOT NULL DEFAULT '[]', due_date TEXT,
                    created_at TEXT NOT NULL, updated_at TEXT NOT NULL, completed_at TEXT,
                    metadata TEXT NOT NULL DEFAULT '{}'
                );
                INSERT INTO tasks (id, title, created_at, updated_at)
                VALUES ('old', 'legacy', '2026-03-02T09:00:00+00:00', '2026-03-02T09:00:00+00:00');
                """
            )
            conn.commit()
            conn.close()

            repos = open_repositories(path)
            try:
                legacy = repos.tasks.get_by_id("old")
                self.assertEqual("legacy", legacy.title)
                self.assertEqual("", legacy.changelist)
                self.assertIsNone(legacy.note)
            finally:
                repos.close()


if __name__ == "__main__":
    unittest.main()
