from __future__ import annotations

import asyncio
from dataclasses import dataclass
import unittest

from projman.domain import new_project, new_task
from projman.tui.effects import (
    ALL_EFFECTS,
    DeleteProject,
    DeleteTask,
    Effect,
    LoadActiveTimer,
    LoadProjects,
    LoadReport,
    LoadTasks,
    SaveProject,
    SaveTask,
    StartTimer,
    StopTimer,
)
from projman.tui.messages import (
    ActiveTimerLoaded,
    EffectFailed,
    Message,
    ProjectDeleted,
    ProjectSaved,
    ProjectsLoaded,
    ReportLoaded,
    TaskDeleted,
    TaskSaved,
    TasksLoaded,
    TimerStarted,
    TimerStopped,
)
from projman.tui.scheduler import Scheduler
from tests.helpers import BASE_TIME, FixedClock, fake_services, storage_down, temp_services


@dataclass(frozen=True)
class Unplugged(Effect):
    action_label = "Unplug"


class TestSchedulerWithFakes(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FixedClock()
        self.services = fake_services(self.clock)
        self.scheduler = Scheduler(self.services)

    def test_every_effect_variant_has_a_runner(self) -> None:
        self.assertEqual(frozenset(ALL_EFFECTS), self.scheduler.handled_effects)

    def test_storage_failure_becomes_a_message(self) -> None:
        self.services.tasks.fail_with = storage_down()
        with self.assertLogs("projman.tui.scheduler", level="WARNING") as logs:
            msg = self.scheduler.execute(LoadTasks(1))
        self.assertIsInstance(msg, EffectFailed)
        self.assertEqual("Load tasks failed: database is locked", msg.banner_text)
        self.assertEqual("LoadTasks", msg.effect_kind)
        self.assertTrue(any("LoadTasks failed" in line for line in logs.output))

    def test_unexpected_exception_is_logged_with_traceback(self) -> None:
        self.services.tasks.fail_with = RuntimeError("boom")
        with self.assertLogs("projman.tui.scheduler", level="ERROR") as logs:
            msg = self.scheduler.execute(DeleteTask("t1"))
        self.assertEqual("Delete task failed: RuntimeError: boom", msg.banner_text)
        self.assertIn("Traceback", logs.output[0])

    def test_unknown_effect_is_reported_not_raised(self) -> None:
        msg = self.scheduler.execute(Unplugged())
        self.assertEqual("Unplug failed: unsupported effect Unplugged", msg.banner_text)

    def test_active_timer_title_is_resolved(self) -> None:
        task = new_task("Fix login", now=BASE_TIME)
        self.services.tasks.tasks[task.id] = task
        self.scheduler.execute(StartTimer(task.id))

        msg = self.scheduler.execute(LoadActiveTimer(4))
        self.assertIsInstance(msg, ActiveTimerLoaded)
        self.assertEqual(4, msg.request_id)
        self.assertEqual("Fix login", msg.task_title)

        del self.services.tasks.tasks[task.id]
        msg = self.scheduler.execute(LoadActiveTimer(5))
        self.assertEqual("", msg.task_title)
        self.assertIsNotNone(msg.entry)

    def test_submit_delivers_to_plain_and_async_callbacks(self) -> None:
        seen: list[Message] = []

        async def deliver_async(message: Message) -> None:
            seen.append(message)

        async def run() -> None:
            await self.scheduler.submit(LoadProjects(1), seen.append)
            await self.scheduler.submit(StopTimer(), deliver_async)

        asyncio.run(run())
        self.assertIsInstance(seen[0], ProjectsLoaded)
        self.assertIsInstance(seen[1], EffectFailed)
        self.assertEqual("Stop timer failed: no active time entry found", seen[1].banner_text)


class TestSchedulerWithStore(unittest.TestCase):
    def test_effects_round_trip_through_real_services(self) -> None:
        clock = FixedClock()
        with temp_services(clock) as (services, _repos):
            scheduler = Scheduler(services)

            saved = scheduler.execute(SaveProject(new_project("Web", now=BASE_TIME), is_new=True))
            self.assertIsInstance(saved, ProjectSaved)
            project = saved.project

            task = new_task("Fix login", now=BASE_TIME)
            task.project_id = project.id
            created = scheduler.execute(SaveTask(task, is_new=True))
            self.assertIsInstance(created, TaskSaved)
            self.assertTrue(created.is_new)

            loaded = scheduler.execute(LoadTasks(7, project.id))
            self.assertIsInstance(loaded, TasksLoaded)
            self.assertEqual((7, project.id), (loaded.request_id, loaded.project_id))
            self.assertEqual(["Fix login"], [t.title for t in loaded.tasks])

            started = scheduler.execute(StartTimer(task.id))
            self.assertIsInstance(started, TimerStarted)
            self.assertEqual("", started.warning)

            again = scheduler.execute(StartTimer(task.id))
            self.assertIsInstance(again, EffectFailed)
            self.assertEqual("Start timer failed: there is already an active time entry", again.banner_text)

            clock.advance(minutes=25)
            stopped = scheduler.execute(StopTimer())
            self.assertIsInstance(stopped, TimerStopped)
            self.assertEqual(25 * 60, int(stopped.entry.duration.total_seconds()))

            report = scheduler.execute(LoadReport(1, "week"))
            self.assertIsInstance(report, ReportLoaded)
            self.assertEqual(25 * 60, int(report.report.total.total_seconds()))

            self.assertIsInstance(scheduler.execute(DeleteTask(task.id)), TaskDeleted)
            missing = scheduler.execute(DeleteTask(task.id))
            self.assertIsInstance(missing, EffectFailed)
            self.assertIn("task not found", missing.error)

            self.assertIsInstance(scheduler.execute(DeleteProject(project.id)), ProjectDeleted)
            self.assertEqual((), scheduler.execute(LoadProjects(2)).projects)

    def test_edit_of_a_deleted_task_does_not_bring_it_back(self) -> None:
        with temp_services() as (services, _repos):
            scheduler = Scheduler(services)
            task = new_task("Fix login", now=BASE_TIME)
            scheduler.execute(SaveTask(task, is_new=True))
            scheduler.execute(DeleteTask(task.id))

            edited = task.copy()
            edited.title = "Fix login (edited)"
            msg = scheduler.execute(SaveTask(edited, is_new=False))

            self.assertIsInstance(msg, EffectFailed)
            self.assertEqual(f"Save task failed: task not found: {task.id}", msg.banner_text)
            self.assertEqual((), scheduler.execute(LoadTasks(1)).tasks)

    def test_edit_of_a_deleted_project_does_not_bring_it_back(self) -> None:
        with temp_services() as (services, _repos):
            scheduler = Scheduler(services)
            project = scheduler.execute(SaveProject(new_project("Web", now=BASE_TIME), is_new=True)).project
            scheduler.execute(DeleteProject(project.id))

            project.description = "renamed"
            msg = scheduler.execute(SaveProject(project, is_new=False))

            self.assertIsInstance(msg, EffectFailed)
            self.assertIn("project not found", msg.banner_text)
            self.assertEqual((), scheduler.execute(LoadProjects(2)).projects)


if __name__ == "__main__":
    unittest.main()
