from __future__ import annotations

import os
import tempfile
import tomllib
import unittest
from pathlib import Path
from unittest import mock

from projman.config import (
    DEFAULT_ALIASES,
    PmConfig,
    explain_config,
    load_config,
    set_config_value,
    write_default_config,
)
from projman.paths import HOME_ENV, ensure_runtime_dirs, runtime_paths, runtime_root


class TestLoadConfig(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        self.path = self.root / "pm.toml"

    def test_missing_file_gives_defaults_without_warning(self) -> None:
        cfg, warning = load_config(self.path)
        self.assertEqual("", warning)
        self.assertEqual("%H:%M", cfg.time.time_format)
        self.assertEqual(0, cfg.time.week_start_index)
        self.assertTrue(cfg.git.integration)
        self.assertEqual(DEFAULT_ALIASES, cfg.aliases)

    def test_values_are_coerced_field_by_field(self) -> None:
        self.path.write_text(
            "\n".join(
                [
                    "[tasks]",
                    'default_project = " Web "',
                    "date_format = 7",
                    "[time]",
                    'week_start = "Sunday"',
                    "[git]",
                    'integration = "off"',
                    "[theme]",
                    'primary = "#112233"',
                    "[aliases]",
                    'mk = "add"',
                    "bad = 3",
                ]
            )
            + "\n",
            encoding="utf-8",
        )
        cfg, warning = load_config(self.path)
        self.assertEqual("", warning)
        self.assertEqual("Web", cfg.tasks.default_project)
        self.assertEqual("%Y-%m-%d", cfg.tasks.date_format)
        self.assertEqual("sunday", cfg.time.week_start)
        self.assertEqual(6, cfg.time.week_start_index)
        self.assertFalse(cfg.git.integration)
        self.assertEqual("#112233", cfg.theme.primary)
        self.assertEqual("add", cfg.aliases["mk"])
        self.assertEqual("list", cfg.aliases["ls"])
        self.assertNotIn("bad", cfg.aliases)

    def test_bad_week_start_falls_back_with_warning(self) -> None:
        self.path.write_text('[time]\nweek_start = "caturday"\n', encoding="utf-8")
        cfg, warning = load_config(self.path)
        self.assertEqual("monday", cfg.time.week_start)
        self.assertIn("week_start", warning)

    def test_unparseable_file_never_raises(self) -> None:
        self.path.write_text("[tasks\nthis is not toml", encoding="utf-8")
        cfg, warning = load_config(self.path)
        self.assertIsInstance(cfg, PmConfig)
        self.assertIn("parse failed", warning)

    def test_database_path_resolution(self) -> None:
        self.assertEqual(self.root / "tasks.db", PmConfig().database_path(self.root))
        self.path.write_text('[storage]\ndatabase_path = "data/pm.db"\n', encoding="utf-8")
        cfg, _ = load_config(self.path)
        self.assertEqual(self.root / "data" / "pm.db", cfg.database_path(self.root))


class TestEditConfig(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.path = Path(self._tmp.name) / "pm.toml"

    def test_set_creates_file_and_section(self) -> None:
        ok, summary = set_config_value(self.path, "default_project", "Web App")
        self.assertTrue(ok)
        self.assertIn("(new file)", summary)
        cfg, _ = load_config(self.path)
        self.assertEqual("Web App", cfg.tasks.default_project)

    def test_set_rewrites_existing_key_in_place(self) -> None:
        self.assertTrue(write_default_config(self.path))
        self.assertFalse(write_default_config(self.path))

        ok, _ = set_config_value(self.path, "git_integration", "no")
        self.assertTrue(ok)
        ok, _ = set_config_value(self.path, "time_format", '%I:%M "%p"')
        self.assertTrue(ok)

        data = tomllib.loads(self.path.read_text(encoding="utf-8"))
        self.assertIs(False, data["git"]["integration"])
        self.assertEqual('%I:%M "%p"', data["time"]["time_format"])
        self.assertEqual("monday", data["time"]["week_start"])
        self.assertEqual(1, self.path.read_text(encoding="utf-8").count("integration ="))

    def test_unknown_key_is_refused(self) -> None:
        ok, summary = set_config_value(self.path, "colour", "red")
        self.assertFalse(ok)
        self.assertIn("unknown config key", summary)
        self.assertFalse(self.path.exists())

    def test_explain_mentions_every_section(self) -> None:
        text = explain_config(PmConfig(), path=self.path)
        for section in ("[storage]", "[tasks]", "[time]", "[git]", "[notes]", "[aliases]"):
            self.assertIn(section, text)


class TestRuntimePaths(unittest.TestCase):
    def test_home_override_and_layout(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with mock.patch.dict(os.environ, {HOME_ENV: tmp}):
                root = runtime_root()
                self.assertEqual(Path(tmp).resolve(), root)
                paths = ensure_runtime_dirs(runtime_paths(root))
            self.assertTrue(paths.logs_dir.is_dir())
            self.assertEqual(root / "pm.toml", paths.config_toml)
            self.assertEqual(root / "tasks.db", paths.database)


if __name__ == "__main__":
    unittest.main()
