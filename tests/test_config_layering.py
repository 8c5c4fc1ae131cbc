"""Tests for layered config precedence (default < pyproject < git < env < cli)."""
from __future__ import annotations

from pathlib import Path
from subprocess import CompletedProcess
from unittest.mock import patch
import tempfile
import os
import unittest

from dualsync.executor import DIRECTORY_LOCKS
from dualsync import config
from dualsync.cli import _build_parser, _settings


def _write_pyproject(root: Path, body: str) -> None:
    (root / "pyproject.toml").write_text(body, encoding="utf-8")


class ConfigLayeringTests(unittest.TestCase):
    def test_defaults(self) -> None:
        with patch("dualsync.config._load_pyproject_overrides",
                   return_value=({}, [])):
            with patch("dualsync.config._load_git_overrides",
                       return_value={}):
                with patch.dict(os.environ, {}, clear=True):
                    settings = config.load_settings(".")
        self.assertEqual(settings.core_remote, "origin")
        self.assertEqual(settings.hub_remote, "github")
        self.assertEqual(settings.fetch_timeout, 30.0)
        self.assertEqual(settings.sources["core_remote"], "default")

    def test_pyproject_overrides_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            _write_pyproject(root, "[tool.dualsync]\n"
                             "hub-remote = 'mirror'\nfetch_timeout = 12\n")
            with patch("dualsync.config._load_git_overrides",
                       return_value={}):
                with patch.dict(os.environ, {}, clear=True):
                    settings = config.load_settings(str(root))
        self.assertEqual(settings.hub_remote, "mirror")
        self.assertEqual(settings.fetch_timeout, 12.0)
        self.assertEqual(settings.sources["hub_remote"], "pyproject")

    def test_git_overrides_pyproject(self) -> None:
        with patch("dualsync.config._load_pyproject_overrides",
                   return_value=({"hub_remote": "pyproj"}, [])):
            with patch("dualsync.config._load_git_overrides",
                       return_value={"hub_remote": "gitcfg"}):
                with patch.dict(os.environ, {}, clear=True):
                    settings = config.load_settings(".")
        self.assertEqual(settings.hub_remote, "gitcfg")
        self.assertEqual(settings.sources["hub_remote"], "git")

    def test_env_overrides_git(self) -> None:
        with patch("dualsync.config._load_pyproject_overrides",
                   return_value=({}, [])):
            with patch("dualsync.config._load_git_overrides",
                       return_value={"core_remote": "gitcfg"}):
                with patch.dict(os.environ,
                                {"DUALSYNC_CORE_REMOTE": "upstream"},
                                clear=True):
                    settings = config.load_settings(".")
        self.assertEqual(settings.core_remote, "upstream")
        self.assertEqual(settings.sources["core_remote"], "env")

    def test_cli_overrides_env(self) -> None:
        args = _build_parser().parse_args(
            ["status", "--core-remote", "fork", "--no-fetch"])
        with patch("dualsync.config._load_pyproject_overrides",
                   return_value=({}, [])):
            with patch("dualsync.config._load_git_overrides",
                       return_value={}):
                with patch.dict(os.environ,
                                {"DUALSYNC_CORE_REMOTE": "upstream"},
                                clear=True):
                    settings = _settings(args)
        self.assertEqual(settings.core_remote, "fork")
        self.assertTrue(settings.skip_fetch)
        self.assertEqual(settings.sources["core_remote"], "cli")
        self.assertEqual(settings.sources["hub_remote"], "default")

    def test_invalid_values_are_ignored_with_diagnostics(self) -> None:
        with patch("dualsync.config._load_pyproject_overrides",
                   return_value=({}, [])):
            with patch("dualsync.config._load_git_overrides",
                       return_value={"skip_fetch": "maybe"}):
                with patch.dict(os.environ,
                                {"DUALSYNC_FETCH_TIMEOUT": "-3"},
                                clear=True):
                    settings = config.load_settings(".")
        self.assertFalse(settings.skip_fetch)
        self.assertEqual(settings.fetch_timeout, 30.0)
        keys = {d["key"] for d in settings.diagnostics}
        self.assertEqual(keys, {"skip_fetch", "fetch_timeout"})

    def test_unknown_pyproject_key_is_reported(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            _write_pyproject(root, "[tool.dualsync]\nnope = 1\n")
            values, diags = config._load_pyproject_overrides(str(root))
        self.assertEqual(values, {})
        self.assertEqual(diags[0]["key"], "nope")

    def test_settings_helpers(self) -> None:
        settings = config.Settings(large_object_mb=2)
        self.assertEqual(settings.large_object_bytes, 2 * 1024 * 1024)
        self.assertEqual(settings.remote_for("hub"), "github")
        changed = settings.with_overrides(hub_remote="m", core_url=None)
        self.assertEqual(changed.hub_remote, "m")
        self.assertEqual(changed.core_url, "")
        with self.assertRaises(KeyError):
            settings.remote_for("mirror")


class GitScopeReadTests(unittest.TestCase):
    def test_git_config_read_is_non_interactive(self) -> None:
        done = CompletedProcess([], 0, "dualsync.hub-remote mirror\n", "")
        with tempfile.TemporaryDirectory() as tmp:
            with patch("dualsync.config.subprocess.run",
                       return_value=done) as run:
                values = config._read_git_scope(["--local"], repo=tmp)
        self.assertEqual(values, {"dualsync.hub-remote": "mirror"})
        env = run.call_args.kwargs["env"]
        self.assertEqual(env["GIT_TERMINAL_PROMPT"], "0")
        self.assertEqual(env["LC_ALL"], "C")
        self.assertEqual(run.call_args.kwargs["cwd"], tmp)

    def test_git_config_read_holds_directory_lock(self) -> None:
        seen = []

        def fake_run(cmd: list[str], **kwargs: object) -> CompletedProcess:
            lock = DIRECTORY_LOCKS.lock_for(kwargs["cwd"])
            seen.append(lock.locked())
            return CompletedProcess(cmd, 1, "", "")
        with tempfile.TemporaryDirectory() as tmp:
            with patch("dualsync.config.subprocess.run",
                       side_effect=fake_run):
                self.assertEqual(config._read_git_scope(["--local"],
                                                        repo=tmp), {})
        self.assertEqual(seen, [True])


if __name__ == "__main__":
    unittest.main()
