"""CLI smoke tests for stable user-facing behavior."""


from pathlib import Path
import subprocess
import tempfile
import unittest
import json
import sys
import os

from tests._gitfixture import GitFixture


def _run(*args: str, cwd: str | None = None
        ) -> subprocess.CompletedProcess:
    env = {k: v for k, v in os.environ.items()
           if not k.startswith("DUALSYNC_")}
    return subprocess.run(
        [sys.executable, "-m", "dualsync", *args],
        check=False,
        capture_output=True,
        text=True,
        cwd=cwd,
        env=env,
    )


class CliSmokeTests(unittest.TestCase):
    def test_help_exits_zero(self) -> None:
        cp = _run("--help")
        self.assertEqual(cp.returncode, 0, cp.stderr)
        for word in ("status", "doctor", "fix", "retry", "--version"):
            self.assertIn(word, cp.stdout)

    def test_subcommand_help_lists_options(self) -> None:
        cp = _run("fix", "--help")
        self.assertEqual(cp.returncode, 0, cp.stderr)
        for flag in ("--dry-run", "--no-fetch", "--json",
                     "--core-remote", "--hub-remote"):
            self.assertIn(flag, cp.stdout)

    def test_version_exits_zero(self) -> None:
        cp = _run("--version")
        self.assertEqual(cp.returncode, 0, cp.stderr)
        self.assertIn("dualsync", cp.stdout.lower())

    def test_unknown_flag_is_rejected_by_argparse(self) -> None:
        cp = _run("status", "--nope-flag")
        self.assertNotEqual(cp.returncode, 0)
        self.assertIn("unrecognized arguments", cp.stderr.lower())

    def test_status_json_outside_repository(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            cp = _run("status", ".", "--json", "--plain", cwd=tmp)
            events = Path(tmp) / "dsynclog" / "events.jsonl"
            self.assertTrue(events.exists())
            rows = [json.loads(x) for x in
                    events.read_text(encoding="utf-8").splitlines()]
        self.assertEqual(cp.returncode, 0, cp.stderr)
        payload = json.loads(cp.stdout)
        self.assertEqual(payload["state"]["existence"]["id"], "E8")
        self.assertEqual(payload["state"]["sync"]["id"], "N/A")
        done = [r for r in rows if r["event_type"] == "detect_complete"]
        self.assertEqual(len(done), 1)
        self.assertTrue(done[0]["run_id"])

    def test_doctor_exits_non_zero_on_critical_state(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            cp = _run("doctor", ".", "--json", "--plain", cwd=tmp)
        self.assertEqual(cp.returncode, 1, cp.stderr)
        payload = json.loads(cp.stdout)
        self.assertEqual([f["scenario_id"] for f in payload["fixes"]],
                         ["E8"])

    def test_fix_dry_run_in_ahead_repo(self) -> None:
        fx = GitFixture()
        try:
            work, _, _ = fx.dual_remote_repo()
            fx.commit(work, "a.txt", "1\n")
            cp = _run("fix", str(work), "--dry-run", "--json", "--plain")
            self.assertEqual(cp.returncode, 0, cp.stderr)
            payload = json.loads(cp.stdout)
            self.assertTrue(payload["dry_run"])
            self.assertEqual([f["scenario_id"] for f in payload["applied"]],
                             ["S2"])
            before = fx.run(["rev-parse", "refs/remotes/origin/main"],
                            cwd=work).stdout
            cp = _run("status", str(work), "--json", "--no-fetch")
            self.assertEqual(json.loads(cp.stdout)["state"]["sync"]["id"],
                             "S2")
            after = fx.run(["rev-parse", "refs/remotes/origin/main"],
                           cwd=work).stdout
            self.assertEqual(before, after)
        finally:
            fx.close()


if __name__ == "__main__":
    unittest.main()
