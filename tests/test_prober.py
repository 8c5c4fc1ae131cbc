"""Tests for remote probing and the concurrent fetch phase."""
from __future__ import annotations

from unittest.mock import Mock
import threading
import unittest
import time

from dualsync.error_model import AuthError, ExecError, GitTimeoutError
from dualsync.prober import RemoteProber
from dualsync.state import ExistenceState
from dualsync.config import Settings


def _existence(core: bool = True, hub: bool = True) -> ExistenceState:
    return ExistenceState(id="E1", local_exists=True, core_exists=True,
                          hub_exists=True, core_reachable=core,
                          hub_reachable=hub, core_remote="origin",
                          hub_remote="github")


def _git() -> Mock:
    git = Mock()
    git.settings = Settings()
    return git


class ExistenceProbeTests(unittest.TestCase):
    def test_unreachable_remote_stays_configured(self) -> None:
        git = _git()
        git.local_exists.return_value = True
        git.remote_url.side_effect = lambda r: f"ssh://host/{r}.git"

        def can_reach(remote: str) -> bool:
            if remote == "github": raise GitTimeoutError("slow")
            return True
        git.can_reach.side_effect = can_reach
        state = RemoteProber(git).detect_existence()
        self.assertEqual(state.id, "E1")
        self.assertTrue(state.core_reachable)
        self.assertFalse(state.hub_reachable)
        self.assertEqual(state.hub_url, "ssh://host/github.git")

    def test_auth_refusal_is_unreachable(self) -> None:
        git = _git()
        git.local_exists.return_value = True
        git.remote_url.return_value = "https://host/r.git"
        git.can_reach.side_effect = AuthError("denied")
        state = RemoteProber(git).detect_existence()
        self.assertFalse(state.core_reachable or state.hub_reachable)

    def test_missing_remote_config(self) -> None:
        git = _git()
        git.local_exists.return_value = True
        git.remote_url.side_effect = lambda r: "" if r == "github" \
                                     else "/srv/core.git"
        git.can_reach.return_value = True
        state = RemoteProber(git).detect_existence()
        self.assertEqual(state.id, "E2")
        git.can_reach.assert_called_once_with("origin")


class FetchPhaseTests(unittest.TestCase):
    def test_fetches_run_concurrently(self) -> None:
        git = _git()
        active = 0
        peak = 0
        guard = threading.Lock()

        def fetch(remote: str) -> None:
            nonlocal active, peak
            with guard:
                active += 1
                peak = max(peak, active)
            time.sleep(0.05)
            with guard: active -= 1
        git.fetch.side_effect = fetch
        outcomes = RemoteProber(git).fetch_remotes(_existence())
        self.assertEqual(set(outcomes), {"origin", "github"})
        self.assertTrue(all(o.ok for o in outcomes.values()))
        self.assertEqual(peak, 2)

    def test_failures_are_reported_per_remote(self) -> None:
        git = _git()

        def fetch(remote: str) -> None:
            if remote == "origin": raise GitTimeoutError("slow")
            raise ExecError("broken pipe")
        git.fetch.side_effect = fetch
        outcomes = RemoteProber(git).fetch_remotes(_existence())
        self.assertEqual(outcomes["origin"].kind, "timeout")
        self.assertEqual(outcomes["github"].kind, "error")

    def test_unreachable_remotes_are_not_fetched(self) -> None:
        git = _git()
        outcomes = RemoteProber(git).fetch_remotes(
            _existence(core=True, hub=False))
        git.fetch.assert_called_once_with("origin")
        self.assertEqual(list(outcomes), ["origin"])


if __name__ == "__main__":
    unittest.main()
