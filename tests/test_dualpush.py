"""Tests for independent dual push and needs-retry markers."""
from __future__ import annotations

from unittest.mock import Mock
import unittest

from dualsync.dualpush import dual_push, retry_pending
from dualsync.retry_store import GitConfigRetryStore, MemoryRetryStore
from dualsync.error_model import ExecError
from dualsync.gitutils import GitClient
from dualsync.config import Settings
from tests._gitfixture import GitFixture
from tests._snapshots import ahead_state


def _git(failing: set[str]) -> Mock:
    git = Mock()
    git.ref_exists.return_value = True

    def push(remote: str, branch: str) -> None:
        if remote in failing:
            raise ExecError(f"push to {remote} rejected",
                            code="DSY_GIT_PROTECTED_BRANCH")
    git.push.side_effect = push
    return git


class DualPushTests(unittest.TestCase):
    def test_one_remote_fails_other_applied(self) -> None:
        store = MemoryRetryStore()
        git = _git({"github"})
        result = dual_push(git, ahead_state(), "main", store)
        self.assertEqual(result.applied, ("origin",))
        self.assertEqual(result.pending_retry, ("github",))
        self.assertTrue(result.partial)
        self.assertFalse(result.ok)
        self.assertTrue(store.get("github"))
        self.assertFalse(store.get("origin"))

    def test_retry_pushes_only_flagged_remote(self) -> None:
        store = MemoryRetryStore({"github": True})
        git = _git(set())
        result = retry_pending(git, ahead_state(), "main", store)
        git.push.assert_called_once_with("github", "main")
        self.assertEqual(result.applied, ("github",))
        self.assertTrue(result.ok)
        self.assertEqual(store.pending(), ())

    def test_retry_without_flags_is_a_no_op(self) -> None:
        git = _git(set())
        result = retry_pending(git, ahead_state(), "main",
                               MemoryRetryStore())
        git.push.assert_not_called()
        self.assertEqual(result.applied, ())
        self.assertTrue(result.ok)

    def test_both_fail(self) -> None:
        store = MemoryRetryStore()
        result = dual_push(_git({"origin", "github"}), ahead_state(),
                           "main", store)
        self.assertEqual(result.applied, ())
        self.assertFalse(result.partial)
        self.assertEqual(store.pending(), ("github", "origin"))

    def test_retry_resends_the_recorded_branch(self) -> None:
        store = MemoryRetryStore({"github": "topic"})
        git = _git(set())
        result = retry_pending(git, ahead_state(), "main", store)
        git.push.assert_called_once_with("github", "topic")
        self.assertEqual(result.applied, ("github",))
        self.assertEqual(store.pending(), ())


class RetryMarkerTests(unittest.TestCase):
    def test_clearing_for_another_branch_keeps_marker(self) -> None:
        store = MemoryRetryStore()
        store.set("github", True, "main")
        store.set("github", False, "topic")
        self.assertEqual(store.pending(), ("github",))
        self.assertEqual(store.branch_of("github"), "main")
        store.set("github", False, "main")
        self.assertEqual(store.pending(), ())

    def test_marker_without_branch_clears_on_any_push(self) -> None:
        store = MemoryRetryStore({"github": True})
        self.assertEqual(store.branch_of("github"), "")
        store.set("github", False, "topic")
        self.assertFalse(store.get("github"))


class GitConfigRetryStoreTests(unittest.TestCase):
    def test_markers_survive_in_git_config(self) -> None:
        fx = GitFixture()
        try:
            work, _, _ = fx.dual_remote_repo()
            git = GitClient.for_path(work, Settings())
            store = GitConfigRetryStore(git)
            self.assertEqual(store.pending(), ())
            store.set("github", True)
            again = GitConfigRetryStore(GitClient.for_path(work,
                                                           Settings()))
            self.assertTrue(again.get("github"))
            self.assertEqual(again.pending(), ("github",))
            cp = fx.run(["config", "--get", "dualsync.github.needs-retry"],
                        cwd=work)
            self.assertEqual(cp.stdout.strip(), "true")
            store.set("github", False)
            store.set("github", False)
            self.assertEqual(store.pending(), ())
        finally:
            fx.close()

    def test_marker_records_its_branch(self) -> None:
        fx = GitFixture()
        try:
            work, _, _ = fx.dual_remote_repo()
            store = GitConfigRetryStore(GitClient.for_path(work, Settings()))
            store.set("github", True, "main")
            cp = fx.run(["config", "--get", "dualsync.github.needs-retry"],
                        cwd=work)
            self.assertEqual(cp.stdout.strip(), "main")
            store.set("github", False, "topic")
            self.assertEqual(store.branch_of("github"), "main")
            store.set("github", False, "main")
            self.assertEqual(store.pending(), ())
        finally:
            fx.close()


if __name__ == "__main__":
    unittest.main()
