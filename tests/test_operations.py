"""Tests for validated operations and their rollback rules."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from unittest.mock import Mock
import unittest

from dualsync.error_model import (
    CompositeError,
    ExecError,
    RollbackRefused,
    UnknownStateError,
    ValidationError,
)
from dualsync.operations import (
    CompositeOperation,
    FetchOperation,
    Operation,
    PushOperation,
    ResetOperation,
    iter_pushes,
)
from dualsync.state import BEHIND, DIVERGED, SYNCED, WorkingTreeState
from dualsync.gitutils import GitClient
from dualsync.config import Settings
from dualsync import tables
from tests._gitfixture import GitFixture
from tests._snapshots import ahead_state, make_state


@dataclass
class _Step(Operation):
    name: str
    fail: bool = False
    calls: list = field(default_factory=list)
    kind: str = field(default="fake", init=False)

    def validate(self, state, git) -> None:
        if self.fail: raise ValidationError(f"{self.name} invalid")

    def execute(self, git) -> None:
        self.calls.append(self.name)
        if self.fail: raise ExecError(f"{self.name} failed")

    def describe(self) -> str: return self.name

    def rollback(self, git) -> None: return None


class PushValidationTests(unittest.TestCase):
    def test_push_allowed_when_ahead_and_clean(self) -> None:
        git = Mock()
        git.ref_exists.return_value = True
        PushOperation("origin", "main").validate(ahead_state(), git)
        git.ref_exists.assert_called_once_with("refs/heads/main")

    def test_push_refused_when_behind_or_diverged(self) -> None:
        for status in (BEHIND, DIVERGED):
            with self.subTest(status=status):
                state = make_state("S13", status, SYNCED, SYNCED)
                with self.assertRaises(ValidationError) as ctx:
                    PushOperation("origin", "main").validate(state, Mock())
                self.assertEqual(ctx.exception.code,
                                 "DSY_VAL_NOT_FAST_FORWARD")

    def test_push_refused_on_dirty_tree(self) -> None:
        state = ahead_state(working_tree=WorkingTreeState(
            id="W3", clean=False, unstaged=("a.py",)))
        with self.assertRaises(ValidationError) as ctx:
            PushOperation("github", "main").validate(state, Mock())
        self.assertEqual(ctx.exception.code, "DSY_VAL_DIRTY_WORKTREE")

    def test_push_refused_when_remote_unreachable(self) -> None:
        state = ahead_state()
        state = replace(state, existence=replace(state.existence,
                                                 hub_reachable=False))
        with self.assertRaises(ValidationError) as ctx:
            PushOperation("github", "main").validate(state, Mock())
        self.assertEqual(ctx.exception.code, "DSY_VAL_REMOTE_UNAVAILABLE")

    def test_push_refused_when_sync_state_unknown(self) -> None:
        with self.assertRaises(UnknownStateError) as ctx:
            PushOperation("origin", "main").validate(
                make_state(tables.S_UNKNOWN), Mock())
        self.assertIsInstance(ctx.exception, ValidationError)
        self.assertEqual(ctx.exception.code, "DSY_STATE_UNKNOWN")

    def test_unknown_remote_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            FetchOperation("mirror").validate(make_state(), Mock())

    def test_push_uses_explicit_refspec(self) -> None:
        git = Mock()
        PushOperation("github", "main").execute(git)
        git.push.assert_called_once_with("github", "main")


class RollbackTests(unittest.TestCase):
    def test_only_fetch_rolls_back(self) -> None:
        git = Mock()
        self.assertIsNone(FetchOperation("origin").rollback(git))
        for op in (PushOperation("origin", "main"),
                   ResetOperation("refs/remotes/origin/main", "main"),
                   CompositeOperation((FetchOperation("origin"),))):
            with self.subTest(op=op.describe()):
                with self.assertRaises(RollbackRefused):
                    op.rollback(git)
        self.assertFalse(git.method_calls)

    def test_composite_refusal_mentions_manual_intervention(self) -> None:
        with self.assertRaises(RollbackRefused) as ctx:
            CompositeOperation((FetchOperation("origin"),)).rollback(Mock())
        self.assertIn("manual intervention", str(ctx.exception))


class CompositeTests(unittest.TestCase):
    def test_stop_on_error_skips_later_steps(self) -> None:
        a, b, c = _Step("a"), _Step("b", fail=True), _Step("c")
        op = CompositeOperation((a, b, c))
        with self.assertRaises(CompositeError) as ctx:
            op.execute(Mock())
        self.assertEqual(a.calls, ["a"])
        self.assertEqual(c.calls, [])
        self.assertEqual(ctx.exception.applied, (a,))
        self.assertTrue(ctx.exception.partial)
        self.assertEqual(ctx.exception.code, "DSY_OP_COMPOSITE_FAIL")

    def test_continue_on_error_runs_every_step(self) -> None:
        a, b = _Step("a", fail=True), _Step("b")
        op = CompositeOperation((a, b), stop_on_error=False)
        with self.assertRaises(CompositeError) as ctx:
            op.execute(Mock())
        self.assertEqual(b.calls, ["b"])
        self.assertEqual(ctx.exception.code, "DSY_OP_PARTIAL_PUSH")
        self.assertEqual([s for s, _ in ctx.exception.failures], [a])

    def test_validate_checks_every_step(self) -> None:
        op = CompositeOperation((_Step("a"), _Step("b", fail=True)))
        with self.assertRaises(ValidationError):
            op.validate(make_state(), Mock())
        with self.assertRaises(ValidationError):
            CompositeOperation(()).validate(make_state(), Mock())

    def test_iter_pushes_is_depth_first(self) -> None:
        inner = CompositeOperation((PushOperation("origin", "main"),
                                    PushOperation("github", "main")))
        op = CompositeOperation((FetchOperation("origin"), inner))
        self.assertEqual([p.remote for p in iter_pushes(op)],
                         ["origin", "github"])
        self.assertEqual(iter_pushes(None), [])


class ResetIntegrationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.fx = GitFixture()
        self.work, self.core, self.hub = self.fx.dual_remote_repo()
        self.git = GitClient.for_path(self.work, Settings())

    def tearDown(self) -> None:
        self.fx.close()

    def test_reset_refuses_when_local_has_unique_commits(self) -> None:
        other = self.fx.other_clone(self.core, self.hub)
        self.fx.commit(other, "remote.txt", "r\n")
        self.fx.push(other, "origin")
        self.fx.commit(self.work, "a.txt", "1\n")
        before = self.fx.commit(self.work, "b.txt", "2\n")
        self.git.fetch("origin")

        op = ResetOperation("refs/remotes/origin/main", "main")
        with self.assertRaises(ValidationError) as ctx:
            op.validate(make_state(), self.git)
        self.assertEqual(ctx.exception.code, "DSY_VAL_NOT_FAST_FORWARD")
        with self.assertRaises(ValidationError):
            op.execute(self.git)
        self.assertEqual(self.fx.head(self.work), before)

    def test_reset_fast_forwards(self) -> None:
        other = self.fx.other_clone(self.core, self.hub)
        target = self.fx.commit(other, "remote.txt", "r\n")
        self.fx.push(other, "origin")
        self.git.fetch("origin")

        op = ResetOperation("refs/remotes/origin/main", "main")
        op.validate(make_state(), self.git)
        op.execute(self.git)
        self.assertEqual(self.fx.head(self.work), target)

    def test_reset_refuses_dirty_tree_found_live(self) -> None:
        self.fx.write_file(self.work, "README.md", "edited\n")
        op = ResetOperation("refs/remotes/origin/main", "main")
        with self.assertRaises(ValidationError) as ctx:
            op.validate(make_state(), self.git)
        self.assertEqual(ctx.exception.code, "DSY_VAL_DIRTY_WORKTREE")

    def test_reset_refuses_other_branch(self) -> None:
        self.fx.run(["switch", "-c", "topic"], cwd=self.work)
        op = ResetOperation("refs/remotes/origin/main", "main")
        with self.assertRaises(ValidationError):
            op.validate(make_state(), self.git)


if __name__ == "__main__":
    unittest.main()
