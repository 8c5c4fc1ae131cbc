"""Tests for fix suggestion, ordering and auto-fix gating."""
from __future__ import annotations

from dataclasses import replace
import unittest

from dualsync.operations import CompositeOperation, PushOperation
from dualsync.state import (
    AHEAD,
    BEHIND,
    DIVERGED,
    SYNCED,
    BranchTopologyEntry,
    CorruptionState,
    WorkingTreeState,
)
from dualsync.suggester import SYNC_BAND, suggest_fixes
from dualsync import tables
from tests._snapshots import ahead_state, make_state


class SuggesterTests(unittest.TestCase):
    def test_in_sync_has_no_fixes(self) -> None:
        self.assertEqual(suggest_fixes(make_state()), [])

    def test_ahead_suggests_dual_push(self) -> None:
        fixes = suggest_fixes(ahead_state())
        self.assertEqual(len(fixes), 1)
        fix = fixes[0]
        self.assertEqual(fix.scenario_id, "S2")
        self.assertTrue(fix.auto_fixable)
        self.assertIsInstance(fix.operation, CompositeOperation)
        self.assertFalse(fix.operation.stop_on_error)
        self.assertEqual([s.remote for s in fix.operation.steps],
                         ["origin", "github"])

    def test_ahead_defers_unreachable_remote(self) -> None:
        fixes = suggest_fixes(make_state(
            "S2", AHEAD, AHEAD, SYNCED, hub_reachable=False))
        fix = fixes[0]
        self.assertEqual(fix.operation, PushOperation("origin", "main"))
        self.assertEqual(fix.deferred, ("github",))
        self.assertIn("flagged for retry", fix.description)
        self.assertEqual(fix.as_dict()["deferred"], ["github"])

    def test_unconfigured_remote_is_not_deferred(self) -> None:
        state = ahead_state()
        state = replace(state, existence=replace(
            state.existence, id="E2", hub_exists=False,
            hub_reachable=False))
        fix = suggest_fixes(state)[0]
        self.assertEqual(fix.operation, PushOperation("origin", "main"))
        self.assertEqual(fix.deferred, ())

    def test_local_only_branch_defers_unreachable_remote(self) -> None:
        state = make_state(
            hub_reachable=False,
            branches=(BranchTopologyEntry("B5", "topic", True, False,
                                          False),))
        fix = next(f for f in suggest_fixes(state)
                   if f.scenario_id == "B5")
        self.assertEqual(fix.operation, PushOperation("origin", "topic"))
        self.assertEqual(fix.deferred, ("github",))

    def test_retry_fix_resends_recorded_branch(self) -> None:
        state = make_state(pending_retry=("github",),
                           retry_branches=(("github", "topic"),))
        fix = next(f for f in suggest_fixes(state)
                   if f.scenario_id == "W_NEEDS_RETRY")
        self.assertEqual(fix.operation, PushOperation("github", "topic"))

    def test_hub_behind_pushes_hub_only(self) -> None:
        fix = suggest_fixes(make_state("S4", SYNCED, AHEAD, AHEAD))[0]
        self.assertEqual(fix.operation, PushOperation("github", "main"))
        self.assertTrue(fix.auto_fixable)

    def test_behind_pulls_from_remote_that_contains_other(self) -> None:
        fix = suggest_fixes(make_state("S3", BEHIND, BEHIND, BEHIND))[0]
        fetch, reset = fix.operation.steps
        self.assertEqual(fetch.remote, "github")
        self.assertEqual(reset.target, "refs/remotes/github/main")

    def test_diverged_is_manual_only(self) -> None:
        fixes = suggest_fixes(make_state("S13", DIVERGED, AHEAD, AHEAD))
        self.assertEqual(len(fixes), 1)
        fix = fixes[0]
        self.assertFalse(fix.auto_fixable)
        self.assertIsNone(fix.operation)
        self.assertIn("Manual merge required", fix.description)
        self.assertEqual(fix.priority, SYNC_BAND)

    def test_chained_sync_keeps_operation_but_is_manual(self) -> None:
        fix = suggest_fixes(make_state("S8", AHEAD, BEHIND, BEHIND))[0]
        self.assertIsInstance(fix.operation, CompositeOperation)
        self.assertFalse(fix.auto_fixable)
        self.assertIn("manual", fix.reason)

    def test_divergence_blocks_branch_push_on_sync_branch(self) -> None:
        state = make_state(
            "S10", SYNCED, DIVERGED, DIVERGED,
            branches=(BranchTopologyEntry("B5", "topic", True, False,
                                          False),
                      BranchTopologyEntry("B2", "main", True, True,
                                          False)))
        by_branch = {f.description: f for f in suggest_fixes(state)
                     if f.category == "branch"}
        topic = next(f for d, f in by_branch.items() if "topic" in d)
        main = next(f for d, f in by_branch.items() if "main" in d)
        self.assertTrue(topic.auto_fixable)
        self.assertFalse(main.auto_fixable)

    def test_unknown_sync_gets_investigation_fix(self) -> None:
        fix = suggest_fixes(make_state(tables.S_UNKNOWN))[0]
        self.assertEqual(fix.scenario_id, tables.S_UNKNOWN)
        self.assertFalse(fix.auto_fixable)

    def test_ordering_by_band(self) -> None:
        state = ahead_state(
            working_tree=WorkingTreeState(id="W3", clean=False,
                                          unstaged=("a.py",)),
            corruption=CorruptionState(id="C3"),
            branches=(BranchTopologyEntry("B5", "topic", True, False,
                                          False),),
            pending_retry=("github",),
        )
        fixes = suggest_fixes(state)
        ids = [f.scenario_id for f in fixes]
        self.assertEqual(ids[0], "W3")
        self.assertLess(ids.index("S2"), ids.index("B5"))
        self.assertLess(ids.index("B5"), ids.index("C3"))
        self.assertIn("W_NEEDS_RETRY", ids)
        priorities = [f.priority for f in fixes]
        self.assertEqual(priorities, sorted(priorities))
        c3 = fixes[ids.index("C3")]
        self.assertFalse(c3.auto_fixable)

    def test_missing_objects_refetch(self) -> None:
        fix = suggest_fixes(make_state(
            corruption=CorruptionState(id="C4")))[0]
        self.assertEqual(fix.operation.remote, "origin")
        self.assertFalse(fix.auto_fixable)

    def test_not_applicable_state(self) -> None:
        na = tables.NOT_APPLICABLE
        state = make_state(
            na, existence=replace(make_state().existence, id="E5",
                                  local_exists=False),
            working_tree=WorkingTreeState(id=na),
            corruption=CorruptionState(id=na))
        fixes = suggest_fixes(state)
        self.assertEqual([f.scenario_id for f in fixes], ["E5"])
        self.assertTrue(fixes[0].command)


if __name__ == "__main__":
    unittest.main()
