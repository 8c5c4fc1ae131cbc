"""Tests for remediation policy matrix behavior."""


import unittest

from dualsync.remediation_policy import can_autofix, rule_for
from dualsync import tables


class RemediationPolicyTests(unittest.TestCase):
    def test_fast_forward_scenarios_allowed(self) -> None:
        for sid in ("S2", "S3", "S4", "S5", "S6", "S7", "B2", "B5"):
            with self.subTest(sid=sid):
                self.assertEqual(can_autofix(sid), (True, ""))

    def test_divergence_vetoes_everything(self) -> None:
        allowed, reason = can_autofix("S2", diverged=True)
        self.assertFalse(allowed)
        self.assertIn("diverged", reason)
        for sid in ("S10", "S11", "S12", "S13"):
            self.assertFalse(can_autofix(sid)[0])

    def test_history_rewrites_are_manual(self) -> None:
        allowed, reason = can_autofix("C3")
        self.assertFalse(allowed)
        self.assertIn("rewrites history", reason)

    def test_chained_sync_is_manual(self) -> None:
        self.assertFalse(can_autofix("S8")[0])
        self.assertFalse(can_autofix("S9")[0])

    def test_unknown_and_sentinels_default_to_manual(self) -> None:
        for sid in ("nope", *tables.SENTINELS):
            with self.subTest(sid=sid):
                allowed, reason = can_autofix(sid)
                self.assertFalse(allowed)
                self.assertIn("manual", reason)
        self.assertFalse(rule_for(tables.S_UNKNOWN).allow_autofix)


if __name__ == "__main__":
    unittest.main()
