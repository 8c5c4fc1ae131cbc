"""Policy matrix deciding which scenarios may be auto-fixed."""
from dataclasses import dataclass

from . import tables


@dataclass(frozen=True)
class RemediationRule:
    """Execution policy for the fixes of one scenario."""
    diverged: bool
    rewrites_history: bool
    allow_autofix: bool


_SAFE    = RemediationRule(diverged=False, rewrites_history=False,
                           allow_autofix=True)
_MANUAL  = RemediationRule(diverged=False, rewrites_history=False,
                           allow_autofix=False)
_SPLIT   = RemediationRule(diverged=True, rewrites_history=False,
                           allow_autofix=False)
_REWRITE = RemediationRule(diverged=False, rewrites_history=True,
                           allow_autofix=False)


REMEDIATION_POLICY: dict[str, RemediationRule] = {
    # sync
    "S2": _SAFE,
    "S3": _SAFE,
    "S4": _SAFE,
    "S5": _SAFE,
    "S6": _SAFE,
    "S7": _SAFE,
    "S8": _MANUAL,
    "S9": _MANUAL,
    "S10": _SPLIT,
    "S11": _SPLIT,
    "S12": _SPLIT,
    "S13": _SPLIT,
    # branches
    "B2": _SAFE,
    "B3": _SAFE,
    "B5": _SAFE,
    # corruption findings whose remedies rewrite or prune history
    "C2": _REWRITE,
    "C3": _REWRITE,
    "C4": _MANUAL,
    "C5": _REWRITE,
    # pending retries re-send an already validated push
    "W_NEEDS_RETRY": _SAFE,
}


def rule_for(scenario_id: str) -> RemediationRule:
    """Rules default to manual; sentinels are never auto-fixable."""
    if scenario_id in tables.SENTINELS: return _MANUAL
    return REMEDIATION_POLICY.get(scenario_id, _MANUAL)


def can_autofix(scenario_id: str, diverged: bool = False
               ) -> tuple[bool, str]:
    """
    Whether fixes for `scenario_id` may run unattended.

    `diverged` reports divergence observed on the snapshot; it
    vetoes auto-fix regardless of the scenario's own rule.
    """
    rule = rule_for(scenario_id)
    if diverged or rule.diverged:
        return False, "diverged history needs a manual merge"
    if rule.rewrites_history:
        return False, "remedy rewrites history"
    if not rule.allow_autofix:
        return False, "scenario requires manual review"
    return True, ""
