"""
Map a `RepositoryState` to a priority-ordered list of fixes.

Priority bands (lower runs first):
  10-19 existence, 20-29 working tree, 30-39 sync,
  40-49 branch topology, 50-59 warnings and integrity.
Auto-fixability is decided last by `remediation_policy`.
"""
from __future__ import annotations

# ======================= STANDARDS =======================
from dataclasses import dataclass, replace

# ======================== LOCALS =========================
from .operations import (
    CompositeOperation,
    FetchOperation,
    Operation,
    PushOperation,
    ResetOperation,
)
from .state import AHEAD, SYNCED, RepositoryState
from .remediation_policy import can_autofix
from . import tables


EXISTENCE_BAND = 10
WORKTREE_BAND  = 20
SYNC_BAND      = 30
BRANCH_BAND    = 40
WARNING_BAND   = 50


@dataclass(frozen=True)
class Fix:
    scenario_id: str
    description: str
    priority: int
    category: str
    operation: Operation | None = None
    auto_fixable: bool = False
    command: str = ""
    reason: str = ""
    # configured remotes left out of the push because they are unreachable
    deferred: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, object]:
        return {
            "scenario_id": self.scenario_id,
            "description": self.description,
            "priority": self.priority,
            "category": self.category,
            "auto_fixable": self.auto_fixable,
            "command": self.command,
            "reason": self.reason,
            "deferred": list(self.deferred),
            "operation": self.operation.as_dict()
                         if self.operation else None,
        }


def _fix(scenario_id: str, description: str, band: int, offset: int,
         category: str, operation: Operation | None = None,
         command: str = "", deferred: tuple[str, ...] = ()) -> Fix:
    if deferred and operation is not None:
        description = (f"{description}; {' and '.join(deferred)} "
                       "unreachable, flagged for retry")
    return Fix(
        scenario_id=scenario_id,
        description=description,
        priority=band + min(offset, 9),
        category=category,
        operation=operation,
        auto_fixable=operation is not None,
        command=command or (operation.command() if operation else ""),
        deferred=deferred if operation is not None else (),
    )


def _severity_offset(scenario_id: str) -> int:
    found = tables.scenario(scenario_id)
    if found is None: return 9
    return {"critical": 0, "error": 1, "warning": 3,
            "info": 5}.get(found.severity, 9)


def _manual(scenario_id: str, band: int, category: str,
            extra: str = "") -> Fix:
    found = tables.scenario(scenario_id)
    steps = "; ".join(found.manual_steps) if found else ""
    text  = found.description if found else "state could not be classified"
    if extra: text = f"{text} {extra}"
    return _fix(scenario_id, text, band, _severity_offset(scenario_id),
                category, command=steps)


# ------------------------------------------------------------- dimensions
def _existence_fixes(state: RepositoryState) -> list[Fix]:
    eid = state.existence.id
    if eid in ("E1", tables.NOT_APPLICABLE): return []
    return [_manual(eid, EXISTENCE_BAND, "existence")]


def _worktree_fixes(state: RepositoryState) -> list[Fix]:
    wid = state.working_tree.id
    if wid in ("W1", tables.NOT_APPLICABLE): return []
    return [_manual(wid, WORKTREE_BAND, "working_tree")]


def _pull(remote: str, branch: str) -> CompositeOperation:
    return CompositeOperation(
        steps=(FetchOperation(remote),
               ResetOperation(f"refs/remotes/{remote}/{branch}", branch)),
        label=f"fast-forward {branch} from {remote}")


def _dual_push(remotes: list[str], branch: str) -> Operation:
    if len(remotes) == 1: return PushOperation(remotes[0], branch)
    return CompositeOperation(
        steps=tuple(PushOperation(r, branch) for r in remotes),
        stop_on_error=False,
        label=f"push {branch} to {' and '.join(remotes)}")


def _reachable(state: RepositoryState, remote: str) -> bool:
    ex = state.existence
    if remote == ex.core_remote: return ex.core_exists and ex.core_reachable
    if remote == ex.hub_remote: return ex.hub_exists and ex.hub_reachable
    return False


def _deferred(state: RepositoryState, *remotes: str) -> tuple[str, ...]:
    """Configured remotes among `remotes` that cannot be pushed to now."""
    ex = state.existence
    configured = {ex.core_remote: ex.core_exists,
                  ex.hub_remote: ex.hub_exists}
    return tuple(r for r in remotes
                 if configured.get(r) and not _reachable(state, r))


def _sync_fixes(state: RepositoryState) -> list[Fix]:
    sync = state.sync
    sid, b = sync.id, sync.branch
    core, hub = state.existence.core_remote, state.existence.hub_remote
    if sid in ("S1", tables.NOT_APPLICABLE): return []
    if sid == tables.S_UNKNOWN:
        return [_fix(sid, "sync state could not be determined; "
                     "inspect warnings", SYNC_BAND, 9, "sync")]

    op: Operation | None = None
    text = ""
    deferred: tuple[str, ...] = ()
    if sync.partial:
        remote = sync.compared_remote
        if sid == "S2":
            deferred = _deferred(state, hub if remote == core else core)
            op, text = PushOperation(remote, b), \
                       f"push {sync.local_ahead_core + sync.local_ahead_hub}"\
                       f" commit(s) to {remote}"
        elif sid == "S3":
            op, text = _pull(remote, b), f"fast-forward from {remote}"
    elif sid == "S2":
        targets  = [r for r in (core, hub) if _reachable(state, r)]
        deferred = _deferred(state, core, hub)
        if targets:
            op, text = _dual_push(targets, b), \
                       f"push {sync.local_ahead_core} commit(s) to " \
                       + " and ".join(targets)
    elif sid == "S3":
        # pull from the remote that contains the other
        source = core if sync.core_hub in (SYNCED, AHEAD) else hub
        op, text = _pull(source, b), f"fast-forward from {source}"
    elif sid == "S4":
        op, text = PushOperation(hub, b), f"push {b} to {hub}"
    elif sid == "S5":
        op, text = PushOperation(core, b), f"push {b} to {core}"
    elif sid == "S6":
        op, text = _pull(hub, b), f"fast-forward from {hub}"
    elif sid == "S7":
        op, text = _pull(core, b), f"fast-forward from {core}"
    elif sid == "S8":
        op = CompositeOperation(
            steps=(*_pull(hub, b).steps, PushOperation(core, b)))
        text = f"fast-forward from {hub}, then push to {core}"
    elif sid == "S9":
        op = CompositeOperation(
            steps=(*_pull(core, b).steps, PushOperation(hub, b)))
        text = f"fast-forward from {core}, then push to {hub}"

    if op is None:
        merge = _manual(sid, SYNC_BAND, "sync",
                        extra="Manual merge required.")
        return [replace(merge, priority=SYNC_BAND)]
    return [_fix(sid, text, SYNC_BAND, _severity_offset(sid), "sync", op,
                 deferred=deferred)]


def _branch_fixes(state: RepositoryState) -> list[Fix]:
    core, hub = state.existence.core_remote, state.existence.hub_remote
    fixes = []
    for entry in state.branches:
        bid, name = entry.id, entry.name
        if bid == "B1": continue
        op: Operation | None = None
        deferred: tuple[str, ...] = ()
        if bid == "B2" and _reachable(state, hub):
            op = PushOperation(hub, name)
        elif bid == "B3" and _reachable(state, core):
            op = PushOperation(core, name)
        elif bid == "B5":
            targets  = [r for r in (core, hub) if _reachable(state, r)]
            deferred = _deferred(state, core, hub)
            if targets: op = _dual_push(targets, name)
        if op is not None:
            fixes.append(_fix(bid, f"{op.describe()}", BRANCH_BAND,
                              _severity_offset(bid), "branch", op,
                              deferred=deferred))
            continue
        found = tables.scenario(bid)
        label = found.name if found else "unknown branch state"
        fixes.append(_fix(bid, f"{name}: {label}", BRANCH_BAND,
                          _severity_offset(bid), "branch",
                          command=f"git switch {name}"
                          if bid in ("B4", "B6", "B7") else ""))
    return fixes


def _integrity_fixes(state: RepositoryState) -> list[Fix]:
    cid = state.corruption.id
    if cid in ("C1", tables.NOT_APPLICABLE): return []
    if cid == "C4":
        source = next((r for r in (state.existence.core_remote,
                                   state.existence.hub_remote)
                       if _reachable(state, r)), "")
        if source:
            op = FetchOperation(source)
            return [_fix(cid, f"missing objects: refetch from {source} "
                         "and run git fsck", WARNING_BAND, 0,
                         "corruption", op)]
    return [_manual(cid, WARNING_BAND, "corruption")]


def _warning_fixes(state: RepositoryState) -> list[Fix]:
    fixes = []
    recorded = dict(state.retry_branches)
    for remote in state.pending_retry:
        branch = recorded.get(remote) \
                 or state.sync.branch or state.default_branch
        op = PushOperation(remote, branch) if branch \
             and _reachable(state, remote) else None
        fixes.append(_fix("W_NEEDS_RETRY",
                          f"retry the unfinished push to {remote}",
                          WARNING_BAND, 1, "warning", op,
                          command=f"git push {remote} {branch}"))
    for path in state.working_tree.orphaned_submodules:
        fixes.append(_fix("W_ORPHANED_SUBMODULE",
                          f"{path} is a gitlink with no .gitmodules entry",
                          WARNING_BAND, 4, "warning",
                          command=f"git rm --cached {path}"))
    if state.stale:
        fixes.append(_fix("W_STALE_REMOTE_DATA",
                          "remote data may be stale; rerun once the "
                          "network is back", WARNING_BAND, 6, "warning"))
    return fixes


def _apply_policy(fix: Fix, state: RepositoryState) -> Fix:
    touches_sync_branch = any(
        getattr(step, "branch", "") == state.sync.branch
        for step in _flatten(fix.operation))
    diverged = state.sync.diverged and (fix.category == "sync"
                                        or touches_sync_branch)
    allowed, reason = can_autofix(fix.scenario_id, diverged=diverged)
    if fix.operation is None:
        return replace(fix, auto_fixable=False,
                       reason=reason or "no automatic operation")
    if allowed: return fix
    return replace(fix, auto_fixable=False, reason=reason)


def _flatten(op: Operation | None) -> list[Operation]:
    if op is None: return []
    if isinstance(op, CompositeOperation):
        return [leaf for step in op.steps for leaf in _flatten(step)]
    return [op]


def suggest_fixes(state: RepositoryState) -> list[Fix]:
    """All fixes for `state`, sorted by (priority, scenario_id)."""
    fixes = [
        *_existence_fixes(state),
        *_worktree_fixes(state),
        *_sync_fixes(state),
        *_branch_fixes(state),
        *_integrity_fixes(state),
        *_warning_fixes(state),
    ]
    fixes = [_apply_policy(f, state) for f in fixes]
    return sorted(fixes, key=lambda f: (f.priority, f.scenario_id,
                                        f.description))
