"""
The five dimension detectors.

Detectors only read; each returns a state object whose ID comes
from `tables`. Sync and branch topology read remote-tracking
refs and must run after the fetch phase has been joined.
"""
from __future__ import annotations

# ======================= STANDARDS =======================
import logging as log

# ======================== LOCALS =========================
from .state import (
    BranchTopologyEntry,
    CorruptionState,
    ExistenceState,
    LargeObject,
    StateWarning,
    SyncState,
    WorkingTreeState,
    pair_status,
)
from .gitutils import GitClient
from . import tables


logger = log.getLogger("dualsync.detectors")


def detect_working_tree(git: GitClient) -> WorkingTreeState:
    entries  = git.status_entries()
    detached = git.is_detached_head()
    shallow  = git.is_shallow()
    manifest = git.submodule_manifest_paths()
    orphaned = tuple(sorted(p for p in git.gitlinks()
                            if p not in manifest))
    has_changes = bool(entries.staged or entries.unstaged
                       or entries.conflicted)
    return WorkingTreeState(
        id=tables.working_tree_id(bool(entries.staged),
                                  bool(entries.unstaged),
                                  bool(entries.conflicted)),
        clean=not has_changes,
        staged=entries.staged,
        unstaged=entries.unstaged,
        untracked=entries.untracked,
        conflicted=entries.conflicted,
        detached_head=detached,
        shallow=shallow,
        orphaned_submodules=orphaned,
    )


def detect_corruption(git: GitClient, threshold: int,
                      detached: bool = False, shallow: bool = False,
                      scan_dangling: bool = False) -> CorruptionState:
    """
    Object-store integrity in one reachability walk.

    Ref tips are checked first so a broken ref does not abort
    the walk; the walk then starts from the healthy tips only.
    Large blobs are reported as hash + size without mapping them
    back to the commits that introduced them.
    """
    tips   = git.ref_tips()
    kinds  = git.batch_check(sorted(set(tips.values())))
    broken = tuple(sorted(ref for ref, sha in tips.items()
                          if kinds.get(sha, ("missing", 0))[0]
                          == "missing"))
    healthy = sorted({sha for ref, sha in tips.items()
                      if ref not in broken})
    scan    = git.scan_objects(healthy, threshold)
    large   = tuple(LargeObject(sha, size) for sha, size in scan.large)
    lfs     = bool(git.lfs_tracked_files())
    dangling = tuple(git.dangling_commits()) if scan_dangling else ()
    flags = {
        "missing_objects": bool(scan.missing),
        "broken_refs": bool(broken),
        "large_objects": bool(large),
        "dangling_commits": bool(dangling),
        "lfs_active": lfs,
        "detached_head": detached,
        "shallow": shallow,
    }
    return CorruptionState(
        id=tables.corruption_id(flags),
        large_objects=large,
        lfs_active=lfs,
        missing_objects=scan.missing,
        broken_refs=broken,
        dangling_commits=dangling,
        threshold_bytes=threshold,
    )


def _remote_tip(git: GitClient, present: bool, remote: str,
                branch: str) -> str:
    if not present: return ""
    return git.resolve(f"refs/remotes/{remote}/{branch}")


def detect_sync(git: GitClient, existence: ExistenceState,
                branch: str) -> tuple[SyncState, list[StateWarning]]:
    """
    Compare local, core and hub tips of `branch`.

    A remote whose tracking ref for `branch` is absent is left
    out of the comparison; with one remote left the result is
    a reduced two-way comparison marked `partial`.
    """
    warnings: list[StateWarning] = []
    core, hub = existence.core_remote, existence.hub_remote
    local_tip = git.resolve(f"refs/heads/{branch}") if branch else ""
    core_tip  = _remote_tip(git, existence.core_exists, core, branch)
    hub_tip   = _remote_tip(git, existence.hub_exists, hub, branch)

    for present, tip, remote in ((existence.core_exists, core_tip, core),
                                 (existence.hub_exists, hub_tip, hub)):
        if present and branch and not tip:
            warnings.append(StateWarning(
                "W_REMOTE_BRANCH_MISSING",
                f"{remote} has no branch {branch!r}",
                dimension="sync", remote=remote))

    if not local_tip:
        warnings.append(StateWarning(
            "W_LOCAL_BRANCH_MISSING",
            f"local branch {branch!r} not found" if branch
            else "default branch could not be resolved",
            dimension="sync"))
        return SyncState(id=tables.S_UNKNOWN, branch=branch,
                         core_tip=core_tip, hub_tip=hub_tip), warnings

    if core_tip and hub_tip:
        lc = git.ahead_behind(local_tip, core_tip)
        lh = git.ahead_behind(local_tip, hub_tip)
        ch = git.ahead_behind(core_tip, hub_tip)
        statuses = (pair_status(*lc), pair_status(*lh), pair_status(*ch))
        return SyncState(
            id=tables.sync_id(*statuses),
            branch=branch,
            local_core=statuses[0],
            local_hub=statuses[1],
            core_hub=statuses[2],
            local_ahead_core=lc[0], local_behind_core=lc[1],
            local_ahead_hub=lh[0], local_behind_hub=lh[1],
            core_ahead_hub=ch[0], core_behind_hub=ch[1],
            local_tip=local_tip, core_tip=core_tip, hub_tip=hub_tip,
        ), warnings

    if core_tip:
        counts = git.ahead_behind(local_tip, core_tip)
        status = pair_status(*counts)
        return SyncState(
            id=tables.partial_sync_id(status),
            branch=branch,
            local_core=status,
            local_ahead_core=counts[0], local_behind_core=counts[1],
            local_tip=local_tip, core_tip=core_tip,
            partial=True, compared_remote=core,
        ), warnings

    if hub_tip:
        counts = git.ahead_behind(local_tip, hub_tip)
        status = pair_status(*counts)
        return SyncState(
            id=tables.partial_sync_id(status),
            branch=branch,
            local_hub=status,
            local_ahead_hub=counts[0], local_behind_hub=counts[1],
            local_tip=local_tip, hub_tip=hub_tip,
            partial=True, compared_remote=hub,
        ), warnings

    warnings.append(StateWarning(
        "W_NO_REMOTE_TO_COMPARE",
        "no remote has this branch; sync cannot be compared",
        dimension="sync"))
    return SyncState(id=tables.S_UNKNOWN, branch=branch,
                     local_tip=local_tip), warnings


def detect_branches(git: GitClient, existence: ExistenceState,
                    max_branches: int
                   ) -> tuple[tuple[BranchTopologyEntry, ...], bool]:
    """
    Presence triple per branch name from cached refs only.

    Returns (entries, truncated); names are sorted and capped
    at `max_branches`.
    """
    remotes = [r for r, present in ((existence.core_remote,
                                     existence.core_exists),
                                    (existence.hub_remote,
                                     existence.hub_exists)) if present]
    refs  = git.branch_refs(remotes)
    local = refs.get("local", set())
    core  = refs.get(existence.core_remote, set()) \
            if existence.core_exists else set()
    hub   = refs.get(existence.hub_remote, set()) \
            if existence.hub_exists else set()
    names = sorted(local | core | hub)
    truncated = len(names) > max_branches
    entries = tuple(
        BranchTopologyEntry(
            id=tables.branch_id(n in local, n in core, n in hub),
            name=n, local=n in local, core=n in core, hub=n in hub)
        for n in names[:max_branches])
    return entries, truncated
