"""
Immutable snapshot types produced by `Classifier.detect()`.

Every type is a frozen dataclass; collections are tuples so
a snapshot can never be edited after construction.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field


SYNCED   = "synced"
AHEAD    = "ahead"
BEHIND   = "behind"
DIVERGED = "diverged"
UNKNOWN  = "unknown"

PAIR_STATUSES = (SYNCED, AHEAD, BEHIND, DIVERGED, UNKNOWN)


def pair_status(ahead: int, behind: int) -> str:
    """Status of A relative to B from (only-in-A, only-in-B)."""
    if ahead and behind: return DIVERGED
    if ahead: return AHEAD
    if behind: return BEHIND
    return SYNCED


@dataclass(frozen=True)
class ExistenceState:
    id: str
    local_exists: bool
    core_exists: bool
    hub_exists: bool
    core_reachable: bool = False
    hub_reachable: bool = False
    core_remote: str = ""
    hub_remote: str = ""
    core_url: str = ""
    hub_url: str = ""

    def as_dict(self) -> dict[str, object]: return asdict(self)


@dataclass(frozen=True)
class WorkingTreeState:
    id: str
    clean: bool = True
    staged: tuple[str, ...] = ()
    unstaged: tuple[str, ...] = ()
    untracked: tuple[str, ...] = ()
    conflicted: tuple[str, ...] = ()
    detached_head: bool = False
    shallow: bool = False
    orphaned_submodules: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, object]: return asdict(self)


@dataclass(frozen=True)
class SyncState:
    id: str
    branch: str = ""
    local_core: str = UNKNOWN
    local_hub: str = UNKNOWN
    core_hub: str = UNKNOWN
    local_ahead_core: int = 0
    local_behind_core: int = 0
    local_ahead_hub: int = 0
    local_behind_hub: int = 0
    core_ahead_hub: int = 0
    core_behind_hub: int = 0
    local_tip: str = ""
    core_tip: str = ""
    hub_tip: str = ""
    partial: bool = False
    compared_remote: str = ""

    @property
    def diverged(self) -> bool:
        return DIVERGED in (self.local_core, self.local_hub,
                            self.core_hub)

    def status_for(self, role: str) -> str:
        """Local-vs-remote status for the `core` or `hub` role."""
        return self.local_core if role == "core" else self.local_hub

    def as_dict(self) -> dict[str, object]:
        payload = asdict(self)
        payload["diverged"] = self.diverged
        return payload


@dataclass(frozen=True)
class BranchTopologyEntry:
    id: str
    name: str
    local: bool
    core: bool
    hub: bool

    def as_dict(self) -> dict[str, object]: return asdict(self)


@dataclass(frozen=True)
class LargeObject:
    sha: str
    size_bytes: int

    @property
    def size_mb(self) -> float:
        return round(self.size_bytes / (1024 * 1024), 2)

    def as_dict(self) -> dict[str, object]:
        return {"sha": self.sha, "size_bytes": self.size_bytes,
                "size_mb": self.size_mb}


@dataclass(frozen=True)
class CorruptionState:
    id: str
    large_objects: tuple[LargeObject, ...] = ()
    lfs_active: bool = False
    missing_objects: tuple[str, ...] = ()
    broken_refs: tuple[str, ...] = ()
    dangling_commits: tuple[str, ...] = ()
    threshold_bytes: int = 0

    def as_dict(self) -> dict[str, object]:
        payload = asdict(self)
        payload["large_objects"] = [o.as_dict()
                                    for o in self.large_objects]
        return payload


@dataclass(frozen=True)
class StateWarning:
    code: str
    message: str
    dimension: str = ""
    remote: str = ""

    def as_dict(self) -> dict[str, object]: return asdict(self)


@dataclass(frozen=True)
class RepositoryState:
    path: str
    existence: ExistenceState
    working_tree: WorkingTreeState
    sync: SyncState
    corruption: CorruptionState
    branches: tuple[BranchTopologyEntry, ...] = ()
    default_branch: str = ""
    warnings: tuple[StateWarning, ...] = ()
    stale: bool = False
    pending_retry: tuple[str, ...] = ()
    # (remote, branch) for markers that name the branch to re-send
    retry_branches: tuple[tuple[str, str], ...] = ()
    detected_at: str = field(default="", compare=False)
    detection_ms: int = field(default=0, compare=False)

    def warning_codes(self) -> tuple[str, ...]:
        return tuple(w.code for w in self.warnings)

    def as_dict(self) -> dict[str, object]:
        return {
            "path": self.path,
            "default_branch": self.default_branch,
            "existence": self.existence.as_dict(),
            "working_tree": self.working_tree.as_dict(),
            "sync": self.sync.as_dict(),
            "branches": [b.as_dict() for b in self.branches],
            "corruption": self.corruption.as_dict(),
            "warnings": [w.as_dict() for w in self.warnings],
            "stale": self.stale,
            "pending_retry": list(self.pending_retry),
            "retry_branches": dict(self.retry_branches),
            "detected_at": self.detected_at,
            "detection_ms": self.detection_ms,
        }
