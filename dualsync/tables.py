"""
Decision tables and the scenario catalog.

Each dimension has one pure lookup from an observed tuple to a
canonical scenario ID. Lookups are total: a tuple absent from
a table maps to that dimension's unknown sentinel, never to the
nearest-looking entry.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass

from .state import AHEAD, BEHIND, DIVERGED, SYNCED, UNKNOWN


NOT_APPLICABLE = "N/A"

E_UNKNOWN = "E_UNKNOWN"
W_UNKNOWN = "W_UNKNOWN"
S_UNKNOWN = "S_UNKNOWN"
B_UNKNOWN = "B_UNKNOWN"
C_UNKNOWN = "C_UNKNOWN"

SENTINELS = (E_UNKNOWN, W_UNKNOWN, S_UNKNOWN, B_UNKNOWN, C_UNKNOWN)


# (local, core configured, hub configured)
EXISTENCE_TABLE: dict[tuple[bool, bool, bool], str] = {
    (True, True, True): "E1",
    (True, True, False): "E2",
    (True, False, True): "E3",
    (True, False, False): "E4",
    (False, True, True): "E5",
    (False, True, False): "E6",
    (False, False, True): "E7",
    (False, False, False): "E8",
}

# (has staged, has unstaged, has conflicts)
WORKING_TREE_TABLE: dict[tuple[bool, bool, bool], str] = {
    (False, False, False): "W1",
    (True, False, False): "W2",
    (False, True, False): "W3",
    (True, True, False): "W5",
    (False, False, True): "W4",
    (True, False, True): "W4",
    (False, True, True): "W4",
    (True, True, True): "W4",
}

_S, _A, _B, _D = SYNCED, AHEAD, BEHIND, DIVERGED

# (local vs core, local vs hub, core vs hub). Only tuples that
# can arise from three real commits are listed; e.g. local
# ahead of core while core is ahead of hub forces local ahead
# of hub, so (ahead, behind, ahead) is absent.
SYNC_TABLE: dict[tuple[str, str, str], str] = {
    (_S, _S, _S): "S1",
    # local ahead of both remotes
    (_A, _A, _S): "S2",
    (_A, _A, _A): "S2",
    (_A, _A, _B): "S2",
    # local behind both remotes
    (_B, _B, _S): "S3",
    (_B, _B, _A): "S3",
    (_B, _B, _B): "S3",
    # local == core, hub behind
    (_S, _A, _A): "S4",
    # local == hub, core behind
    (_A, _S, _B): "S5",
    # local == core, hub ahead
    (_S, _B, _B): "S6",
    # local == hub, core ahead
    (_B, _S, _A): "S7",
    # hub ahead of local, local ahead of core
    (_A, _B, _B): "S8",
    # core ahead of local, local ahead of hub
    (_B, _A, _A): "S9",
    # remotes diverged, local matches one
    (_S, _D, _D): "S10",
    (_D, _S, _D): "S10",
    (_A, _A, _D): "S11",
    (_B, _B, _D): "S12",
    # local diverged from at least one remote
    (_D, _D, _S): "S13",
    (_D, _D, _A): "S13",
    (_D, _D, _B): "S13",
    (_D, _D, _D): "S13",
    (_A, _D, _B): "S13",
    (_A, _D, _D): "S13",
    (_D, _A, _A): "S13",
    (_D, _A, _D): "S13",
    (_B, _D, _A): "S13",
    (_B, _D, _D): "S13",
    (_D, _B, _B): "S13",
    (_D, _B, _D): "S13",
}

# Two-location comparison (local vs the one remote present).
PARTIAL_SYNC_TABLE: dict[str, str] = {
    _S: "S1",
    _A: "S2",
    _B: "S3",
    _D: "S13",
}

# (local, core, hub) presence of one branch name
BRANCH_TABLE: dict[tuple[bool, bool, bool], str] = {
    (True, True, True): "B1",
    (True, True, False): "B2",
    (True, False, True): "B3",
    (False, True, True): "B4",
    (True, False, False): "B5",
    (False, True, False): "B6",
    (False, False, True): "B7",
}

# Corruption is a priority list over independent flags: the
# most severe finding names the dimension.
CORRUPTION_PRIORITY: tuple[tuple[str, str], ...] = (
    ("missing_objects", "C4"),
    ("broken_refs", "C2"),
    ("large_objects", "C3"),
    ("dangling_commits", "C5"),
    ("lfs_active", "C6"),
    ("detached_head", "C7"),
    ("shallow", "C8"),
)


def existence_id(local: bool, core: bool, hub: bool) -> str:
    return EXISTENCE_TABLE.get((bool(local), bool(core), bool(hub)),
                               E_UNKNOWN)


def working_tree_id(staged: bool, unstaged: bool,
                    conflicts: bool) -> str:
    return WORKING_TREE_TABLE.get(
        (bool(staged), bool(unstaged), bool(conflicts)), W_UNKNOWN)


def sync_id(local_core: str, local_hub: str, core_hub: str) -> str:
    return SYNC_TABLE.get((local_core, local_hub, core_hub), S_UNKNOWN)


def partial_sync_id(status: str) -> str:
    return PARTIAL_SYNC_TABLE.get(status, S_UNKNOWN)


def branch_id(local: bool, core: bool, hub: bool) -> str:
    return BRANCH_TABLE.get((bool(local), bool(core), bool(hub)),
                            B_UNKNOWN)


def corruption_id(flags: dict[str, bool]) -> str:
    """Highest-priority finding; C1 when every known flag is False."""
    if any(key not in {k for k, _ in CORRUPTION_PRIORITY}
           for key in flags):
        return C_UNKNOWN
    for key, scenario in CORRUPTION_PRIORITY:
        if flags.get(key): return scenario
    return "C1"


@dataclass(frozen=True)
class Scenario:
    id: str
    name: str
    description: str
    category: str
    severity: str  # info | warning | error | critical
    auto_fixable: bool
    causes: tuple[str, ...] = ()
    manual_steps: tuple[str, ...] = ()
    related: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, object]: return asdict(self)


def _sc(id: str, name: str, description: str, category: str,
        severity: str, auto_fixable: bool,
        causes: tuple[str, ...] = (), steps: tuple[str, ...] = (),
        related: tuple[str, ...] = ()) -> Scenario:
    return Scenario(id, name, description, category, severity,
                    auto_fixable, causes, steps, related)


SCENARIOS: dict[str, Scenario] = {s.id: s for s in (
    # ------------------------------------------------- existence
    _sc("E1", "Fully configured",
        "Local repository with both core and hub remotes configured.",
        "existence", "info", False),
    _sc("E2", "Hub missing",
        "Local repository and core remote exist; no hub remote.",
        "existence", "warning", False,
        ("hub mirror never set up", "hub remote removed"),
        ("create the hub repository",
         "git remote add <hub> <url>", "push the default branch"),
        ("E1",)),
    _sc("E3", "Core missing",
        "Local repository and hub remote exist; no core remote.",
        "existence", "error", False,
        ("repository cloned from the hub",),
        ("git remote add <core> <url>", "push the default branch"),
        ("E1",)),
    _sc("E4", "Local only",
        "Local repository exists but neither remote is configured.",
        "existence", "warning", False,
        ("new project never pushed",),
        ("add the core and hub remotes", "push to both"),
        ("E2", "E3")),
    _sc("E5", "Local missing",
        "Both remotes exist but there is no local repository.",
        "existence", "warning", False,
        ("fresh machine", "working copy deleted"),
        ("git clone <core-url>", "git remote add <hub> <hub-url>"),
        ("E1",)),
    _sc("E6", "Core only",
        "Only the core remote exists.",
        "existence", "warning", False,
        ("hub mirror never created",),
        ("git clone <core-url>", "create and add the hub remote"),
        ("E5",)),
    _sc("E7", "Hub only",
        "Only the hub remote exists.",
        "existence", "error", False,
        ("core repository lost or never created",),
        ("git clone <hub-url>", "recreate the core remote"),
        ("E5",)),
    _sc("E8", "Nothing exists",
        "No local repository and no configured remotes.",
        "existence", "critical", False,
        ("wrong path", "repository deleted everywhere"),
        ("check the path", "git init or clone"),
        ()),
    # ------------------------------------------------ working tree
    _sc("W1", "Clean", "No staged, unstaged or conflicted changes.",
        "working_tree", "info", False),
    _sc("W2", "Staged changes", "Changes are staged but not committed.",
        "working_tree", "warning", False,
        ("commit interrupted",),
        ("git commit", "or git restore --staged <paths>"),
        ("W5",)),
    _sc("W3", "Unstaged changes", "Tracked files have unstaged edits.",
        "working_tree", "warning", False,
        ("work in progress",),
        ("git add + git commit", "or git stash"),
        ("W5",)),
    _sc("W4", "Merge conflicts", "The index has unmerged paths.",
        "working_tree", "error", False,
        ("merge, rebase or cherry-pick stopped on conflicts",),
        ("resolve each conflicted file", "git add <paths>",
         "git merge --continue or git rebase --continue"),
        ("S13",)),
    _sc("W5", "Mixed changes", "Both staged and unstaged changes exist.",
        "working_tree", "warning", False,
        ("partially staged work",),
        ("git commit the staged part", "stash or commit the rest"),
        ("W2", "W3")),
    # --------------------------------------------------------- sync
    _sc("S1", "In sync", "Local, core and hub point at the same commit.",
        "sync", "info", False),
    _sc("S2", "Local ahead", "Local has commits neither remote has.",
        "sync", "info", True,
        ("commits not pushed yet",),
        ("git push <core> <branch>", "git push <hub> <branch>"),
        ("S4", "S5")),
    _sc("S3", "Local behind", "Both remotes have commits local lacks.",
        "sync", "info", True,
        ("work pushed from another machine",),
        ("git fetch <remote>", "fast-forward local to the remote"),
        ("S6", "S7")),
    _sc("S4", "Hub behind",
        "Local matches core; hub is missing commits.",
        "sync", "warning", True,
        ("earlier push to the hub failed",),
        ("git push <hub> <branch>",), ("S2",)),
    _sc("S5", "Core behind",
        "Local matches hub; core is missing commits.",
        "sync", "warning", True,
        ("earlier push to core failed",),
        ("git push <core> <branch>",), ("S2",)),
    _sc("S6", "Local and core behind hub",
        "Local matches core; hub has newer commits.",
        "sync", "warning", True,
        ("change merged on the hub platform",),
        ("fast-forward local to the hub", "git push <core> <branch>"),
        ("S8",)),
    _sc("S7", "Local and hub behind core",
        "Local matches hub; core has newer commits.",
        "sync", "warning", True,
        ("push to core from another machine",),
        ("fast-forward local to core", "git push <hub> <branch>"),
        ("S9",)),
    _sc("S8", "Hub ahead of local ahead of core",
        "Hub is ahead of local, and local is ahead of core.",
        "sync", "warning", False,
        ("hub updated after a partial push",),
        ("fast-forward local to the hub", "git push <core> <branch>"),
        ("S6",)),
    _sc("S9", "Core ahead of local ahead of hub",
        "Core is ahead of local, and local is ahead of hub.",
        "sync", "warning", False,
        ("core updated after a partial push",),
        ("fast-forward local to core", "git push <hub> <branch>"),
        ("S7",)),
    _sc("S10", "Remotes diverged",
        "Core and hub have diverged; local matches one of them.",
        "sync", "error", False,
        ("independent commits landed on each remote",),
        ("fetch both remotes", "merge or rebase one onto the other",
         "push the result to both"),
        ("S11", "S12", "S13")),
    _sc("S11", "Local ahead of diverged remotes",
        "Remotes diverged; local already contains both histories.",
        "sync", "error", False,
        ("local merge of both remotes not pushed",),
        ("review the merge", "push to both remotes"),
        ("S10",)),
    _sc("S12", "Local behind diverged remotes",
        "Remotes diverged; local is an ancestor of both.",
        "sync", "error", False,
        ("both remotes moved independently",),
        ("merge the remotes", "push the result to both"),
        ("S10",)),
    _sc("S13", "Diverged history",
        "Local and at least one remote each have commits the other "
        "lacks.",
        "sync", "critical", False,
        ("commits made in two places without syncing",
         "force-push on a remote"),
        ("git fetch --all", "git merge or rebase onto the remote",
         "push once history is linear"),
        ("S10", "W4")),
    # ------------------------------------------------- corruption
    _sc("C1", "Healthy", "No repository integrity findings.",
        "corruption", "info", False),
    _sc("C2", "Broken references",
        "One or more refs point at objects that do not exist.",
        "corruption", "error", False,
        ("interrupted gc", "disk corruption"),
        ("git fsck --full", "delete or repair the listed refs"),
        ("C4",)),
    _sc("C3", "Large binaries",
        "History contains blobs above the size threshold.",
        "corruption", "warning", False,
        ("binaries committed without LFS",),
        ("git lfs migrate import", "or git filter-repo --strip-blobs-bigger-than"),
        ("C6",)),
    _sc("C4", "Missing objects",
        "Objects reachable from refs are missing from the object store.",
        "corruption", "critical", False,
        ("disk corruption", "incomplete clone"),
        ("git fsck --full", "git fetch from a healthy remote",
         "re-clone if needed"),
        ("C2",)),
    _sc("C5", "Dangling commits",
        "Commits exist that no ref or reflog reaches.",
        "corruption", "info", False,
        ("reset or rebase discarded commits",),
        ("inspect with git show <sha>", "branch to keep, or git gc"),
        ()),
    _sc("C6", "LFS in use",
        "Git LFS tracks files in this repository.",
        "corruption", "info", False,
        ("large assets tracked through LFS",),
        ("ensure git lfs is installed wherever the repo is cloned",),
        ("C3",)),
    _sc("C7", "Detached HEAD",
        "HEAD does not point at a branch.",
        "corruption", "warning", False,
        ("checkout of a tag or commit",),
        ("git switch <branch>", "or git switch -c <new-branch>"),
        ()),
    _sc("C8", "Shallow clone",
        "The repository has truncated history.",
        "corruption", "info", False,
        ("clone with --depth",),
        ("git fetch --unshallow",),
        ()),
    # ----------------------------------------------- branch topology
    _sc("B1", "Branch everywhere",
        "Branch exists locally, on core and on hub.",
        "branch", "info", False),
    _sc("B2", "Branch missing on hub",
        "Branch exists locally and on core but not on hub.",
        "branch", "info", True,
        ("hub push skipped",), ("git push <hub> <branch>",), ("B5",)),
    _sc("B3", "Branch missing on core",
        "Branch exists locally and on hub but not on core.",
        "branch", "info", True,
        ("core push skipped",), ("git push <core> <branch>",), ("B5",)),
    _sc("B4", "Branch only on remotes",
        "Branch exists on both remotes but not locally.",
        "branch", "info", False,
        ("branch created elsewhere",),
        ("git switch <branch>",), ("B6", "B7")),
    _sc("B5", "Local-only branch",
        "Branch exists only in the local repository.",
        "branch", "info", True,
        ("new branch never pushed",),
        ("git push <core> <branch>", "git push <hub> <branch>"),
        ("B2", "B3")),
    _sc("B6", "Core-only branch",
        "Branch exists only on core.",
        "branch", "info", False,
        ("branch created on core",),
        ("git switch --track <core>/<branch>",), ("B4",)),
    _sc("B7", "Hub-only branch",
        "Branch exists only on hub.",
        "branch", "info", False,
        ("branch created through the hub platform",),
        ("git switch --track <hub>/<branch>",), ("B4",)),
)}


def scenario(id: str) -> Scenario | None:
    return SCENARIOS.get(id)


def describe(id: str) -> str:
    """Human name for a scenario ID, including sentinels."""
    found = SCENARIOS.get(id)
    if found is not None: return found.name
    if id == NOT_APPLICABLE: return "not evaluated"
    if id in SENTINELS: return "unknown state"
    return id
