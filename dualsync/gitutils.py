"""
Typed git queries and mutations on top of the executor.

Every method maps to one (occasionally two) subprocess
calls; callers decide how to degrade on failure.
"""
from __future__ import annotations

# ======================= STANDARDS =======================
from dataclasses import dataclass
from pathlib import Path
import os

# ======================== LOCALS =========================
from .executor import CommandResult, Executor
from .error_model import ExecError
from .config import Settings
from . import _constants as const


@dataclass(frozen=True)
class StatusEntries:
    staged: tuple[str, ...]
    unstaged: tuple[str, ...]
    untracked: tuple[str, ...]
    conflicted: tuple[str, ...]


@dataclass(frozen=True)
class ObjectScan:
    large: tuple[tuple[str, int], ...]
    missing: tuple[str, ...]


# porcelain v1 XY pairs that denote an unmerged path
_UNMERGED = {"DD", "AU", "UD", "UA", "DU", "AA", "UU"}


class GitClient:
    def __init__(self, executor: Executor) -> None:
        self.executor = executor
        self.settings = executor.settings
        self.path     = executor.repo_path

    @classmethod
    def for_path(cls, path: str | Path, settings: Settings
                ) -> "GitClient":
        return cls(Executor(path, settings))

    def run(self, args: list[str], timeout: float | None = None,
            check: bool = False, stdin: str | None = None
           ) -> CommandResult:
        return self.executor.run(args, timeout=timeout, check=check,
                                 stdin=stdin)

    # ---------------------------------------------------- repository
    def local_exists(self) -> bool:
        if not os.path.isdir(self.path): return False
        cp = self.run(["rev-parse", "--git-dir"],
                      timeout=self.settings.quick_timeout)
        return cp.ok

    def is_detached_head(self) -> bool:
        cp = self.run(["symbolic-ref", "-q", "HEAD"])
        if cp.exit_code == 1: return True
        if not cp.ok:
            raise ExecError("symbolic-ref failed", stderr=cp.stderr,
                            exit_code=cp.exit_code)
        return False

    def current_branch(self) -> str:
        cp = self.run(["symbolic-ref", "-q", "--short", "HEAD"])
        return cp.output.strip() if cp.ok else ""

    def git_path(self, name: str) -> Path:
        """`name` inside the git dir, honoring `core.hooksPath` and friends."""
        cp = self.run(["rev-parse", "--git-path", name], check=True,
                      timeout=self.settings.quick_timeout)
        found = Path(cp.output.strip())
        return found if found.is_absolute() else Path(self.path) / found

    def is_shallow(self) -> bool:
        cp = self.run(["rev-parse", "--is-shallow-repository"],
                      check=True)
        return cp.output.strip() == "true"

    # ------------------------------------------------------- remotes
    def remote_url(self, remote: str) -> str:
        cp = self.run(["remote", "get-url", remote])
        return cp.output.strip() if cp.ok else ""

    def can_reach(self, target: str) -> bool:
        """Probe a remote name or URL without touching local refs."""
        cp = self.run(["ls-remote", target, "HEAD"],
                      timeout=self.settings.quick_timeout)
        return cp.ok

    def fetch(self, remote: str) -> None:
        self.run(["fetch", "--prune", remote],
                 timeout=self.settings.fetch_timeout, check=True)

    def push(self, remote: str, branch: str) -> None:
        # explicit refspec, never HEAD and never forced
        refspec = f"refs/heads/{branch}:refs/heads/{branch}"
        self.run(["push", "--porcelain", remote, refspec],
                 timeout=self.settings.fetch_timeout, check=True)

    def remote_head_branch(self, remote: str) -> str:
        """Branch the cached `refs/remotes/<remote>/HEAD` points at."""
        cp = self.run(["symbolic-ref", "-q", "--short",
                       f"refs/remotes/{remote}/HEAD"])
        if not cp.ok: return ""
        name = cp.output.strip()
        prefix = f"{remote}/"
        return name[len(prefix):] if name.startswith(prefix) else name

    # ---------------------------------------------------------- refs
    def resolve(self, ref: str) -> str:
        """Commit hash for `ref`, or "" when it does not exist."""
        cp = self.run(["rev-parse", "-q", "--verify",
                       f"{ref}^{{commit}}"])
        return cp.output.strip() if cp.ok else ""

    def ref_exists(self, ref: str) -> bool:
        return bool(self.resolve(ref))

    def ahead_behind(self, left: str, right: str) -> tuple[int, int]:
        """(commits only in left, commits only in right)."""
        cp = self.run(["rev-list", "--left-right", "--count",
                       f"{left}...{right}"], check=True)
        parts = cp.output.split()
        if len(parts) != 2:
            raise ExecError(f"unexpected rev-list output: {cp.output!r}")
        return int(parts[0]), int(parts[1])

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        cp = self.run(["merge-base", "--is-ancestor", ancestor,
                       descendant])
        if cp.exit_code == 0: return True
        if cp.exit_code == 1: return False
        raise ExecError("merge-base --is-ancestor failed",
                        stderr=cp.stderr, exit_code=cp.exit_code)

    def branch_refs(self, remotes: list[str]) -> dict[str, set[str]]:
        """
        Branch names per location from one `for-each-ref` call.

        Keys are "local" plus each remote name. Symbolic
        `<remote>/HEAD` refs are skipped.
        """
        patterns = ["refs/heads"] + [f"refs/remotes/{r}"
                                     for r in remotes]
        cp = self.run(["for-each-ref", "--format=%(refname)",
                       *patterns], check=True)
        out: dict[str, set[str]] = {"local": set()}
        for r in remotes: out[r] = set()
        for ref in cp.lines:
            if ref.startswith("refs/heads/"):
                out["local"].add(ref[len("refs/heads/"):])
                continue
            for r in remotes:
                prefix = f"refs/remotes/{r}/"
                if ref.startswith(prefix):
                    name = ref[len(prefix):]
                    if name != "HEAD": out[r].add(name)
                    break
        return out

    def reset_keep(self, target: str) -> None:
        self.run(["reset", "--keep", target], check=True)

    # ---------------------------------------------------- worktree
    def status_entries(self) -> StatusEntries:
        cp = self.run(["status", "--porcelain=v1", "-z",
                       "--untracked-files=normal"], check=True)
        staged: list[str] = []
        unstaged: list[str] = []
        untracked: list[str] = []
        conflicted: list[str] = []
        tokens = cp.output.split("\0")
        i = 0
        while i < len(tokens):
            entry = tokens[i]; i += 1
            if len(entry) < 4: continue
            xy, path = entry[:2], entry[3:]
            # renames and copies carry the source path next
            if "R" in xy or "C" in xy: i += 1
            if xy == "??": untracked.append(path); continue
            if xy == "!!": continue
            if xy in _UNMERGED: conflicted.append(path); continue
            if xy[0] != " ": staged.append(path)
            if xy[1] != " ": unstaged.append(path)
        return StatusEntries(tuple(staged), tuple(unstaged),
                             tuple(untracked), tuple(conflicted))

    def gitlinks(self) -> list[str]:
        """Index paths recorded as sub-repository entries."""
        cp = self.run(["ls-files", "--stage", "-z"], check=True)
        paths = []
        for entry in cp.output.split("\0"):
            meta, _, path = entry.partition("\t")
            if meta.split(" ")[:1] == [const.GITLINK_MODE]:
                paths.append(path)
        return paths

    def submodule_manifest_paths(self) -> set[str]:
        if not os.path.isfile(os.path.join(self.path, ".gitmodules")):
            return set()
        cp = self.run(["config", "--file", ".gitmodules",
                       "--get-regexp", r"^submodule\..*\.path$"])
        # exit 1 means the manifest has no path entries
        if cp.exit_code not in (0, 1):
            raise ExecError("cannot read .gitmodules", stderr=cp.stderr,
                            exit_code=cp.exit_code)
        return {line.partition(" ")[2].strip() for line in cp.lines}

    # ------------------------------------------------------ objects
    def lfs_tracked_files(self) -> list[str]:
        cp = self.run(["ls-files", ":(attr:filter=lfs)"])
        return cp.lines if cp.ok else []

    def ref_tips(self) -> dict[str, str]:
        cp = self.run(["for-each-ref",
                       "--format=%(objectname) %(refname)"], check=True)
        tips: dict[str, str] = {}
        for line in cp.lines:
            sha, _, ref = line.partition(" ")
            tips[ref] = sha
        return tips

    def batch_check(self, shas: list[str]) -> dict[str, tuple[str, int]]:
        """
        Type and size per object. Missing objects map to
        ("missing", 0).
        """
        if not shas: return {}
        cp = self.run(
            ["cat-file",
             "--batch-check=%(objectname) %(objecttype) %(objectsize)"],
            stdin="\n".join(shas) + "\n",
            timeout=self.settings.fetch_timeout, check=True)
        out: dict[str, tuple[str, int]] = {}
        for line in cp.lines:
            parts = line.split()
            if len(parts) == 2 and parts[1] == "missing":
                out[parts[0]] = ("missing", 0)
            elif len(parts) == 3:
                out[parts[0]] = (parts[1], int(parts[2]))
        return out

    def scan_objects(self, tips: list[str], threshold: int
                    ) -> ObjectScan:
        """
        One reachability walk from `tips`. Blobs at or above
        `threshold` bytes are omitted by the filter and reported
        back so only they need sizing.
        """
        if not tips: return ObjectScan((), ())
        cp = self.run(
            ["rev-list", "--objects", "--no-object-names", "--stdin",
             "--missing=print", f"--filter=blob:limit={threshold}",
             "--filter-print-omitted"],
            stdin="\n".join(tips) + "\n",
            timeout=self.settings.fetch_timeout, check=True)
        omitted: list[str] = []
        missing: list[str] = []
        for line in cp.lines:
            if line.startswith("~"): omitted.append(line[1:].strip())
            elif line.startswith("?"): missing.append(line[1:].strip())
        sized = self.batch_check(omitted)
        large = tuple(sorted(
            ((sha, size) for sha, (kind, size) in sized.items()
             if kind == "blob" and size >= threshold),
            key=lambda item: (-item[1], item[0])))
        return ObjectScan(large, tuple(sorted(set(missing))))

    def dangling_commits(self) -> list[str]:
        cp = self.run(["fsck", "--no-reflogs", "--dangling",
                       "--connectivity-only", "--no-progress"],
                      timeout=self.settings.fetch_timeout)
        found = []
        for line in (cp.output + "\n" + cp.stderr).splitlines():
            parts = line.split()
            if parts[:2] == ["dangling", "commit"] and len(parts) > 2:
                found.append(parts[2])
        return sorted(set(found))

    # ------------------------------------------------------- config
    def config_get(self, key: str) -> str:
        cp = self.run(["config", "--local", "--get", key])
        return cp.output.strip() if cp.ok else ""

    def config_set(self, key: str, value: str) -> None:
        self.run(["config", "--local", key, value], check=True)

    def config_unset(self, key: str) -> None:
        cp = self.run(["config", "--local", "--unset-all", key])
        # exit 5 means the key was not set
        if cp.exit_code not in (0, 5):
            raise ExecError(f"cannot unset {key}", stderr=cp.stderr,
                            exit_code=cp.exit_code)
