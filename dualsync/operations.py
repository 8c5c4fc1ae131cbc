"""
Validated mutation primitives: Fetch, Push, Reset, Composite.

`validate(state, git)` raises `ValidationError` when a
precondition is unmet and must be called before `execute(git)`.
`rollback(git)` never attempts anything riskier than the
original step: only Fetch rolls back (as a no-op).
"""
from __future__ import annotations

# ======================= STANDARDS =======================
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import logging as log

# ======================== LOCALS =========================
from .error_model import (
    CompositeError,
    RollbackRefused,
    SyncError,
    UnknownStateError,
    ValidationError,
)
from .state import BEHIND, DIVERGED, RepositoryState
from .gitutils import GitClient
from . import _constants as const
from . import tables


logger = log.getLogger("dualsync.operations")


def _remote_role(state: RepositoryState, remote: str) -> str:
    if remote == state.existence.core_remote: return const.CORE
    if remote == state.existence.hub_remote: return const.HUB
    return ""


def _require_clean(state: RepositoryState, action: str) -> None:
    tree = state.working_tree
    if tree.conflicted:
        raise ValidationError(f"cannot {action}: unresolved conflicts",
                              code="DSY_VAL_DIRTY_WORKTREE")
    if tree.staged or tree.unstaged or not tree.clean:
        raise ValidationError(
            f"cannot {action}: working tree has staged or unstaged "
            "changes", code="DSY_VAL_DIRTY_WORKTREE",
            hint="commit or stash the changes first")


class Operation(ABC):
    kind: str = ""

    @abstractmethod
    def validate(self, state: RepositoryState, git: GitClient) -> None:
        """Raise ValidationError when the operation is unsafe."""

    @abstractmethod
    def execute(self, git: GitClient) -> None: ...

    @abstractmethod
    def describe(self) -> str: ...

    @abstractmethod
    def rollback(self, git: GitClient) -> None: ...

    def command(self) -> str:
        """Display-only shell equivalent."""
        return self.describe()

    def as_dict(self) -> dict[str, object]:
        return {"kind": self.kind, "description": self.describe(),
                "command": self.command()}

    def __str__(self) -> str: return self.describe()


@dataclass
class FetchOperation(Operation):
    remote: str
    kind: str = field(default="fetch", init=False)

    def validate(self, state: RepositoryState, git: GitClient) -> None:
        role = _remote_role(state, self.remote)
        if not role:
            raise ValidationError(f"{self.remote} is not a known remote",
                                  code="DSY_VAL_REMOTE_UNAVAILABLE")
        ex = state.existence
        reachable = ex.core_reachable if role == const.CORE \
                    else ex.hub_reachable
        if not reachable:
            raise ValidationError(f"{self.remote} is not reachable",
                                  code="DSY_VAL_REMOTE_UNAVAILABLE")

    def execute(self, git: GitClient) -> None:
        git.fetch(self.remote)

    def describe(self) -> str:
        return f"fetch {self.remote}"

    def command(self) -> str:
        return f"git fetch --prune {self.remote}"

    def rollback(self, git: GitClient) -> None:
        return None


@dataclass
class PushOperation(Operation):
    remote: str
    branch: str
    kind: str = field(default="push", init=False)

    def validate(self, state: RepositoryState, git: GitClient) -> None:
        role = _remote_role(state, self.remote)
        ex = state.existence
        if not role:
            raise ValidationError(f"{self.remote} is not a known remote",
                                  code="DSY_VAL_REMOTE_UNAVAILABLE")
        configured = ex.core_exists if role == const.CORE \
                     else ex.hub_exists
        reachable = ex.core_reachable if role == const.CORE \
                    else ex.hub_reachable
        if not configured or not reachable:
            raise ValidationError(
                f"{self.remote} is not configured or not reachable",
                code="DSY_VAL_REMOTE_UNAVAILABLE")
        _require_clean(state, f"push to {self.remote}")
        if not self.branch:
            raise ValidationError("push needs a branch name")
        if self.branch == state.sync.branch:
            if state.sync.id == tables.S_UNKNOWN:
                raise UnknownStateError(
                    f"sync state of {self.branch} is unknown; refusing "
                    "to push", hint="rerun detection once the warnings "
                    "are resolved")
            status = state.sync.status_for(role)
            if status in (BEHIND, DIVERGED):
                raise ValidationError(
                    f"push to {self.remote} would not fast-forward "
                    f"({status})", code="DSY_VAL_NOT_FAST_FORWARD")
        if not git.ref_exists(f"refs/heads/{self.branch}"):
            raise ValidationError(f"no local branch {self.branch!r}")

    def execute(self, git: GitClient) -> None:
        git.push(self.remote, self.branch)

    def describe(self) -> str:
        return f"push {self.branch} to {self.remote}"

    def command(self) -> str:
        return f"git push {self.remote} {self.branch}"

    def rollback(self, git: GitClient) -> None:
        raise RollbackRefused(
            f"cannot undo push of {self.branch} to {self.remote}",
            hint="a published commit must be reverted manually")


@dataclass
class ResetOperation(Operation):
    """
    Move the checked-out branch to `target` only when that is
    a pure fast-forward.

    `validate` fails closed unless the tree is clean, HEAD is
    attached to `branch` (when given), and the current tip is
    an ancestor of `target`. `execute` repeats the ancestry
    check right before resetting, since `target` may have moved
    after validation (e.g. a fetch earlier in a composite).
    """
    target: str
    branch: str = ""
    kind: str = field(default="reset", init=False)

    def _check_ancestry(self, git: GitClient) -> str:
        target_sha = git.resolve(self.target)
        if not target_sha:
            raise ValidationError(f"target ref {self.target!r} does not "
                                  "exist")
        if not git.is_ancestor("HEAD", target_sha):
            raise ValidationError(
                f"reset to {self.target} refused: the current branch has "
                "commits not reachable from the target",
                code="DSY_VAL_NOT_FAST_FORWARD",
                hint="merge or rebase instead; resetting would discard "
                "local commits")
        return target_sha

    def validate(self, state: RepositoryState, git: GitClient) -> None:
        if not self.target.strip():
            raise ValidationError("reset target is empty")
        _require_clean(state, f"reset to {self.target}")
        live = git.status_entries()
        if live.staged or live.unstaged or live.conflicted:
            raise ValidationError(
                f"cannot reset to {self.target}: working tree changed "
                "since detection", code="DSY_VAL_DIRTY_WORKTREE")
        current = git.current_branch()
        if not current:
            raise ValidationError("cannot reset a detached HEAD",
                                  hint="git switch <branch>")
        if self.branch and current != self.branch:
            raise ValidationError(
                f"checked-out branch is {current!r}, expected "
                f"{self.branch!r}", hint=f"git switch {self.branch}")
        self._check_ancestry(git)

    def execute(self, git: GitClient) -> None:
        target_sha = self._check_ancestry(git)
        git.reset_keep(target_sha)

    def describe(self) -> str:
        return f"fast-forward {self.branch or 'HEAD'} to {self.target}"

    def command(self) -> str:
        return f"git reset --keep {self.target}"

    def rollback(self, git: GitClient) -> None:
        raise RollbackRefused(
            "automatic undo of a reset is not attempted",
            hint="inspect `git reflog` and `git reset --keep ORIG_HEAD` "
            "if needed")


@dataclass
class CompositeOperation(Operation):
    steps: tuple[Operation, ...]
    stop_on_error: bool = True
    label: str = ""
    kind: str = field(default="composite", init=False)

    def validate(self, state: RepositoryState, git: GitClient) -> None:
        if not self.steps:
            raise ValidationError("composite operation has no steps")
        for step in self.steps: step.validate(state, git)

    def execute(self, git: GitClient) -> None:
        applied: list[Operation] = []
        failures: list[tuple[Operation, SyncError]] = []
        for step in self.steps:
            try:
                step.execute(git)
                applied.append(step)
            except SyncError as e:
                logger.warning("step %r failed: %s", step.describe(), e)
                failures.append((step, e))
                if self.stop_on_error: break
        if failures:
            first = failures[0]
            raise CompositeError(
                f"{self.describe()}: {first[0].describe()} failed: "
                f"{first[1]}", applied=tuple(applied),
                failures=tuple(failures),
                code="DSY_OP_PARTIAL_PUSH" if applied and not
                     self.stop_on_error else "")

    def describe(self) -> str:
        if self.label: return self.label
        return " then ".join(step.describe() for step in self.steps)

    def command(self) -> str:
        return " && ".join(step.command() for step in self.steps)

    def rollback(self, git: GitClient) -> None:
        raise RollbackRefused("manual intervention required",
                              hint="review which steps were applied")

    def as_dict(self) -> dict[str, object]:
        payload = super().as_dict()
        payload["stop_on_error"] = self.stop_on_error
        payload["steps"] = [step.as_dict() for step in self.steps]
        return payload


def iter_pushes(op: Operation | None) -> list[PushOperation]:
    """Every push inside `op`, depth first."""
    if op is None: return []
    if isinstance(op, PushOperation): return [op]
    if isinstance(op, CompositeOperation):
        return [p for step in op.steps for p in iter_pushes(step)]
    return []
