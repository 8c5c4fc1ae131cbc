"""
Push one branch to both remotes as two independent operations.

There is no multi-destination atomicity: each remote either
accepts or not. A rejecting or unreachable remote gets a
needs-retry marker; `retry_pending` later re-sends only to the
flagged remotes.
"""
from __future__ import annotations

# ======================= STANDARDS =======================
from dataclasses import dataclass, field
import logging as log

# ======================== LOCALS =========================
from .operations import PushOperation
from .retry_store import RetryFlagStore
from .error_model import SyncError
from .state import RepositoryState
from .gitutils import GitClient
from . import telemetry


logger = log.getLogger("dualsync.dualpush")


@dataclass(frozen=True)
class DualPushResult:
    branch: str
    applied: tuple[str, ...] = ()
    pending_retry: tuple[str, ...] = ()
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool: return not self.pending_retry

    @property
    def partial(self) -> bool:
        return bool(self.applied) and bool(self.pending_retry)

    def as_dict(self) -> dict[str, object]:
        return {
            "branch": self.branch,
            "applied": list(self.applied),
            "pending_retry": list(self.pending_retry),
            "errors": dict(self.errors),
            "partial": self.partial,
        }


def record_push_outcome(store: RetryFlagStore, remote: str, branch: str,
                        error: SyncError | None) -> None:
    """Set or clear the needs-retry marker for one remote and branch."""
    flag = error is not None
    store.set(remote, flag, branch)
    telemetry.emit_event("push_retry_flag", "push", {
        "remote": remote,
        "branch": branch,
        "needs_retry": flag,
        "code": error.code if error else "",
    })


def _push_each(git: GitClient, state: RepositoryState, branch: str,
               targets: list[tuple[str, str]], store: RetryFlagStore
              ) -> DualPushResult:
    applied: list[str] = []
    pending: list[str] = []
    errors: dict[str, str] = {}
    for remote, name in targets:
        op = PushOperation(remote, name)
        try:
            op.validate(state, git)
            op.execute(git)
        except SyncError as e:
            logger.warning("push %s to %s failed: %s", name, remote, e)
            record_push_outcome(store, remote, name, e)
            pending.append(remote)
            errors[remote] = str(e)
            continue
        record_push_outcome(store, remote, name, None)
        applied.append(remote)
    return DualPushResult(branch, tuple(applied), tuple(pending), errors)


def dual_push(git: GitClient, state: RepositoryState, branch: str,
              store: RetryFlagStore) -> DualPushResult:
    """Push `branch` to core and then to hub, independently."""
    remotes = [state.existence.core_remote, state.existence.hub_remote]
    return _push_each(git, state, branch, [(r, branch) for r in remotes],
                      store)


def retry_pending(git: GitClient, state: RepositoryState, branch: str,
                  store: RetryFlagStore) -> DualPushResult:
    """
    Re-send only to remotes still flagged for retry.

    Each remote gets the branch its marker recorded; `branch` is
    used for markers that do not name one.
    """
    pending = [r for r in (state.existence.core_remote,
                           state.existence.hub_remote) if store.get(r)]
    if not pending: return DualPushResult(branch)
    targets = [(r, store.branch_of(r) or branch) for r in pending]
    return _push_each(git, state, branch, targets, store)
