"""
Auto-Fix Orchestrator.

Applies auto-fixable fixes in priority order and stops at the
first failure (or partial push), reporting exactly which fixes
were applied. No automatic multi-step rollback is attempted.
"""
from __future__ import annotations

# ======================= STANDARDS =======================
from dataclasses import dataclass
import logging as log

# ======================== LOCALS =========================
from .error_model import CompositeError, SyncError, ValidationError
from .dualpush import record_push_outcome
from .retry_store import RetryFlagStore
from .operations import PushOperation, iter_pushes
from .state import RepositoryState
from .gitutils import GitClient
from .suggester import Fix
from . import telemetry


logger = log.getLogger("dualsync.autofix")


@dataclass(frozen=True)
class AutoFixResult:
    applied: tuple[Fix, ...] = ()
    skipped: tuple[Fix, ...] = ()
    failed: Fix | None = None
    error: SyncError | None = None
    partial: bool = False
    pending_retry: tuple[str, ...] = ()
    dry_run: bool = False

    @property
    def ok(self) -> bool: return self.failed is None

    def as_dict(self) -> dict[str, object]:
        return {
            "ok": self.ok,
            "dry_run": self.dry_run,
            "applied": [f.as_dict() for f in self.applied],
            "skipped": [f.as_dict() for f in self.skipped],
            "failed": self.failed.as_dict() if self.failed else None,
            "error": {"code": self.error.code,
                      "message": str(self.error)}
                     if self.error else None,
            "partial": self.partial,
            "pending_retry": list(self.pending_retry),
        }


class AutoFixer:
    def __init__(self, git: GitClient, store: RetryFlagStore) -> None:
        self.git   = git
        self.store = store

    def _record_pushes(self, fix: Fix, error: SyncError | None) -> None:
        """Mirror per-remote push outcomes into the retry store."""
        pushes = iter_pushes(fix.operation)
        if not pushes: return
        if isinstance(error, CompositeError):
            failed = {id(step): err for step, err in error.failures}
            done   = {id(step) for step in error.applied}
            for push in pushes:
                if id(push) in failed:
                    record_push_outcome(self.store, push.remote,
                                        push.branch, failed[id(push)])
                elif id(push) in done:
                    record_push_outcome(self.store, push.remote,
                                        push.branch, None)
            return
        if isinstance(error, ValidationError): return
        for push in pushes:
            record_push_outcome(self.store, push.remote, push.branch,
                                error)

    def _flag_deferred(self, fix: Fix
                      ) -> list[tuple[PushOperation, ValidationError]]:
        """Set needs-retry markers for the remotes a fix left out."""
        pushes = iter_pushes(fix.operation)
        branch = pushes[0].branch if pushes else ""
        failures = []
        for remote in fix.deferred:
            err = ValidationError(
                f"{remote} is not reachable; push of {branch} deferred",
                code="DSY_VAL_REMOTE_UNAVAILABLE",
                hint="run `dualsync retry` once the remote is back")
            record_push_outcome(self.store, remote, branch, err)
            failures.append((PushOperation(remote, branch), err))
        return failures

    def apply_fix(self, fix: Fix, state: RepositoryState) -> None:
        """
        Validate then execute one fix.

        Raises ValidationError when the fix has no operation or a
        precondition fails; execution errors propagate unchanged.
        A fix with deferred remotes flags them for retry and then
        raises a partial CompositeError even when its pushes landed.
        """
        if fix.operation is None:
            raise ValidationError(f"{fix.scenario_id} has no automatic "
                                  "operation")
        op = fix.operation
        op.validate(state, self.git)
        logger.info("applying %s: %s", fix.scenario_id, op.describe())
        try: op.execute(self.git)
        except SyncError as e:
            self._record_pushes(fix, e)
            if fix.deferred: self._flag_deferred(fix)
            telemetry.emit_event("fix_failed", fix.scenario_id, {
                "operation": op.describe(), "code": e.code,
                "message": str(e)})
            raise
        self._record_pushes(fix, None)
        telemetry.emit_event("fix_applied", fix.scenario_id,
                             {"operation": op.describe()})
        if not fix.deferred: return
        raise CompositeError(
            f"{op.describe()}: {' and '.join(fix.deferred)} still pending",
            applied=tuple(iter_pushes(op)),
            failures=tuple(self._flag_deferred(fix)),
            code="DSY_OP_PARTIAL_PUSH")

    def apply_all(self, fixes: list[Fix], state: RepositoryState,
                  dry_run: bool = False) -> AutoFixResult:
        ordered = sorted(fixes, key=lambda f: (f.priority,
                                               f.scenario_id))
        applied: list[Fix] = []
        skipped: list[Fix] = []
        for i, fix in enumerate(ordered):
            if not fix.auto_fixable or fix.operation is None:
                skipped.append(fix)
                continue
            try:
                if dry_run: fix.operation.validate(state, self.git)
                else: self.apply_fix(fix, state)
            except SyncError as e:
                logger.warning("auto-fix stopped at %s: %s",
                               fix.scenario_id, e)
                partial = isinstance(e, CompositeError) and e.partial
                return AutoFixResult(
                    applied=tuple(applied),
                    skipped=tuple(skipped) + tuple(
                        f for f in ordered[i + 1:]),
                    failed=fix,
                    error=e,
                    partial=partial,
                    pending_retry=tuple(self.store.pending()),
                    dry_run=dry_run,
                )
            applied.append(fix)
        return AutoFixResult(applied=tuple(applied),
                             skipped=tuple(skipped),
                             pending_retry=tuple(self.store.pending()),
                             dry_run=dry_run)
