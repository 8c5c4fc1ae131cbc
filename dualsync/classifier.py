"""
`Classifier.detect()`: one immutable snapshot per call.

Order of work:
1) existence (gate: a missing local repository ends detection)
2) fetch phase on a small pool, concurrently with working tree
   and corruption detection on the calling thread
3) join, then sync and branch topology on fresh refs

A failing detector yields its dimension's unknown sentinel plus
a warning; it never aborts the call.
"""
from __future__ import annotations

# ======================= STANDARDS =======================
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from dataclasses import replace
from typing import Callable, TypeVar
from pathlib import Path
import logging as log
import time

# ======================== LOCALS =========================
from .state import (
    CorruptionState,
    ExistenceState,
    RepositoryState,
    StateWarning,
    SyncState,
    WorkingTreeState,
)
from .platform import GET_DEFAULT_BRANCH, RemotePlatform, query
from .retry_store import MemoryRetryStore, RetryFlagStore
from .error_model import SyncError
from .prober import FetchOutcome, RemoteProber
from .gitutils import GitClient
from .config import Settings
from . import _constants as const
from . import detectors
from . import telemetry
from . import tables


logger = log.getLogger("dualsync.classifier")

T = TypeVar("T")


def _na_state(path: str, existence: ExistenceState,
              warnings: list[StateWarning]) -> RepositoryState:
    na = tables.NOT_APPLICABLE
    if existence.id != tables.E_UNKNOWN:
        warnings.append(StateWarning(
            "W_LOCAL_MISSING", "no local repository; other "
            "dimensions not evaluated", dimension="existence"))
    return RepositoryState(
        path=path,
        existence=existence,
        working_tree=WorkingTreeState(id=na),
        sync=SyncState(id=na),
        corruption=CorruptionState(id=na),
        warnings=tuple(warnings),
    )


class Classifier:
    def __init__(self, path: str | Path, settings: Settings,
                 store: RetryFlagStore | None = None,
                 platform: RemotePlatform | None = None,
                 git: GitClient | None = None) -> None:
        self.settings = settings
        self.git      = git or GitClient.for_path(path, settings)
        self.path     = self.git.path
        self.prober   = RemoteProber(self.git)
        self.store    = store if store is not None else MemoryRetryStore()
        self.platform = platform

    def _guard(self, dimension: str, fn: Callable[[], T],
               fallback: T, warnings: list[StateWarning]) -> T:
        try: return fn()
        except SyncError as e:
            logger.warning("%s detection failed: %s", dimension, e)
            warnings.append(StateWarning(
                "W_DETECTOR_FAILED", f"{dimension}: {e}",
                dimension=dimension))
            return fallback

    def resolve_default_branch(self, existence: ExistenceState) -> str:
        if self.settings.default_branch:
            return self.settings.default_branch
        for remote, present in ((existence.core_remote,
                                 existence.core_exists),
                                (existence.hub_remote,
                                 existence.hub_exists)):
            if not present: continue
            name = self.git.remote_head_branch(remote)
            if name: return name
        from_platform = query(self.platform, GET_DEFAULT_BRANCH)
        if isinstance(from_platform, str) and from_platform:
            return from_platform
        current = self.git.current_branch()
        if current: return current
        for name in const.FALLBACK_BRANCHES:
            if self.git.ref_exists(f"refs/heads/{name}"): return name
        return ""

    def _pending_retry(self, warnings: list[StateWarning]
                      ) -> tuple[tuple[str, ...], tuple[tuple[str, str], ...]]:
        try:
            pending  = tuple(self.store.pending())
            branches = tuple((r, self.store.branch_of(r)) for r in pending)
        except SyncError as e:
            logger.warning("retry flags unreadable: %s", e)
            warnings.append(StateWarning(
                "W_DETECTOR_FAILED", f"retry flags: {e}",
                dimension="retry"))
            return (), ()
        for remote in pending:
            warnings.append(StateWarning(
                "W_NEEDS_RETRY",
                f"an earlier push to {remote} did not complete",
                dimension="sync", remote=remote))
        return pending, tuple((r, b) for r, b in branches if b)

    def detect(self) -> RepositoryState:
        started  = time.monotonic()
        warnings: list[StateWarning] = []
        existence = self._guard(
            "existence", self.prober.detect_existence,
            ExistenceState(id=tables.E_UNKNOWN, local_exists=False,
                           core_exists=False, hub_exists=False,
                           core_remote=self.settings.core_remote,
                           hub_remote=self.settings.hub_remote),
            warnings)
        if not existence.local_exists:
            state = _na_state(self.path, existence, warnings)
            return self._finish(state, started)
        pending, retry_branches = self._pending_retry(warnings)

        for remote, present, reachable in (
                (existence.core_remote, existence.core_exists,
                 existence.core_reachable),
                (existence.hub_remote, existence.hub_exists,
                 existence.hub_reachable)):
            if present and not reachable:
                warnings.append(StateWarning(
                    "W_NETWORK_UNREACHABLE",
                    f"{remote} did not answer; using cached refs",
                    dimension="existence", remote=remote))

        outcomes: dict[str, FetchOutcome] = {}
        stale = existence.core_exists and not existence.core_reachable \
                or existence.hub_exists and not existence.hub_reachable
        workers = max(1, len(self.prober.fetchable(existence)))
        with ThreadPoolExecutor(max_workers=workers,
                                thread_name_prefix="dsync-fetch") as pool:
            futures = {} if self.settings.skip_fetch \
                      else self.prober.start_fetch(pool, existence)

            worktree = self._guard(
                "working_tree", lambda: detectors.detect_working_tree(
                    self.git),
                WorkingTreeState(id=tables.W_UNKNOWN, clean=False),
                warnings)
            if self.settings.skip_corruption:
                corruption = CorruptionState(id=tables.NOT_APPLICABLE)
            else:
                corruption = self._guard(
                    "corruption", lambda: detectors.detect_corruption(
                        self.git, self.settings.large_object_bytes,
                        detached=worktree.detached_head,
                        shallow=worktree.shallow,
                        scan_dangling=self.settings.scan_dangling),
                    CorruptionState(id=tables.C_UNKNOWN), warnings)

            # explicit join before any remote ref is read
            outcomes = self.prober.join(futures)

        if self.settings.skip_fetch and self.prober.fetchable(existence):
            stale = True
        for remote, outcome in sorted(outcomes.items()):
            if outcome.ok: continue
            stale = True
            warnings.append(StateWarning(
                "W_STALE_REMOTE_DATA",
                f"fetch {remote} failed ({outcome.kind}): "
                f"{outcome.message}",
                dimension="sync", remote=remote))

        branch = self._guard("sync", lambda:
                             self.resolve_default_branch(existence),
                             "", warnings)
        sync = self._guard(
            "sync", lambda: self._sync(existence, branch, warnings),
            SyncState(id=tables.S_UNKNOWN, branch=branch), warnings)
        branches: tuple = ()
        if not self.settings.skip_branches:
            entries, truncated = self._guard(
                "branches", lambda: detectors.detect_branches(
                    self.git, existence, self.settings.max_branches),
                ((), False), warnings)
            branches = entries
            if truncated:
                warnings.append(StateWarning(
                    "W_BRANCHES_TRUNCATED",
                    f"only the first {self.settings.max_branches} "
                    "branches were analyzed", dimension="branches"))

        warnings.extend(self._informational(worktree, corruption))
        state = RepositoryState(
            path=self.path,
            existence=existence,
            working_tree=worktree,
            sync=sync,
            corruption=corruption,
            branches=branches,
            default_branch=branch,
            warnings=tuple(warnings),
            stale=bool(stale),
            pending_retry=pending,
            retry_branches=retry_branches,
        )
        return self._finish(state, started)

    def _sync(self, existence: ExistenceState, branch: str,
              warnings: list[StateWarning]) -> SyncState:
        sync, extra = detectors.detect_sync(self.git, existence, branch)
        warnings.extend(extra)
        return sync

    @staticmethod
    def _informational(worktree: WorkingTreeState,
                       corruption: CorruptionState
                      ) -> list[StateWarning]:
        found = []
        if corruption.lfs_active:
            found.append(StateWarning("W_LFS_ENABLED",
                         "Git LFS tracks files here", "corruption"))
        if worktree.detached_head:
            found.append(StateWarning("W_DETACHED_HEAD",
                         "HEAD is detached", "working_tree"))
        if worktree.shallow:
            found.append(StateWarning("W_SHALLOW_CLONE",
                         "repository is a shallow clone",
                         "working_tree"))
        for path in worktree.orphaned_submodules:
            found.append(StateWarning("W_ORPHANED_SUBMODULE",
                         f"{path} is a gitlink missing from "
                         ".gitmodules", "working_tree"))
        return found

    @staticmethod
    def _finish(state: RepositoryState, started: float
               ) -> RepositoryState:
        elapsed = int((time.monotonic() - started) * 1000)
        stamped = replace(
            state,
            detected_at=datetime.now(timezone.utc).isoformat(
                timespec="seconds").replace("+00:00", "Z"),
            detection_ms=elapsed)
        telemetry.emit_event("detect_complete", "detect", {
            "existence": state.existence.id,
            "working_tree": state.working_tree.id,
            "sync": state.sync.id,
            "corruption": state.corruption.id,
            "branches": len(state.branches),
            "stale": state.stale,
            "elapsed_ms": elapsed,
        })
        logger.info("detect %s: %s %s %s %s in %sms", state.path,
                    state.existence.id, state.working_tree.id,
                    state.sync.id, state.corruption.id, elapsed)
        return stamped
