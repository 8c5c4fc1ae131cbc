"""
Per-remote "needs retry" markers left by partial pushes.

A marker remembers the branch whose push did not land. Clearing
a marker with a different branch leaves it in place, so pushing
some other branch never hides an unfinished one.
"""
from __future__ import annotations

from typing import Protocol
import threading

from .gitutils import GitClient


class RetryFlagStore(Protocol):
    def get(self, remote: str) -> bool: ...
    def set(self, remote: str, flag: bool, branch: str = "") -> None: ...
    def branch_of(self, remote: str) -> str: ...
    def pending(self) -> tuple[str, ...]: ...


def _keeps(held: str, branch: str) -> bool:
    """True when clearing for `branch` must not drop a marker for `held`."""
    return bool(held and branch and held != branch)


class MemoryRetryStore:
    """Process-local store; what tests and one-shot runs use."""

    def __init__(self, initial: dict[str, bool | str] | None = None
                ) -> None:
        self._lock  = threading.Lock()
        self._flags = {remote: "" if value is True else str(value)
                       for remote, value in (initial or {}).items()
                       if value}

    def get(self, remote: str) -> bool:
        with self._lock: return remote in self._flags

    def set(self, remote: str, flag: bool, branch: str = "") -> None:
        with self._lock:
            if flag:
                self._flags[remote] = branch
                return
            if _keeps(self._flags.get(remote, ""), branch): return
            self._flags.pop(remote, None)

    def branch_of(self, remote: str) -> str:
        with self._lock: return self._flags.get(remote, "")

    def pending(self) -> tuple[str, ...]:
        with self._lock: return tuple(sorted(self._flags))


class GitConfigRetryStore:
    """
    Markers kept in the repository's local git config as
    `dualsync.<remote>.needs-retry`, so they survive between runs.
    The value is the branch to re-send, or `true` when unknown.
    """
    SECTION = "dualsync"
    ANY     = "true"

    def __init__(self, git: GitClient,
                 remotes: tuple[str, ...] = ()) -> None:
        self.git     = git
        self.remotes = remotes or (git.settings.core_remote,
                                   git.settings.hub_remote)

    def _key(self, remote: str) -> str:
        return f"{self.SECTION}.{remote}.needs-retry"

    def get(self, remote: str) -> bool:
        return bool(self.git.config_get(self._key(remote)))

    def set(self, remote: str, flag: bool, branch: str = "") -> None:
        if flag:
            self.git.config_set(self._key(remote), branch or self.ANY)
            return
        if _keeps(self.branch_of(remote), branch): return
        self.git.config_unset(self._key(remote))

    def branch_of(self, remote: str) -> str:
        value = self.git.config_get(self._key(remote))
        return "" if value == self.ANY else value

    def pending(self) -> tuple[str, ...]:
        return tuple(r for r in self.remotes if self.get(r))
