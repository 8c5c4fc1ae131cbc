"""
Command executor for every git subprocess the core issues.

All calls against one working directory are serialized by a
per-directory lock held for exactly one subprocess call.
Calls run non-interactively with a pinned locale and an
enforced deadline.
"""
from __future__ import annotations

# ======================= STANDARDS =======================
from dataclasses import dataclass
from pathlib import Path
import logging as log
import subprocess
import threading
import time
import os

# ======================== LOCALS =========================
from .error_model import AuthError, ExecError, GitTimeoutError
from .stderr_classifier import classify
from .config import Settings
from . import telemetry


logger = log.getLogger("dualsync.executor")

NON_INTERACTIVE_ENV: dict[str, str] = {
    "GIT_TERMINAL_PROMPT": "0",
    "GCM_INTERACTIVE": "never",
    "LC_ALL": "C",
    "LANG": "C",
}


@dataclass(frozen=True)
class CommandResult:
    output: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool: return self.exit_code == 0

    @property
    def lines(self) -> list[str]:
        return [ln for ln in self.output.splitlines() if ln.strip()]


class LockRegistry:
    """Hands out one lock per resolved working directory."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def lock_for(self, path: str | Path) -> threading.Lock:
        key = os.path.realpath(str(path))
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock


# Shared across executors so two instances on one directory
# still serialize.
DIRECTORY_LOCKS = LockRegistry()


def build_env(base: dict[str, str] | None = None) -> dict[str, str]:
    """Environment for a non-interactive, locale-stable git call."""
    env = dict(os.environ if base is None else base)
    env.update(NON_INTERACTIVE_ENV)
    env.pop("SSH_ASKPASS", None)
    env.pop("GIT_ASKPASS", None)
    env.setdefault("GIT_SSH_COMMAND", "ssh -o BatchMode=yes")
    return env


class Executor:
    """Runs git subcommands against one working directory."""

    def __init__(self, repo_path: str | Path, settings: Settings,
                 locks: LockRegistry | None = None,
                 git_binary: str = "git") -> None:
        self.repo_path = str(Path(repo_path).expanduser().resolve())
        self.settings  = settings
        self.git       = git_binary
        self._locks    = locks or DIRECTORY_LOCKS
        self._env      = build_env()

    def _cwd(self) -> str:
        # An absent repository still needs a real cwd for
        # commands such as `ls-remote <url>`.
        if os.path.isdir(self.repo_path): return self.repo_path
        return os.path.dirname(self.repo_path) or os.getcwd()

    def run(self, args: list[str], timeout: float | None = None,
            check: bool = False, stdin: str | None = None
           ) -> CommandResult:
        """
        Run `git <args>` and return its output and exit code.

        Raises:
            GitTimeoutError: the deadline expired; the child was
                killed.
            AuthError: stderr shows a rejected credential or a
                prompt that non-interactive mode refused.
            ExecError: git could not be launched, or `check` is
                set and the exit code is non-zero.
        """
        deadline = self.settings.operation_timeout \
                   if timeout is None else timeout
        cmd   = [self.git, *args]
        cwd   = self._cwd()
        label = " ".join(args[:2])
        logger.debug("RUN: %s (cwd=%s, timeout=%ss)",
                     " ".join(cmd), cwd, deadline)

        started = time.monotonic()
        with self._locks.lock_for(cwd):
            try:
                cp = subprocess.run(
                    cmd,
                    cwd=cwd,
                    env=self._env,
                    input=stdin,
                    stdin=None if stdin is not None
                          else subprocess.DEVNULL,
                    capture_output=True,
                    text=True,
                    errors="replace",
                    timeout=deadline,
                    check=False,
                )
            except subprocess.TimeoutExpired as e:
                logger.warning("git %s timed out after %ss",
                               label, deadline)
                self._emit(args, -1, started, "timeout")
                raise GitTimeoutError(
                    f"git {label} exceeded {deadline}s deadline",
                    hint="retry later or raise the timeout",
                ) from e
            except OSError as e:
                logger.exception("Subprocess invocation failed: %s", e)
                raise ExecError(f"failed to launch git: {e}",
                                hint="is git installed and on PATH?"
                               ) from e

        result = CommandResult(cp.stdout or "", cp.stderr or "",
                               int(cp.returncode))
        logger.debug("RC=%s stdout=%r stderr=%r", result.exit_code,
                     result.output[:500], result.stderr[:500])
        if result.ok:
            self._emit(args, 0, started, "ok")
            return result

        classified = classify(result.stderr)
        self._emit(args, result.exit_code, started, classified.code)
        if classified.kind == "auth":
            raise AuthError(f"git {label} was refused: credentials "
                            "rejected or prompt required",
                            stderr=result.stderr,
                            hint="configure a credential helper or "
                            "SSH agent")
        if check:
            raise ExecError(
                f"git {label} failed with exit {result.exit_code}",
                code=classified.code if classified.code
                     not in ("DSY_GIT_UNCLASSIFIED",
                             "DSY_GIT_EMPTY_STDERR") else "",
                stderr=result.stderr,
                exit_code=result.exit_code,
            )
        return result

    def _emit(self, args: list[str], rc: int, started: float,
              outcome: str) -> None:
        telemetry.emit_event(
            event_type="git_command",
            step_id=args[0] if args else "git",
            payload={
                "args": list(args),
                "rc": rc,
                "outcome": outcome,
                "elapsed_ms": int((time.monotonic() - started) * 1000),
            },
        )
