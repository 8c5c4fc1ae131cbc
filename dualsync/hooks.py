"""
Git hook installation.

A single `pre-push` hook runs `dualsync check`, which refuses
the push while a configured remote is unreachable. Foreign
hooks are left alone unless `force` is given, in which case
they are moved aside and restored on uninstall.
"""
from __future__ import annotations

# ======================= STANDARDS =======================
from dataclasses import dataclass
from pathlib import Path
import logging as log
import stat

# ======================== LOCALS =========================
from .gitutils import GitClient
from . import telemetry


logger = log.getLogger("dualsync.hooks")

MARKER        = "# dualsync pre-push hook"
BACKUP_SUFFIX = ".dualsync-backup"
HOOK_NAMES    = ("pre-push",)

PRE_PUSH = f"""#!/bin/sh
{MARKER}
# Refuses the push while a configured remote is unreachable.
exec dualsync check --quiet --plain .
"""


@dataclass(frozen=True)
class HookReport:
    installed: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    backed_up: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()
    restored: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, list[str]]:
        return {"installed": list(self.installed),
                "skipped": list(self.skipped),
                "backed_up": list(self.backed_up),
                "removed": list(self.removed),
                "restored": list(self.restored)}


def _ours(path: Path) -> bool:
    try: return MARKER in path.read_text(encoding="utf-8",
                                         errors="replace")
    except OSError: return False


class HookManager:
    def __init__(self, git: GitClient) -> None:
        self.git = git

    def hooks_dir(self) -> Path:
        return self.git.git_path("hooks")

    def is_installed(self) -> bool:
        hooks = self.hooks_dir()
        return all(_ours(hooks / name) for name in HOOK_NAMES)

    def install(self, force: bool = False) -> HookReport:
        """
        Write the dualsync hooks.

        An existing hook that dualsync did not write is skipped,
        or with `force` renamed to `<name>.dualsync-backup`
        first. Reinstalling over our own hook just rewrites it.
        """
        hooks = self.hooks_dir()
        hooks.mkdir(parents=True, exist_ok=True)
        installed, skipped, backed_up = [], [], []
        for name in HOOK_NAMES:
            path = hooks / name
            if path.exists() and not _ours(path):
                if not force:
                    skipped.append(name)
                    continue
                path.replace(path.with_name(name + BACKUP_SUFFIX))
                backed_up.append(name)
            path.write_text(PRE_PUSH, encoding="utf-8")
            path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP
                       | stat.S_IXOTH)
            installed.append(name)
        report = HookReport(installed=tuple(installed),
                            skipped=tuple(skipped),
                            backed_up=tuple(backed_up))
        logger.info("hooks in %s: %s", hooks, report.as_dict())
        telemetry.emit_event("hooks_install", "hooks", report.as_dict())
        return report

    def uninstall(self) -> HookReport:
        """Remove our hooks and put any backed-up hook back."""
        hooks = self.hooks_dir()
        removed, restored = [], []
        for name in HOOK_NAMES:
            path   = hooks / name
            backup = path.with_name(name + BACKUP_SUFFIX)
            if path.exists() and _ours(path):
                path.unlink()
                removed.append(name)
            if backup.exists() and not path.exists():
                backup.replace(path)
                restored.append(name)
        report = HookReport(removed=tuple(removed),
                            restored=tuple(restored))
        telemetry.emit_event("hooks_uninstall", "hooks", report.as_dict())
        return report
