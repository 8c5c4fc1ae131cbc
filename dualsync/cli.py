#!/usr/bin/env python3
"""
Command-line entry point for `dualsync`.

Subcommands:
  status   classify the repository and print its state
  doctor   status plus prioritized fixes; exit 1 on errors
  fix      apply the auto-fixable fixes (stop at first failure)
  retry    re-send pushes flagged by an earlier partial push
  check    exit 1 while a configured remote is unreachable
  hooks    install, uninstall or inspect the pre-push hook

The CLI only wires configuration, logging and rendering around
the core; it never prompts.
"""


# ======================= STANDARDS =======================
import argparse
import json
import sys
import os

# ==================== THIRD-PARTIES ======================
from rich.console import Console

# ======================== LOCALS =========================
from .error_model import build_error_envelope
from .hooks import BACKUP_SUFFIX, HookManager
from .retry_store import GitConfigRetryStore
from .dualpush import retry_pending
from .classifier import Classifier
from .prober import RemoteProber
from .suggester import suggest_fixes
from .gitutils import GitClient
from .autofix import AutoFixer
from . import _constants as const
from . import __version__
from . import telemetry
from . import tables
from . import config
from . import report
from . import utils


FAILING_SEVERITIES = ("error", "critical")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="dualsync",
        description="Diagnose and repair a repository mirrored to a "
                    "core and a hub remote.")
    p.add_argument("--version", action="version",
        version=f"{const.APP} {__version__}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("path", nargs="?", default=".")
    common.add_argument("--core-remote", default=None)
    common.add_argument("--hub-remote", default=None)
    common.add_argument("--branch", dest="default_branch", default=None)
    common.add_argument("--no-fetch", dest="skip_fetch",
                        action="store_true", default=None)
    common.add_argument("--skip-corruption", action="store_true",
                        default=None)
    common.add_argument("--scan-dangling", action="store_true",
                        default=None)
    common.add_argument("--fetch-timeout", type=float, default=None)
    common.add_argument("--json", action="store_true")
    common.add_argument("--quiet", "-q", action="store_true")
    common.add_argument("--plain", action="store_true")
    common.add_argument("--debug", "-d", action="store_true")

    sub = p.add_subparsers(dest="command", required=True)
    sub.add_parser("status", parents=[common])
    sub.add_parser("doctor", parents=[common])
    fix = sub.add_parser("fix", parents=[common])
    fix.add_argument("--dry-run", "-n", action="store_true")
    sub.add_parser("retry", parents=[common])
    sub.add_parser("check", parents=[common])
    hooks = sub.add_parser("hooks")
    actions = hooks.add_subparsers(dest="hooks_action", required=True)
    install = actions.add_parser("install", parents=[common])
    install.add_argument("--force", action="store_true")
    actions.add_parser("uninstall", parents=[common])
    actions.add_parser("status", parents=[common])
    return p


_OVERRIDE_DESTS = ("core_remote", "hub_remote", "default_branch",
                   "skip_fetch", "skip_corruption", "scan_dangling",
                   "fetch_timeout")


def parse_args(argv: list[str]) -> argparse.Namespace:
    return _build_parser().parse_args(argv)


def _settings(args: argparse.Namespace) -> config.Settings:
    overrides = {k: getattr(args, k, None) for k in _OVERRIDE_DESTS}
    return config.load_settings(args.path, overrides)


def _emit_json(payload: dict[str, object]) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _failing(fixes: list) -> bool:
    for fix in fixes:
        found = tables.scenario(fix.scenario_id)
        if fix.scenario_id in tables.SENTINELS: return True
        if found is not None and found.severity in FAILING_SEVERITIES:
            return True
    return False


def _check(git: GitClient, args: argparse.Namespace,
           out: utils.Output) -> int:
    """Reachability gate the pre-push hook runs."""
    ex = RemoteProber(git).detect_existence()
    down = [remote for remote, present, reachable in (
                (ex.core_remote, ex.core_exists, ex.core_reachable),
                (ex.hub_remote, ex.hub_exists, ex.hub_reachable))
            if present and not reachable]
    if args.json:
        _emit_json({"existence": ex.as_dict(), "unreachable": down})
    else:
        for remote in down:
            out.warn(f"{remote} is not reachable; push refused")
        if not down: out.success("configured remotes are reachable")
    return 1 if down else 0


def _hooks(git: GitClient, args: argparse.Namespace,
           out: utils.Output) -> int:
    if not git.local_exists():
        out.warn(f"not a git repository: {args.path}")
        return 1
    manager = HookManager(git)
    if args.hooks_action == "status":
        installed = manager.is_installed()
        if args.json:
            _emit_json({"installed": installed,
                        "hooks_dir": str(manager.hooks_dir())})
        elif installed: out.success("pre-push hook installed")
        else: out.info("pre-push hook not installed")
        return 0

    report = manager.install(force=args.force) \
             if args.hooks_action == "install" else manager.uninstall()
    if args.json:
        _emit_json(report.as_dict())
        return 1 if report.skipped else 0
    for name in report.backed_up:
        out.info(f"existing {name} hook saved as {name}{BACKUP_SUFFIX}")
    for name in report.installed: out.success(f"installed {name} hook")
    for name in report.skipped:
        out.warn(f"{name} hook was not written by dualsync; rerun with "
                 "--force to replace it")
    for name in report.removed: out.success(f"removed {name} hook")
    for name in report.restored: out.info(f"restored previous {name} hook")
    return 1 if report.skipped else 0


def run(args: argparse.Namespace, settings: config.Settings,
        out: utils.Output, console: Console) -> int:
    for diag in () if args.json else settings.diagnostics:
        out.warn(f"config {diag['source']}:{diag['key']}: "
                 f"{diag['message']}")
    git   = GitClient.for_path(args.path, settings)
    if args.command == "check": return _check(git, args, out)
    if args.command == "hooks": return _hooks(git, args, out)
    store = GitConfigRetryStore(git)
    state = Classifier(args.path, settings, store=store, git=git).detect()

    if args.command == "retry":
        branch = state.sync.branch or state.default_branch
        if not state.existence.local_exists or not branch:
            out.warn("nothing to retry: no local branch resolved")
            return 1
        result = retry_pending(git, state, branch, store)
        if args.json: _emit_json(result.as_dict())
        else:
            for remote in result.applied: out.success(f"pushed to {remote}")
            for remote, err in result.errors.items():
                out.warn(f"{remote} still pending: {err}")
            if not result.applied and not result.errors:
                out.info("no pending retries")
        return 0 if result.ok else 1

    fixes = suggest_fixes(state)
    if args.command == "fix":
        result = AutoFixer(git, store).apply_all(
            fixes, state, dry_run=args.dry_run)
        if args.json: _emit_json(result.as_dict())
        else: console.print(report.render_autofix(result))
        return 0 if result.ok else 1

    if args.json:
        payload = {"state": state.as_dict()}
        if args.command == "doctor":
            payload["fixes"] = [f.as_dict() for f in fixes]
        _emit_json(payload)
    elif args.command == "doctor":
        report.print_report(console, state, fixes)
    else:
        console.print(report.render_state(state))
    if args.command == "doctor" and _failing(fixes): return 1
    return 0


def _persist_error_envelope(log_dir: str, envelope: dict[str, object],
                            out: utils.Output) -> None:
    path = os.path.join(log_dir, "last_error_envelope.json")
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(envelope, f, indent=2)
        telemetry.emit_event("runtime_error",
                             str(envelope.get("operation", "cli")),
                             dict(envelope))
        out.warn(f"error envelope written: {utils.pathit(path)}")
    except OSError as e:
        out.warn(f"failed to persist error envelope: {e}")


def main(argv: list[str] | None = None) -> None:
    """CLI entry point; exits with the command's status code."""
    args = parse_args(sys.argv[1:] if argv is None else argv)
    out  = utils.Output(quiet=args.quiet or args.json, plain=args.plain)
    console = Console(no_color=args.plain, quiet=args.quiet)
    settings = _settings(args)
    log_dir  = utils.get_log_dir(os.path.abspath(args.path),
                                 settings.log_dir)
    telemetry.set_run_id()
    utils.configure_logger(log_dir)
    code = 0
    try: code = run(args, settings, out, console)
    except KeyboardInterrupt as e:
        out.raw()
        out.warn("forced exit")
        envelope = build_error_envelope(e, args.command,
                   {"path": os.path.abspath(args.path)})
        _persist_error_envelope(str(log_dir),
                                envelope.with_runtime_schema(), out)
        code = 130
    except Exception as e:
        if args.debug: raise
        envelope = build_error_envelope(e, args.command,
                   {"path": os.path.abspath(args.path)})
        out.warn(f"ERROR: {e}")
        _persist_error_envelope(str(log_dir),
                                envelope.with_runtime_schema(), out)
        code = 1
    sys.exit(code)
