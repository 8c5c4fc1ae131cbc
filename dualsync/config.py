"""Layered runtime configuration for dualsync.

Precedence order (low -> high):
1) built-in defaults
2) pyproject.toml ([tool.dualsync])
3) git config (global, then local repository)
4) environment variables
5) explicit overrides (CLI options or caller kwargs)

The result is a frozen `Settings` value handed to every
component that needs it; nothing here is global.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
import subprocess
import os

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]

from . import _constants as const


@dataclass(frozen=True)
class OptionSpec:
    dest: str
    git_key: str
    env_key: str
    kind: str  # "bool" | "str" | "int" | "float"


SPECS: tuple[OptionSpec, ...] = (
    OptionSpec("core_remote", "core-remote", "DUALSYNC_CORE_REMOTE", "str"),
    OptionSpec("hub_remote", "hub-remote", "DUALSYNC_HUB_REMOTE", "str"),
    OptionSpec("core_url", "core-url", "DUALSYNC_CORE_URL", "str"),
    OptionSpec("hub_url", "hub-url", "DUALSYNC_HUB_URL", "str"),
    OptionSpec("default_branch", "default-branch", "DUALSYNC_DEFAULT_BRANCH", "str"),
    OptionSpec("fetch_timeout", "fetch-timeout", "DUALSYNC_FETCH_TIMEOUT", "float"),
    OptionSpec("operation_timeout", "operation-timeout", "DUALSYNC_OPERATION_TIMEOUT", "float"),
    OptionSpec("quick_timeout", "quick-timeout", "DUALSYNC_QUICK_TIMEOUT", "float"),
    OptionSpec("skip_fetch", "skip-fetch", "DUALSYNC_SKIP_FETCH", "bool"),
    OptionSpec("skip_corruption", "skip-corruption", "DUALSYNC_SKIP_CORRUPTION", "bool"),
    OptionSpec("skip_branches", "skip-branches", "DUALSYNC_SKIP_BRANCHES", "bool"),
    OptionSpec("scan_dangling", "scan-dangling", "DUALSYNC_SCAN_DANGLING", "bool"),
    OptionSpec("max_branches", "max-branches", "DUALSYNC_MAX_BRANCHES", "int"),
    OptionSpec("large_object_mb", "large-object-mb", "DUALSYNC_LARGE_OBJECT_MB", "int"),
    OptionSpec("log_dir", "log-dir", "DUALSYNC_LOG_DIR", "str"),
)


@dataclass(frozen=True)
class Settings:
    core_remote: str = const.DEFAULT_CORE
    hub_remote: str = const.DEFAULT_HUB
    core_url: str = ""
    hub_url: str = ""
    default_branch: str = ""
    fetch_timeout: float = const.FETCH_TIMEOUT
    operation_timeout: float = const.OPERATION_TIMEOUT
    quick_timeout: float = const.QUICK_TIMEOUT
    skip_fetch: bool = False
    skip_corruption: bool = False
    skip_branches: bool = False
    scan_dangling: bool = False
    max_branches: int = const.MAX_BRANCHES
    large_object_mb: int = const.LARGE_OBJECT_MB
    log_dir: str = ""
    sources: dict[str, str] = field(default_factory=dict,
                                    compare=False)
    diagnostics: tuple[dict[str, str], ...] = field(default=(),
                                                    compare=False)

    @property
    def large_object_bytes(self) -> int:
        return int(self.large_object_mb) * 1024 * 1024

    def remote_for(self, role: str) -> str:
        """Map a remote role (core/hub) to its configured name."""
        if role == const.CORE: return self.core_remote
        if role == const.HUB: return self.hub_remote
        raise KeyError(role)

    def with_overrides(self, **values: object) -> "Settings":
        clean = {k: v for k, v in values.items() if v is not None}
        return replace(self, **clean)  # type: ignore[arg-type]

    def as_dict(self) -> dict[str, object]:
        return {f.name: getattr(self, f.name) for f in fields(self)
                if f.name not in ("sources", "diagnostics")}


def _parse_bool(raw: str) -> bool | None:
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}: return True
    if value in {"0", "false", "no", "off"}: return False
    return None


def _parse_bool_like(raw: object) -> bool | None:
    if isinstance(raw, bool): return raw
    if isinstance(raw, str): return _parse_bool(raw)
    return None


def _repo_root(path: str) -> str | None:
    cur = os.path.abspath(path)
    while True:
        if os.path.isdir(os.path.join(cur, ".git")): return cur
        parent = os.path.dirname(cur)
        if parent == cur: return None
        cur = parent


def _find_pyproject(path: str) -> Path | None:
    cur = Path(path).expanduser().resolve()
    if cur.is_file(): cur = cur.parent
    while True:
        candidate = cur / "pyproject.toml"
        if candidate.is_file(): return candidate
        if cur.parent == cur: return None
        cur = cur.parent


def _diag(level: str, source: str, key: str, raw: object,
          message: str) -> dict[str, str]:
    return {
        "level": level,
        "source": source,
        "key": key,
        "raw": str(raw),
        "message": message,
    }


def _load_pyproject_overrides(path: str) -> tuple[dict[str, object],
                                                   list[dict[str, str]]]:
    pyproject = _find_pyproject(path)
    if pyproject is None: return {}, []
    try:
        data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        msg = f"failed to parse pyproject.toml: {exc}"
        return {}, [_diag("error", "pyproject", "tool.dualsync", "", msg)]

    table = data.get("tool", {}).get("dualsync")
    if table is None: return {}, []
    if not isinstance(table, dict):
        msg = "tool.dualsync must be a TOML table, e.g. [tool.dualsync]"
        return {}, [_diag("error", "pyproject", "tool.dualsync",
                          type(table).__name__, msg)]

    key_to_spec = {spec.git_key: spec for spec in SPECS}
    values: dict[str, object] = {}
    diagnostics: list[dict[str, str]] = []
    for raw_key, raw_val in table.items():
        key = str(raw_key).strip().lower().replace("_", "-")
        spec = key_to_spec.get(key)
        if spec is None:
            msg = "unknown key in [tool.dualsync]"
            diagnostics.append(_diag("warning", "pyproject", str(raw_key),
                                     raw_val, msg))
            continue
        values[spec.dest] = raw_val
    return values, diagnostics


def _read_git_scope(scope_args: list[str],
                    repo: str | None = None) -> dict[str, str]:
    """
    `git config --get-regexp` for one scope, run with the same
    environment and per-directory lock as every other git call.
    """
    from .executor import DIRECTORY_LOCKS, build_env

    cmd = ["git"]
    if repo: cmd += ["-C", repo]
    cmd += ["config", *scope_args, "--get-regexp", r"^dualsync\."]
    cwd = repo or os.getcwd()
    try:
        with DIRECTORY_LOCKS.lock_for(cwd):
            cp = subprocess.run(cmd, check=False, capture_output=True,
                                text=True, env=build_env(), cwd=cwd,
                                timeout=const.QUICK_TIMEOUT)
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return {}
    if cp.returncode != 0: return {}
    out: dict[str, str] = {}
    for line in cp.stdout.splitlines():
        if not line.strip(): continue
        key, _, value = line.partition(" ")
        out[key.strip()] = value.strip()
    return out


def _load_git_overrides(path: str) -> dict[str, str]:
    values = _read_git_scope(["--global"])
    repo = _repo_root(path)
    if repo: values.update(_read_git_scope(["--local"], repo=repo))
    mapped: dict[str, str] = {}
    for spec in SPECS:
        key = f"dualsync.{spec.git_key}"
        if key in values: mapped[spec.dest] = values[key]
    return mapped


def _load_env_overrides() -> dict[str, str]:
    out: dict[str, str] = {}
    for spec in SPECS:
        raw = os.environ.get(spec.env_key)
        if raw is not None: out[spec.dest] = raw
    return out


def _coerce(spec: OptionSpec, raw: object, source: str,
            diagnostics: list[dict[str, str]]) -> object | None:
    if spec.kind == "bool":
        value = _parse_bool_like(raw)
        if value is None:
            msg = f"invalid boolean value for {spec.dest}; use true/false"
            diagnostics.append(_diag("warning", source, spec.dest, raw, msg))
        return value
    if spec.kind in ("int", "float"):
        cast = int if spec.kind == "int" else float
        if isinstance(raw, bool):
            number = None
        else:
            try: number = cast(raw)  # type: ignore[arg-type]
            except (TypeError, ValueError): number = None
        if number is None or number <= 0:
            msg = f"invalid value for {spec.dest}; expected a positive number"
            diagnostics.append(_diag("warning", source, spec.dest, raw, msg))
            return None
        return number
    if not isinstance(raw, str):
        msg = f"invalid value type for {spec.dest}; expected string"
        diagnostics.append(_diag("warning", source, spec.dest, raw, msg))
        return None
    return raw.strip()


def load_settings(path: str = ".",
                  overrides: dict[str, object] | None = None
                 ) -> Settings:
    """Resolve `Settings` for the repository at `path`."""
    explicit  = {k: v for k, v in (overrides or {}).items()
                 if v is not None}
    py_vals, diagnostics = _load_pyproject_overrides(path)
    layers: tuple[tuple[str, dict[str, object]], ...] = (
        ("pyproject", py_vals),
        ("git", dict(_load_git_overrides(path))),
        ("env", dict(_load_env_overrides())),
        ("cli", explicit),
    )
    values: dict[str, object] = {}
    sources = {spec.dest: "default" for spec in SPECS}

    for spec in SPECS:
        for source, layer in layers:
            if spec.dest not in layer: continue
            value = _coerce(spec, layer[spec.dest], source, diagnostics)
            if value is None: continue
            values[spec.dest] = value
            sources[spec.dest] = source
    return Settings(**values, sources=sources,  # type: ignore[arg-type]
                    diagnostics=tuple(diagnostics))
