from __future__ import annotations

# ======================= STANDARDS =======================
from collections.abc import Sequence

# ==================== THIRD-PARTIES ======================
from rich.console import Console, Group, RenderableType
from rich.table import Table
from rich.panel import Panel
from rich.box import MINIMAL
from rich.text import Text

# ======================== LOCALS =========================
from .autofix import AutoFixResult
from .state import RepositoryState
from .suggester import Fix
from . import tables


SEVERITY_STYLE = {
    "critical": "bold red",
    "error": "red",
    "warning": "yellow",
    "info": "cyan",
}


def _style(scenario_id: str) -> str:
    found = tables.scenario(scenario_id)
    if found is None: return "magenta"
    return SEVERITY_STYLE.get(found.severity, "white")


def _dimension_row(table: Table, label: str, scenario_id: str,
                   detail: str) -> None:
    table.add_row(label, Text(scenario_id, style=_style(scenario_id)),
                  tables.describe(scenario_id), detail)


def render_state(state: RepositoryState) -> RenderableType:
    dims = Table(box=MINIMAL, show_header=True, header_style="bold")
    dims.add_column("dimension")
    dims.add_column("id")
    dims.add_column("state")
    dims.add_column("detail", overflow="fold")

    ex = state.existence
    _dimension_row(dims, "existence", ex.id,
                   f"{ex.core_remote}={'up' if ex.core_reachable else '-'}"
                   f" {ex.hub_remote}={'up' if ex.hub_reachable else '-'}")
    wt = state.working_tree
    _dimension_row(dims, "working tree", wt.id,
                   f"{len(wt.staged)} staged, {len(wt.unstaged)} unstaged,"
                   f" {len(wt.untracked)} untracked")
    sy = state.sync
    detail = f"{sy.branch or '?'}: core {sy.local_core}, " \
             f"hub {sy.local_hub}"
    if sy.partial: detail += f" (partial, vs {sy.compared_remote})"
    _dimension_row(dims, "sync", sy.id, detail)
    co = state.corruption
    _dimension_row(dims, "integrity", co.id,
                   f"{len(co.large_objects)} large object(s)"
                   + (", LFS" if co.lfs_active else ""))
    odd = [b for b in state.branches if b.id != "B1"]
    _dimension_row(dims, "branches",
                   "B1" if not odd else odd[0].id,
                   f"{len(state.branches)} seen, {len(odd)} need attention")

    parts: list[RenderableType] = [dims]
    if state.warnings:
        lines = Text()
        for w in state.warnings:
            lines.append(f"{w.code}", style="yellow")
            lines.append(f"  {w.message}\n")
        parts.append(Panel(lines, title="warnings", border_style="yellow"))
    title = f"{state.path}  ({state.detection_ms} ms" \
            + (", stale" if state.stale else "") + ")"
    return Panel(Group(*parts), title=title, border_style="magenta")


def render_fixes(fixes: Sequence[Fix]) -> RenderableType:
    if not fixes: return Text("no fixes needed", style="green")
    table = Table(box=MINIMAL, header_style="bold")
    table.add_column("prio", justify="right")
    table.add_column("id")
    table.add_column("fix", overflow="fold")
    table.add_column("auto")
    table.add_column("command", overflow="fold", style="dim")
    for fix in fixes:
        table.add_row(str(fix.priority),
                      Text(fix.scenario_id, style=_style(fix.scenario_id)),
                      fix.description,
                      "yes" if fix.auto_fixable else "no",
                      fix.command)
    return table


def render_autofix(result: AutoFixResult) -> RenderableType:
    text = Text()
    verb = "would apply" if result.dry_run else "applied"
    for fix in result.applied:
        text.append(f"{verb} ", style="green")
        text.append(f"{fix.scenario_id}: {fix.description}\n")
    if result.failed is not None:
        text.append("failed ", style="red")
        text.append(f"{result.failed.scenario_id}: {result.error}\n")
    for remote in result.pending_retry:
        text.append("needs retry ", style="yellow")
        text.append(f"{remote}\n")
    if not text.plain: text.append("nothing to apply", style="dim")
    return text


def print_report(console: Console, state: RepositoryState,
                 fixes: Sequence[Fix]) -> None:
    console.print(render_state(state))
    console.print(render_fixes(fixes))
