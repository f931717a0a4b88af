"""
CLI utility helpers — consoles, error output and status rendering.
"""

from __future__ import annotations

import json
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from localflow.errors import LocalflowError
from localflow.models import NodePhase, WorkflowPhase, WorkflowSnapshot

console = Console()
err_console = Console(stderr=True)

PHASE_STYLES: dict[str, str] = {
    WorkflowPhase.PENDING.value: "dim",
    WorkflowPhase.RUNNING.value: "yellow",
    WorkflowPhase.SUCCEEDED.value: "green",
    WorkflowPhase.FAILED.value: "red",
    NodePhase.ERROR.value: "bold red",
}


def fail(exc: LocalflowError) -> NoReturn:
    """Print an engine error and exit 1."""
    err_console.print(f"[bold red]Error[/bold red] ({exc.code}): {escape(exc.message)}")
    raise typer.Exit(code=1)


def output_json(payload: Any) -> None:
    """Plain JSON on stdout, safe to pipe into ``jq``."""
    typer.echo(json.dumps(payload, indent=2, default=str))


def _styled(phase: str) -> str:
    style = PHASE_STYLES.get(phase)
    return f"[{style}]{phase}[/{style}]" if style else phase


def _duration(node_started, node_finished) -> str:
    if node_started is None or node_finished is None:
        return "-"
    return f"{(node_finished - node_started).total_seconds():.2f}s"


def print_snapshot(snapshot: WorkflowSnapshot, *, show_logs: bool = False) -> None:
    """Render a run and its node tree as a Rich table."""
    status = snapshot.status
    console.print(f"[bold]{snapshot.name}[/bold]  {_styled(status.phase.value)}")
    if status.message:
        console.print(f"  [dim]message:[/dim] {escape(status.message)}")

    nodes = sorted(
        status.nodes.values(),
        key=lambda n: (n.started_at is None, n.started_at, n.name),
    )
    if not nodes:
        console.print("[dim]No nodes.[/dim]")
        return

    table = Table(show_lines=False, pad_edge=False)
    table.add_column("node", overflow="fold")
    table.add_column("type")
    table.add_column("template")
    table.add_column("phase")
    table.add_column("duration", justify="right")
    table.add_column("message", overflow="fold")
    for node in nodes:
        table.add_row(
            escape(node.name),
            node.type.value,
            escape(node.template_name),
            _styled(node.phase.value),
            _duration(node.started_at, node.finished_at),
            escape(node.message or ""),
        )
    console.print(table)

    if show_logs:
        for node in nodes:
            if node.logs:
                console.rule(f"[cyan]{escape(node.name)}[/cyan]")
                console.print(node.logs.rstrip("\n"), markup=False, highlight=False)
