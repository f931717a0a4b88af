"""
CLI: ``localflow run`` and ``localflow validate`` — execute documents in-process.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.markup import escape

from localflow.cli.utils import console, err_console, fail, output_json, print_snapshot
from localflow.controller import WorkflowController, validate_workflow
from localflow.document import load_workflow_file
from localflow.errors import EntrypointMissingError, LocalflowError
from localflow.logging import configure_logging
from localflow.models import WorkflowPhase, WorkflowSnapshot
from localflow.settings import LocalflowSettings


async def _execute(controller: WorkflowController, path: Path) -> WorkflowSnapshot:
    try:
        workflow = load_workflow_file(path)
        await controller.submit(workflow)
        return await controller.wait(workflow.name)
    finally:
        await controller.shutdown(grace_seconds=0)


def run(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Workflow document (YAML or JSON)"),
    runtime: str | None = typer.Option(None, "--runtime", "-r", help="docker | local | stub"),
    json_out: bool = typer.Option(False, "--json", help="Print the final snapshot as JSON"),
    logs: bool = typer.Option(False, "--logs", help="Print captured output of every node"),
) -> None:
    """Execute a workflow and wait for it to finish.

    Exits 1 unless the workflow succeeds.
    """
    try:
        settings = LocalflowSettings(**({"runtime": runtime} if runtime else {}))
        # stdout carries only the document in --json mode
        configure_logging(level="WARNING" if json_out else settings.log_level, format=settings.log_format)
        controller = WorkflowController.from_settings(settings)
        snapshot = asyncio.run(_execute(controller, file))
    except LocalflowError as exc:
        fail(exc)
    except ValueError as exc:
        err_console.print(f"[bold red]Error[/bold red]: {escape(str(exc))}")
        raise typer.Exit(code=2) from exc

    if json_out:
        output_json(snapshot.to_dict())
    else:
        print_snapshot(snapshot, show_logs=logs)

    if snapshot.phase is not WorkflowPhase.SUCCEEDED:
        raise typer.Exit(code=1)


def validate(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Workflow document (YAML or JSON)"),
) -> None:
    """Parse a workflow and check its template graph without running it."""
    try:
        workflow = load_workflow_file(file)
        if not workflow.entrypoint:
            raise EntrypointMissingError(workflow.name)
        validate_workflow(workflow)
    except LocalflowError as exc:
        fail(exc)

    console.print(
        f"[green]✓[/green] {workflow.name}: {len(workflow.templates)} templates,"
        f" entrypoint '{workflow.entrypoint}'"
    )
