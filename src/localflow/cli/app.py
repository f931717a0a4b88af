"""
Root Typer application for the localflow CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from localflow.cli.run import run, validate
from localflow.cli.serve import serve

app = Typer(
    name="localflow",
    help="localflow — run Argo-style workflows on a local container runtime.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from localflow import __version__

        typer.echo(f"localflow {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """localflow CLI — serve the API, or run and validate workflow documents."""


app.command("serve")(serve)
app.command("run")(run)
app.command("validate")(validate)
