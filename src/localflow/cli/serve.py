"""
CLI: ``localflow serve`` — start the API server.
"""

from __future__ import annotations

import typer

from localflow.cli.utils import console
from localflow.settings import LocalflowSettings


def serve(
    host: str | None = typer.Option(None, "--host", "-h", help="Bind address [default: 0.0.0.0]"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port [default: 8080]"),
    runtime: str | None = typer.Option(None, "--runtime", "-r", help="docker | local | stub"),
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG | INFO | WARNING | ERROR"),
) -> None:
    """Start the localflow REST API server."""
    import uvicorn

    from localflow.api import create_app
    from localflow.logging import configure_logging

    overrides = {
        "host": host,
        "port": port,
        "runtime": runtime,
        "log_level": log_level.upper() if log_level else None,
    }
    settings = LocalflowSettings(**{k: v for k, v in overrides.items() if v is not None})
    configure_logging(level=settings.log_level, format=settings.log_format)

    console.print(
        f"[bold green]Starting localflow API[/bold green] on {settings.host}:{settings.port}"
        f" (runtime: {settings.runtime})"
    )
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
