"""
Root Typer application for the basestack CLI.
"""

from __future__ import annotations

from pathlib import Path

import typer
from typer import Typer

from basestack import __version__
from basestack.cli import stack
from basestack.core.logging import configure_logging

app = Typer(
    name="basestack",
    help="basestack - provision a self-hosted Supabase stack with docker.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"basestack {__version__}")
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
    log_level: str = typer.Option(
        "WARNING", "--log-level", "-l", envvar="BASESTACK_LOG_LEVEL", help="Log level."
    ),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON."),
    log_file: Path | None = typer.Option(
        None, "--log-file", envvar="BASESTACK_LOG_FILE", help="Also append an INFO run log to this file."
    ),
) -> None:
    """basestack CLI - provision, inspect and tear down the stack."""
    configure_logging(level=log_level, json_format=json_logs, log_file=log_file)


# ── Command registration ─────────────────────────────────────────────────

app.command("provision")(stack.provision)
app.command("plan")(stack.show_plan)
app.command("services")(stack.list_services)
app.command("down")(stack.down)
app.command("keys")(stack.keys)


if __name__ == "__main__":
    app()
