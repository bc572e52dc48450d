"""
CLI utility helpers - consoles, config construction and result rendering.
"""

from __future__ import annotations

from typing import Any, NoReturn

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from basestack.core.errors import BasestackError
from basestack.deploy.config import ProvisionConfig
from basestack.deploy.results import ProvisionResult, ProvisionState

console = Console()
err_console = Console(stderr=True)


# ── Config helper ────────────────────────────────────────────────────────


def load_config(**overrides: Any) -> ProvisionConfig:
    """Build a ``ProvisionConfig`` from env/.env plus non-None CLI overrides."""
    values = {k: v for k, v in overrides.items() if v is not None}
    try:
        return ProvisionConfig(**values)
    except ValidationError as exc:
        err_console.print(f"[bold red]Invalid configuration[/bold red]: {exc}")
        raise typer.Exit(code=1) from exc


def fail(error: BasestackError | str) -> NoReturn:
    """Print an error and exit with status 1."""
    if isinstance(error, BasestackError):
        err_console.print(
            f"[bold red]Error[/bold red] ({type(error).__name__}): {error.message}"
        )
    else:
        err_console.print(f"[bold red]Error[/bold red]: {error}")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────

_STATE_STYLE = {
    ProvisionState.READY: "green",
    ProvisionState.FAILED: "red",
}


def print_provision_result(result: ProvisionResult) -> None:
    """Render a ``ProvisionResult`` as a service table plus summary line."""
    table = Table(title=f"Provision run {result.run_id}", show_lines=False, pad_edge=False)
    table.add_column("Service", style="bold cyan")
    table.add_column("Container")
    table.add_column("State")
    table.add_column("Waited", justify="right")
    table.add_column("Post-start", justify="right")

    for svc in result.services:
        style = _STATE_STYLE.get(svc.state, "white")
        post = "-" if svc.post_start_exit_code is None else str(svc.post_start_exit_code)
        table.add_row(
            svc.name,
            svc.container_name,
            f"[{style}]{svc.state.value}[/{style}]",
            f"{svc.waited_seconds:.0f}s",
            post,
        )
    console.print(table)

    for warning in result.warnings:
        console.print(f"[yellow]⚠ {warning}[/]")

    if result.succeeded:
        console.print(f"[bold green]✓ {result.summary}[/] ({result.duration_seconds:.1f}s)")
    else:
        err_console.print(f"[bold red]✗ {result.summary}[/]")
        if result.error:
            err_console.print(f"  {result.error.get('message', '')}")
            cause = result.error.get("cause")
            if cause:
                err_console.print(f"  [dim]{cause}[/dim]")
