"""
CLI: stack commands - provision, plan, services, down, keys.

Usage::

    basestack provision --domain db.example.com     # prompts for the rest
    basestack provision --reset --yes               # wipe and re-provision
    basestack plan                                  # show bring-up order
    basestack services                              # list the service catalog
    basestack down                                  # stop and remove the stack
    basestack keys --jwt-secret "$SECRET"           # mint the role tokens
"""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.table import Table

from basestack.auth.credentials import (
    CredentialSet,
    generate_random_string,
    mint_role_tokens,
    read_credential_file,
    write_credential_file,
)
from basestack.cli.utils import console, err_console, fail, load_config, print_provision_result
from basestack.core.errors import BasestackError, ConfigError, PlanError
from basestack.deploy.assets import GATEWAY_CONFIG, inject_gateway_keys, prepare_volumes
from basestack.deploy.compose import generate_stack_compose, write_compose_file
from basestack.deploy.config import PLACEHOLDER_SMTP_EMAIL, ProvisionConfig
from basestack.deploy.orchestrator import ProvisionOrchestrator
from basestack.deploy.planner import plan_stack
from basestack.deploy.runtime import DockerRuntime
from basestack.deploy.services import ServiceSpec, build_stack


# ── Provision ────────────────────────────────────────────────────────────


def provision(
    reset: bool = typer.Option(
        False, "--reset", help="Remove existing containers, network and volumes first."
    ),
    install_dir: Path | None = typer.Option(None, "--install-dir", "-d", help="Installation directory."),
    domain: str | None = typer.Option(None, "--domain", help="Domain for Studio and the API gateway."),
    postgres_password: str | None = typer.Option(
        None, "--postgres-password", help="Database password (generated if omitted)."
    ),
    jwt_secret: str | None = typer.Option(None, "--jwt-secret", help="JWT secret (generated if omitted)."),
    email_signup: bool | None = typer.Option(
        None, "--email-signup/--no-email-signup", help="Enable email signup."
    ),
    email_autoconfirm: bool | None = typer.Option(
        None, "--email-autoconfirm/--no-email-autoconfirm", help="Confirm signups without email."
    ),
    smtp_host: str | None = typer.Option(None, "--smtp-host"),
    smtp_port: int | None = typer.Option(None, "--smtp-port"),
    smtp_user: str | None = typer.Option(None, "--smtp-user"),
    smtp_pass: str | None = typer.Option(None, "--smtp-pass"),
    smtp_sender_name: str | None = typer.Option(None, "--smtp-sender-name"),
    assume_yes: bool = typer.Option(False, "--yes", "-y", help="Never prompt; use defaults."),
    json_out: bool = typer.Option(False, "--json", help="Output the run result as JSON."),
) -> None:
    """Provision the stack: credentials, volumes, network and every service.

    On success the credential summary and a docker-compose.yml are written
    into the installation directory.
    """
    overrides = {
        "install_dir": install_dir,
        "domain": domain,
        "postgres_password": postgres_password,
        "jwt_secret": jwt_secret,
        "enable_email_signup": email_signup,
        "enable_email_autoconfirm": email_autoconfirm,
        "smtp_host": smtp_host,
        "smtp_port": smtp_port,
        "smtp_user": smtp_user,
        "smtp_pass": smtp_pass,
        "smtp_sender_name": smtp_sender_name,
    }
    config = load_config(**overrides)
    if not reset:
        saved = _saved_credentials(config)
        if saved:
            overrides.update(saved)
            config = load_config(**overrides)
            if not json_out:
                console.print(f"[dim]Reusing saved credentials from {config.credentials_path}[/dim]")
    if not assume_yes:
        overrides.update(_prompt_missing(config, overrides))
        config = load_config(**overrides)
    if not config.domain:
        fail("A domain is required (--domain or BASESTACK_DOMAIN).")

    if not DockerRuntime.is_available():
        fail("Docker is not available. Install Docker and make sure the daemon is running.")

    try:
        credentials = CredentialSet.initialize(config.postgres_password, config.jwt_secret)
        specs = _build_specs(config)
        plan = plan_stack(specs)
        runtime = DockerRuntime()
    except BasestackError as exc:
        fail(exc)

    def _prepare() -> None:
        prepare_volumes(config, reset=reset)
        inject_gateway_keys(config.install_dir / GATEWAY_CONFIG, credentials)

    if not json_out:
        console.print(f"[bold]basestack provision[/] - {config.public_url}")
        console.print(f"  install dir: {config.install_dir}")
        console.print(f"  order: {' → '.join(plan.order)}")

    orchestrator = ProvisionOrchestrator(runtime, config)
    try:
        result = orchestrator.run(plan, specs, credentials, reset_requested=reset, prepare=_prepare)
    except (ConfigError, PlanError) as exc:
        fail(exc)

    if result.succeeded:
        values = {**config.template_values(), **credentials.template_values()}
        write_compose_file(
            generate_stack_compose(specs, values, config.network_name),
            config.compose_path,
        )
        credentials_path = write_credential_file(credentials, config)

    if json_out:
        typer.echo(result.model_dump_json(indent=2))
    else:
        print_provision_result(result)
        if result.succeeded:
            _print_access_summary(config, credentials, credentials_path)

    if not result.succeeded:
        raise typer.Exit(code=1)


def _saved_credentials(config: ProvisionConfig) -> dict:
    """Password and secret an existing installation was initialised with.

    The database data directory and the rendered gateway config outlive
    ``down``; a re-provision without ``--reset`` must keep their values.
    """
    if config.postgres_password and config.jwt_secret:
        return {}
    if not config.volumes_dir.exists():
        return {}
    try:
        saved = read_credential_file(config.credentials_path)
    except ConfigError as exc:
        fail(exc)
    if saved is None:
        fail(
            f"{config.volumes_dir} already exists but {config.credentials_path} is missing. "
            "Pass --postgres-password and --jwt-secret, or use --reset to start over."
        )
    return {key: value for key, value in saved.items() if not getattr(config, key)}


def _prompt_missing(config: ProvisionConfig, overrides: dict) -> dict:
    """Ask for values neither flags nor the environment supplied."""
    answers: dict = {}
    if not config.domain:
        answers["domain"] = typer.prompt("Domain (e.g. db.example.com)")
    if overrides.get("postgres_password") is None and not config.postgres_password:
        answers["postgres_password"] = typer.prompt(
            "Postgres password (leave blank to generate)",
            default="", show_default=False, hide_input=True,
        )
    if overrides.get("jwt_secret") is None and not config.jwt_secret:
        answers["jwt_secret"] = typer.prompt(
            "JWT secret (leave blank to generate)",
            default="", show_default=False, hide_input=True,
        )

    signup = config.enable_email_signup
    if overrides.get("enable_email_signup") is None:
        signup = typer.confirm("Enable email signup?", default=False)
        answers["enable_email_signup"] = signup
    if not signup:
        return answers

    if overrides.get("enable_email_autoconfirm") is None:
        answers["enable_email_autoconfirm"] = typer.confirm(
            "Confirm new users automatically?", default=False
        )
    if overrides.get("smtp_host") is None:
        answers["smtp_host"] = typer.prompt("SMTP host", default=config.smtp_host)
    if overrides.get("smtp_port") is None:
        answers["smtp_port"] = typer.prompt("SMTP port", default=config.smtp_port, type=int)
    if overrides.get("smtp_user") is None and config.smtp_user == PLACEHOLDER_SMTP_EMAIL:
        answers["smtp_user"] = typer.prompt("SMTP user (email)")
    if overrides.get("smtp_pass") is None:
        answers["smtp_pass"] = typer.prompt("SMTP password", hide_input=True)
    if overrides.get("smtp_sender_name") is None:
        answers["smtp_sender_name"] = typer.prompt("Sender name", default=config.smtp_sender_name)
    return answers


def _print_access_summary(config: ProvisionConfig, credentials: CredentialSet, path: Path) -> None:
    console.print()
    console.print(f"[bold]Studio:[/] {config.public_url}")
    console.print(f"[bold]API:[/] http://{config.domain}:{config.kong_http_port}")
    console.print(f"[bold]anon key:[/] {credentials.anon_key}")
    console.print(f"[bold]service_role key:[/] {credentials.service_role_key}")
    console.print(f"[dim]Credentials saved to {path} (mode 600)[/dim]")


def _build_specs(config: ProvisionConfig) -> list[ServiceSpec]:
    return build_stack(config)


# ── Plan / services ──────────────────────────────────────────────────────


def show_plan(
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Show the dependency-ordered bring-up sequence."""
    config = load_config()
    specs = _build_specs(config)
    try:
        plan = plan_stack(specs)
    except PlanError as exc:
        fail(exc)
    by_name = {s.name: s for s in specs}

    if json_out:
        out = {"order": list(plan.order), "teardown_order": list(plan.teardown_order)}
        typer.echo(json.dumps(out, indent=2))
        return

    table = Table(title="Bring-up Plan")
    table.add_column("#", justify="right")
    table.add_column("Service", style="bold cyan")
    table.add_column("Depends on")
    table.add_column("Readiness")
    table.add_column("Post-start")
    for position, name in enumerate(plan.order, start=1):
        spec = by_name[name]
        readiness = (
            f"delay {spec.readiness.seconds:.0f}s" if spec.readiness.blocks else "immediate"
        )
        table.add_row(
            str(position),
            name,
            ", ".join(spec.depends_on) or "-",
            readiness,
            "yes" if spec.post_start_command else "-",
        )
    console.print(table)


def list_services(
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """List the services of the stack."""
    specs = _build_specs(load_config())

    if json_out:
        out = {
            spec.name: {
                "image": spec.image,
                "container_name": spec.container_name,
                "ports": spec.resolve_ports(),
                "depends_on": list(spec.depends_on),
            }
            for spec in specs
        }
        typer.echo(json.dumps(out, indent=2))
        return

    table = Table(title="Stack Services")
    table.add_column("Name", style="bold cyan")
    table.add_column("Image")
    table.add_column("Container")
    table.add_column("Ports")
    table.add_column("Description", style="dim")
    for spec in specs:
        table.add_row(
            spec.name,
            spec.image,
            spec.container_name,
            ", ".join(spec.resolve_ports()) or "-",
            spec.description,
        )
    console.print(table)


# ── Down ─────────────────────────────────────────────────────────────────


def down() -> None:
    """Stop and remove every stack container, then the network."""
    config = load_config()
    specs = _build_specs(config)
    try:
        plan = plan_stack(specs)
        runtime = DockerRuntime()
        warnings = ProvisionOrchestrator(runtime, config).teardown(plan, specs)
    except BasestackError as exc:
        fail(exc)

    for warning in warnings:
        err_console.print(f"[yellow]⚠ {warning}[/]")
    console.print(f"[green]✓ Stack removed[/] (network: {config.network_name})")


# ── Keys ─────────────────────────────────────────────────────────────────


def keys(
    jwt_secret: str | None = typer.Option(
        None, "--jwt-secret", envvar="BASESTACK_JWT_SECRET", help="Signing secret (generated if omitted)."
    ),
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Mint the anon and service_role tokens for a JWT secret."""
    secret = jwt_secret or generate_random_string()
    anon_key, service_role_key = mint_role_tokens(secret)

    if json_out:
        out = {
            "jwt_secret": secret,
            "anon_key": anon_key.encoded,
            "service_role_key": service_role_key.encoded,
        }
        typer.echo(json.dumps(out, indent=2))
        return

    if not jwt_secret:
        console.print(f"[bold]JWT secret:[/] {secret}")
    console.print(f"[bold]anon key:[/] {anon_key}")
    console.print(f"[bold]service_role key:[/] {service_role_key}")
