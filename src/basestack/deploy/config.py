"""Configuration model for basestack provisioning.

``ProvisionConfig`` is the operator-supplied input of a run: where to
install, which public domain the stack answers on, optional pre-set
secrets, the email signup toggle with its SMTP settings, host port
bindings and the readiness delays.

Why This Matters:
    Every value can come from ``BASESTACK_*`` environment variables or a
    ``.env`` file, so a re-provision in CI or from a shell history needs
    no prompting. The CLI only prompts for what is still missing.

Key Concepts:
    ProvisionConfig: pydantic-settings model, env prefix ``BASESTACK_``.
    template_values(): Placeholder mapping consumed by service env
        templates (``{domain}``, ``{smtp_host}``, ...).

Architecture Decisions:
    - Override precedence: kwargs > env vars > ``.env`` > field defaults.
    - SMTP placeholders when signup is disabled: the auth service still
      requires the variables to be present.
    - ``smtp_admin_email`` follows ``smtp_user`` when signup is enabled.

Tags:
    config, settings, pydantic, provisioning, environment
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_INSTALL_DIR = Path.home() / "DEPLOY" / "supabase"
DEFAULT_ASSET_BASE_URL = "https://raw.githubusercontent.com/ekky1328/docker-cli-supabase/main"

COMPOSE_FILE_NAME = "docker-compose.yml"
CREDENTIALS_FILE_NAME = "supabase_credentials.txt"

PLACEHOLDER_SMTP_EMAIL = "no-reply@example.com"


def _flag(value: bool) -> str:
    return "true" if value else "false"


class ProvisionConfig(BaseSettings):
    """Operator configuration for one provisioning run.

    Example::

        config = ProvisionConfig(domain="db.example.com", install_dir=tmp_path)
        config.public_url  # "https://db.example.com"
    """

    model_config = SettingsConfigDict(
        env_prefix="BASESTACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Installation ─────────────────────────────────────────────
    install_dir: Path = Field(
        default=DEFAULT_INSTALL_DIR,
        description="Directory holding volumes, compose file and credentials",
    )
    domain: str = Field(
        default="",
        description="Domain used to reach Studio and the API gateway",
    )

    # ── Secrets (generated when empty) ───────────────────────────
    postgres_password: str = Field(default="", repr=False)
    jwt_secret: str = Field(default="", repr=False)

    # ── Email signup ─────────────────────────────────────────────
    enable_email_signup: bool = False
    enable_email_autoconfirm: bool = False
    smtp_host: str = "smtp.example.com"
    smtp_port: int = 587
    smtp_user: str = PLACEHOLDER_SMTP_EMAIL
    smtp_pass: str = Field(default="placeholder-password", repr=False)
    smtp_sender_name: str = "Supabase"
    smtp_admin_email: str = PLACEHOLDER_SMTP_EMAIL

    # ── Host ports ───────────────────────────────────────────────
    studio_port: int = 3000
    kong_http_port: int = 8000
    kong_https_port: int = 8443
    postgres_port: int = 5432

    # ── Runtime ──────────────────────────────────────────────────
    network_name: str = "supabase-network"
    db_settle_seconds: float = Field(
        default=120.0,
        description="Fixed wait after starting the database before dependents start",
    )
    realtime_settle_seconds: float = Field(
        default=10.0,
        description="Fixed wait before running the realtime migration",
    )
    asset_base_url: str = DEFAULT_ASSET_BASE_URL

    @model_validator(mode="after")
    def _normalise(self) -> ProvisionConfig:
        self.install_dir = Path(self.install_dir).expanduser()
        if not self.enable_email_signup:
            self.enable_email_autoconfirm = False
        elif self.smtp_admin_email == PLACEHOLDER_SMTP_EMAIL:
            self.smtp_admin_email = self.smtp_user
        return self

    # ── Derived paths and URLs ───────────────────────────────────

    @property
    def public_url(self) -> str:
        return f"https://{self.domain}"

    @property
    def volumes_dir(self) -> Path:
        return self.install_dir / "volumes"

    @property
    def compose_path(self) -> Path:
        return self.install_dir / COMPOSE_FILE_NAME

    @property
    def credentials_path(self) -> Path:
        return self.install_dir / CREDENTIALS_FILE_NAME

    def template_values(self) -> dict[str, str]:
        """Placeholder values for service env templates."""
        return {
            "domain": self.domain,
            "site_url": self.public_url,
            "enable_email_signup": _flag(self.enable_email_signup),
            "enable_email_autoconfirm": _flag(self.enable_email_autoconfirm),
            "smtp_admin_email": self.smtp_admin_email,
            "smtp_host": self.smtp_host,
            "smtp_port": str(self.smtp_port),
            "smtp_user": self.smtp_user,
            "smtp_pass": self.smtp_pass,
            "smtp_sender_name": self.smtp_sender_name,
        }


__all__ = [
    "COMPOSE_FILE_NAME",
    "CREDENTIALS_FILE_NAME",
    "DEFAULT_ASSET_BASE_URL",
    "DEFAULT_INSTALL_DIR",
    "ProvisionConfig",
]
