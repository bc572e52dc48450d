"""Credential set for one provisioning run.

A ``CredentialSet`` owns the database password, the JWT signing secret and
the two role tokens (``anon`` and ``service_role``) every service of the
stack shares. It is created once at the start of a run and never mutated;
``write_credential_file()`` persists it after a successful run and
``read_credential_file()`` reads it back, so a later run against the same
volumes reuses the values the database was initialised with.
"""

from __future__ import annotations

import os
import secrets
import string
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from basestack.auth.tokens import Token, TokenSigner
from basestack.core.errors import ConfigError

if TYPE_CHECKING:
    from basestack.deploy.config import ProvisionConfig

logger = structlog.get_logger(__name__)

SECRET_ALPHABET = string.ascii_letters + string.digits + "-_"
SECRET_LENGTH = 64

DEFAULT_ISSUER = "supabase"
DEFAULT_ISSUED_AT = 1643806800  # 2022-02-02T13:00:00Z
DEFAULT_EXPIRES_AT = 1801573200  # 2027-02-02T13:00:00Z

ANON_ROLE = "anon"
SERVICE_ROLE = "service_role"

CREDENTIAL_FILE_MODE = 0o600


def generate_random_string(length: int = SECRET_LENGTH) -> str:
    """Random string from ``[A-Za-z0-9_-]`` using the OS CSPRNG."""
    return "".join(secrets.choice(SECRET_ALPHABET) for _ in range(length))


def mint_role_tokens(
    secret: str,
    *,
    issuer: str = DEFAULT_ISSUER,
    issued_at: int = DEFAULT_ISSUED_AT,
    expires_at: int = DEFAULT_EXPIRES_AT,
) -> tuple[Token, Token]:
    """Mint the ``anon`` and ``service_role`` tokens under ``secret``."""
    signer = TokenSigner(secret)
    base_claims = {"iss": issuer, "iat": issued_at, "exp": expires_at}
    return (
        signer.mint({"role": ANON_ROLE, **base_claims}),
        signer.mint({"role": SERVICE_ROLE, **base_claims}),
    )


@dataclass(frozen=True)
class CredentialSet:
    """Secrets and tokens shared by every service of the stack."""

    postgres_password: str
    jwt_secret: str
    anon_key: Token
    service_role_key: Token

    @classmethod
    def initialize(
        cls,
        provided_password: str | None = None,
        provided_secret: str | None = None,
        *,
        issuer: str = DEFAULT_ISSUER,
        issued_at: int = DEFAULT_ISSUED_AT,
        expires_at: int = DEFAULT_EXPIRES_AT,
    ) -> CredentialSet:
        """Resolve or generate the secrets and mint both role tokens.

        Empty strings are treated as absent.
        """
        password = provided_password or generate_random_string()
        secret = provided_secret or generate_random_string()

        if not provided_password:
            logger.info("credentials.generated", field="postgres_password")
        if not provided_secret:
            logger.info("credentials.generated", field="jwt_secret")

        anon_key, service_role_key = mint_role_tokens(
            secret, issuer=issuer, issued_at=issued_at, expires_at=expires_at
        )
        return cls(
            postgres_password=password,
            jwt_secret=secret,
            anon_key=anon_key,
            service_role_key=service_role_key,
        )

    def template_values(self) -> dict[str, str]:
        """Placeholder values for service env templates."""
        return {
            "postgres_password": self.postgres_password,
            "jwt_secret": self.jwt_secret,
            "anon_key": self.anon_key.encoded,
            "service_role_key": self.service_role_key.encoded,
        }

    def connection_string(
        self,
        host: str,
        port: int = 5432,
        database: str = "supabase",
        user: str = "postgres",
    ) -> str:
        """Postgres connection URL for this password."""
        return f"postgresql://{user}:{self.postgres_password}@{host}:{port}/{database}"

    def __repr__(self) -> str:
        return "CredentialSet(postgres_password=***, jwt_secret=***, anon_key=***, service_role_key=***)"


def render_credential_summary(credentials: CredentialSet, config: ProvisionConfig) -> str:
    """Human-readable credential summary as written to disk."""
    generated = datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S %Z")
    network = config.network_name
    return (
        "# Supabase Credentials - KEEP SECURE!\n"
        f"# Generated on: {generated}\n"
        "\n"
        f"INSTALLATION_DIRECTORY: {config.install_dir}\n"
        f"POSTGRES_PASSWORD: {credentials.postgres_password}\n"
        f"JWT_SECRET: {credentials.jwt_secret}\n"
        f"ANON_KEY: {credentials.anon_key}\n"
        f"SERVICE_ROLE_KEY: {credentials.service_role_key}\n"
        "\n"
        f"SUPABASE_URL: {config.public_url}\n"
        f"POSTGRES_CONNECTION: {credentials.connection_string(config.domain, config.postgres_port)}\n"
        "\n"
        f"# To stop all services: docker stop $(docker ps -q --filter network={network})\n"
        f"# To start all services: docker start $(docker ps -a -q --filter network={network})\n"
        "# To reset and start over: basestack provision --reset\n"
    )


def write_credential_file(
    credentials: CredentialSet,
    config: ProvisionConfig,
    path: Path | None = None,
) -> Path:
    """Write the credential summary with owner-only permissions.

    Returns the written path (``<install_dir>/supabase_credentials.txt`` by
    default).
    """
    target = Path(path) if path else config.credentials_path
    target.parent.mkdir(parents=True, exist_ok=True)

    fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, CREDENTIAL_FILE_MODE)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(render_credential_summary(credentials, config))
    # O_CREAT mode does not apply to a pre-existing file
    os.chmod(target, CREDENTIAL_FILE_MODE)

    logger.info("credentials.written", path=str(target))
    return target


_SAVED_FIELDS = {"POSTGRES_PASSWORD": "postgres_password", "JWT_SECRET": "jwt_secret"}


def read_credential_file(path: Path | str) -> dict[str, str] | None:
    """Read the password and secret back from a written credential summary.

    Returns ``None`` when the file does not exist.

    Raises
    ------
    ConfigError
        If the file cannot be read or lacks either value.
    """
    target = Path(path)
    if not target.exists():
        return None
    try:
        text = target.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read saved credentials {target}: {exc}", cause=exc) from exc

    saved: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition(": ")
        if sep and key in _SAVED_FIELDS and value:
            saved[_SAVED_FIELDS[key]] = value

    missing = [name for name in _SAVED_FIELDS.values() if name not in saved]
    if missing:
        raise ConfigError(f"Saved credentials {target} lack: {', '.join(missing)}")
    logger.info("credentials.loaded", path=str(target))
    return saved


__all__ = [
    "ANON_ROLE",
    "CredentialSet",
    "SERVICE_ROLE",
    "generate_random_string",
    "mint_role_tokens",
    "read_credential_file",
    "render_credential_summary",
    "write_credential_file",
]
