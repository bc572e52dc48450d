"""Volume layout and configuration assets for the stack.

Before any container starts, the installation directory must contain the
database init scripts and the API gateway's declarative ``kong.yml``. They
are fetched over HTTP from ``ProvisionConfig.asset_base_url`` the first time
(and again after a reset, which removes the whole ``volumes/`` tree).

Key Concepts:
    prepare_volumes(): create the layout and download missing assets.
    inject_gateway_keys(): replace the role-key placeholders in ``kong.yml``
        with the run's tokens.

Tags:
    assets, volumes, download, httpx, kong
"""

from __future__ import annotations

import shutil
from pathlib import Path

import httpx
import structlog

from basestack.auth.credentials import CredentialSet
from basestack.core.errors import AssetDownloadError, VolumeLayoutError
from basestack.deploy.config import ProvisionConfig

logger = structlog.get_logger(__name__)

DOWNLOAD_TIMEOUT = 30.0

INIT_SCRIPTS = (
    "00-initial-schema.sql",
    "01-auth-schema.sql",
    "02-storage-schema.sql",
    "03-post-setup.sql",
)
GATEWAY_CONFIG = "volumes/api/kong.yml"

ANON_KEY_PLACEHOLDER = "anon-role-replace"
SERVICE_KEY_PLACEHOLDER = "service-role-replace"

VOLUME_DIRS = ("volumes/db/init", "volumes/api", "volumes/storage")


def asset_paths() -> list[str]:
    """Relative paths of every downloaded asset."""
    return [f"volumes/db/init/{name}" for name in INIT_SCRIPTS] + [GATEWAY_CONFIG]


def prepare_volumes(
    config: ProvisionConfig,
    reset: bool = False,
    client: httpx.Client | None = None,
) -> list[Path]:
    """Create the volume layout and download missing assets.

    Parameters
    ----------
    config
        Provides ``install_dir`` and ``asset_base_url``.
    reset
        Remove ``volumes/`` (database data included) first.
    client
        Optional pre-configured client; one is created and closed otherwise.

    Returns
    -------
    list[Path]
        Files downloaded by this call (empty when everything was present).

    Raises
    ------
    AssetDownloadError
        If a download fails.
    VolumeLayoutError
        If the installation directory cannot be cleared, created or written.
    """
    try:
        missing = _lay_out(config, reset)
        if not missing:
            logger.debug("assets.present", install_dir=str(config.install_dir))
            return []

        owns_client = client is None
        http = client or httpx.Client(timeout=DOWNLOAD_TIMEOUT, follow_redirects=True)
        downloaded: list[Path] = []
        try:
            for rel in missing:
                downloaded.append(_download(http, config, rel))
        finally:
            if owns_client:
                http.close()
    except OSError as exc:
        logger.error("assets.volumes_failed", install_dir=str(config.install_dir), error=str(exc))
        raise VolumeLayoutError(str(config.install_dir), cause=exc) from exc

    logger.info("assets.downloaded", count=len(downloaded))
    return downloaded


def _lay_out(config: ProvisionConfig, reset: bool) -> list[str]:
    """Clear (on reset) and create the volume tree; returns missing assets."""
    if reset and config.volumes_dir.exists():
        shutil.rmtree(config.volumes_dir)
        logger.info("assets.volumes_removed", path=str(config.volumes_dir))

    for rel in VOLUME_DIRS:
        (config.install_dir / rel).mkdir(parents=True, exist_ok=True)

    return [rel for rel in asset_paths() if not (config.install_dir / rel).exists()]


def _download(client: httpx.Client, config: ProvisionConfig, rel: str) -> Path:
    url = f"{config.asset_base_url.rstrip('/')}/{rel}"
    try:
        response = client.get(url)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.error("assets.download_failed", url=url, error=str(exc))
        raise AssetDownloadError(url, cause=exc) from exc

    target = config.install_dir / rel
    target.write_bytes(response.content)
    logger.debug("assets.file_written", path=str(target))
    return target


def inject_gateway_keys(path: Path | str, credentials: CredentialSet) -> int:
    """Replace the role-key placeholders in the gateway config.

    Returns the number of placeholders replaced; zero means the file was
    already rendered by an earlier run.
    """
    target = Path(path)
    try:
        content = target.read_text(encoding="utf-8")
        count = content.count(ANON_KEY_PLACEHOLDER) + content.count(SERVICE_KEY_PLACEHOLDER)
        if count:
            content = content.replace(ANON_KEY_PLACEHOLDER, credentials.anon_key.encoded)
            content = content.replace(SERVICE_KEY_PLACEHOLDER, credentials.service_role_key.encoded)
            target.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise VolumeLayoutError(str(target), cause=exc) from exc
    logger.info("assets.gateway_keys_injected", path=str(target), replaced=count)
    return count


__all__ = [
    "GATEWAY_CONFIG",
    "INIT_SCRIPTS",
    "asset_paths",
    "inject_gateway_keys",
    "prepare_volumes",
]
