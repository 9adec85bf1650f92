from __future__ import annotations

import logging

from ..broker_config import BrokerConfig
from .download import fetch
from .env import PATHS, host_path
from .files import ensure_file

logger = logging.getLogger(__name__)

REPO_NAME = "rabbitmq"


def _keyring_path() -> str:
    return f"{PATHS.apt_keyring_dir}/{REPO_NAME}.asc"


def render_apt_source(cfg: BrokerConfig) -> str:
    return f"deb [signed-by={_keyring_path()}] {cfg.repo_location} {cfg.repo_release} {cfg.repo_components}\n"


def render_yum_repo(cfg: BrokerConfig) -> str:
    return "\n".join(
        [
            f"[{REPO_NAME}]",
            "name=RabbitMQ",
            f"baseurl={cfg.repo_location}",
            "enabled=1",
            "gpgcheck=1",
            f"gpgkey={cfg.repo_key_source}",
            "",
        ]
    )


def ensure_apt_repo(root: str, cfg: BrokerConfig, *, dry_run: bool = False) -> bool:
    """Configure the upstream apt repository. Returns True when apt needs an update."""

    changed = False

    # The key is fetched once; rotating it means deleting the keyring file.
    key = host_path(root, _keyring_path())
    if not key.exists():
        if dry_run:
            logger.info("Would fetch signing key %s", cfg.repo_key_source)
        else:
            data = fetch(cfg.repo_key_source, retries=3, retry_delay_s=2.0)
            ensure_file(root, _keyring_path(), data, mode=0o644, dry_run=dry_run)
        changed = True

    changed |= ensure_file(
        root,
        f"{PATHS.apt_sources_dir}/{REPO_NAME}.list",
        render_apt_source(cfg),
        mode=0o644,
        dry_run=dry_run,
    )
    if changed:
        logger.info("Configured apt repo: %s (%s %s)", cfg.repo_location, cfg.repo_release, cfg.repo_components)
    return changed


def ensure_yum_repo(root: str, cfg: BrokerConfig, *, dry_run: bool = False) -> bool:
    return ensure_file(
        root,
        f"{PATHS.yum_repos_dir}/{REPO_NAME}.repo",
        render_yum_repo(cfg),
        mode=0o644,
        dry_run=dry_run,
    )
