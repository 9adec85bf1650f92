from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Paths:
    root: str = "/"
    state_default: str = "/var/lib/rabbitmq-installer/state.json"
    log_default: str = "/var/log/rabbitmq-installer.log"
    os_release: str = "/etc/os-release"
    apt_sources_dir: str = "/etc/apt/sources.list.d"
    apt_keyring_dir: str = "/etc/apt/trusted.gpg.d"
    yum_repos_dir: str = "/etc/yum.repos.d"
    config_dir: str = "/etc/rabbitmq"
    ssl_dir: str = "/etc/rabbitmq/ssl"


PATHS = Paths()


def host_path(root: str, path: str) -> Path:
    """Map an absolute host path below an alternate root (``/`` for the live host)."""

    return Path(root) / path.lstrip("/")
