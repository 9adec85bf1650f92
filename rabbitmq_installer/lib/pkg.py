from __future__ import annotations

import logging
from typing import Optional

from .command import run_cmd
from .env import PATHS, host_path

logger = logging.getLogger(__name__)

_APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


def detect_provider(root: str) -> str:
    """Pick apt or yum from ``/etc/os-release``; Debian-like is the default."""

    p = host_path(root, PATHS.os_release)
    if not p.exists():
        logger.info("No %s; assuming apt", str(p))
        return "apt"

    info = {}
    for line in p.read_text(encoding="utf-8").splitlines():
        key, sep, value = line.partition("=")
        if sep:
            info[key.strip()] = value.strip().strip('"')

    ids = {info.get("ID", "").lower(), *info.get("ID_LIKE", "").lower().split()}
    if ids & {"rhel", "fedora", "centos", "rocky", "almalinux", "amzn"}:
        return "yum"
    return "apt"


def installed_version(provider: str, package: str) -> Optional[str]:
    if provider == "apt":
        r = run_cmd(
            ["dpkg-query", "-W", "-f=${Status} ${Version}", package],
            check=False,
        )
        if not r.ok:
            return None
        parts = r.stdout.split()
        # "install ok installed 3.8.9-1"
        if len(parts) >= 4 and parts[2] == "installed":
            return parts[3]
        return None

    r = run_cmd(["rpm", "-q", "--qf", "%{VERSION}-%{RELEASE}", package], check=False)
    if not r.ok or not r.stdout.strip():
        return None
    return r.stdout.strip()


def candidate_version(provider: str, package: str) -> Optional[str]:
    if provider == "apt":
        r = run_cmd(["apt-cache", "policy", package], check=False)
        for line in r.stdout.splitlines():
            line = line.strip()
            if line.startswith("Candidate:"):
                value = line.split(":", 1)[1].strip()
                return None if value == "(none)" else value
        return None

    r = run_cmd(
        ["repoquery", "--latest-limit=1", "--qf", "%{VERSION}-%{RELEASE}", package],
        check=False,
    )
    return r.stdout.strip() or None


def apt_update(*, dry_run: bool = False) -> None:
    run_cmd(["apt-get", "update"], env=_APT_ENV, dry_run=dry_run)


def install(provider: str, package: str, version: Optional[str] = None, *, dry_run: bool = False) -> None:
    if provider == "apt":
        spec = f"{package}={version}" if version else package
        run_cmd(
            ["apt-get", "install", "-y", "--no-install-recommends", spec],
            env=_APT_ENV,
            dry_run=dry_run,
        )
    else:
        spec = f"{package}-{version}" if version else package
        run_cmd(["yum", "install", "-y", spec], dry_run=dry_run)


def install_from_source(source: str, *, dry_run: bool = False) -> None:
    """Install an rpm straight from a URL or path (yum hosts without a managed repo)."""

    run_cmd(["rpm", "-Uvh", source], dry_run=dry_run)


def remove(provider: str, package: str, *, dry_run: bool = False) -> None:
    if provider == "apt":
        run_cmd(["apt-get", "remove", "-y", package], env=_APT_ENV, dry_run=dry_run)
    else:
        run_cmd(["yum", "remove", "-y", package], dry_run=dry_run)


def ensure_package(
    provider: str,
    package: str,
    ensure: str = "installed",
    *,
    source: Optional[str] = None,
    dry_run: bool = False,
) -> bool:
    """Converge one package. ``ensure`` is installed|present|latest|absent or an exact version."""

    current = installed_version(provider, package)

    if ensure == "absent":
        if current is None:
            return False
        remove(provider, package, dry_run=dry_run)
        logger.info("Removed package %s (%s)", package, current)
        return True

    if ensure in {"installed", "present"}:
        if current is not None:
            return False
        if source and provider == "yum":
            install_from_source(source, dry_run=dry_run)
        else:
            install(provider, package, dry_run=dry_run)
        logger.info("Installed package %s", package)
        return True

    if ensure == "latest":
        candidate = candidate_version(provider, package)
        if current is not None and (candidate is None or candidate == current):
            return False
        install(provider, package, dry_run=dry_run)
        logger.info("Upgraded package %s (%s -> %s)", package, current, candidate)
        return True

    if current == ensure:
        return False
    install(provider, package, ensure, dry_run=dry_run)
    logger.info("Pinned package %s to %s (was %s)", package, ensure, current)
    return True
