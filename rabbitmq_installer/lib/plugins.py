from __future__ import annotations

import logging
from typing import Sequence

from .command import run_cmd

logger = logging.getLogger(__name__)

# rabbitmq-plugins writes its state under $HOME when run outside a login shell.
_PLUGINS_ENV = {"HOME": "/root"}


def enabled_plugins(*, check: bool = True) -> list[str]:
    """Explicitly enabled plugins (``rabbitmq-plugins list -E -m``)."""

    r = run_cmd(["rabbitmq-plugins", "list", "-E", "-m"], env=_PLUGINS_ENV, check=check)
    if not r.ok:
        return []
    return [line.strip() for line in r.stdout.splitlines() if line.strip()]


def enable_plugin(name: str, *, dry_run: bool = False) -> None:
    run_cmd(["rabbitmq-plugins", "enable", name], env=_PLUGINS_ENV, dry_run=dry_run)


def ensure_plugins(wanted: Sequence[str], *, dry_run: bool = False) -> list[str]:
    """Enable every wanted plugin that is not enabled yet. Returns the newly enabled ones."""

    if not wanted:
        return []

    # A dry run may come before the package is installed, so the tool can be missing.
    present = set(enabled_plugins(check=not dry_run))
    added: list[str] = []
    for name in wanted:
        if name in present:
            continue
        enable_plugin(name, dry_run=dry_run)
        added.append(name)

    if added:
        logger.info("Enabled plugins: %s", ",".join(added))
    return added
