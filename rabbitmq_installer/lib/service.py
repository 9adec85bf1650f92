from __future__ import annotations

import logging

from .command import run_cmd

logger = logging.getLogger(__name__)


def is_active(name: str) -> bool:
    r = run_cmd(["systemctl", "is-active", "--quiet", name], check=False)
    return r.ok


def is_enabled(name: str) -> bool:
    r = run_cmd(["systemctl", "is-enabled", "--quiet", name], check=False)
    return r.ok


def start(name: str, *, dry_run: bool = False) -> None:
    run_cmd(["systemctl", "start", name], dry_run=dry_run)


def stop(name: str, *, dry_run: bool = False) -> None:
    run_cmd(["systemctl", "stop", name], dry_run=dry_run)


def restart(name: str, *, dry_run: bool = False) -> None:
    run_cmd(["systemctl", "restart", name], dry_run=dry_run)


def set_enabled(name: str, enabled: bool, *, dry_run: bool = False) -> None:
    run_cmd(["systemctl", "enable" if enabled else "disable", name], dry_run=dry_run)


def ensure_service(name: str, ensure: str, *, restart_needed: bool = False, dry_run: bool = False) -> list[str]:
    """Converge a systemd unit to running+enabled or stopped+disabled.

    Returns the list of actions taken (empty when nothing changed).
    A pending restart only applies to a unit that was already running.
    """

    actions: list[str] = []
    want_running = ensure == "running"

    if is_enabled(name) != want_running:
        set_enabled(name, want_running, dry_run=dry_run)
        actions.append("enabled" if want_running else "disabled")

    running = is_active(name)
    if want_running and not running:
        start(name, dry_run=dry_run)
        actions.append("started")
    elif not want_running and running:
        stop(name, dry_run=dry_run)
        actions.append("stopped")
    elif want_running and restart_needed:
        restart(name, dry_run=dry_run)
        actions.append("restarted")

    if actions:
        logger.info("Service %s: %s", name, ", ".join(actions))
    return actions
