"""Thin wrappers around ``rabbitmqctl`` for users, vhosts and permissions.

Listing commands are run with ``-q``; older broker releases still print a
"Listing ..." banner or a column header, which the parsers skip.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence, Tuple

from .command import run_cmd

logger = logging.getLogger(__name__)

_BANNER_PREFIXES = ("Listing ", "...done", "Timeout:")


def _rows(stdout: str, header: Sequence[str] = ()) -> List[List[str]]:
    rows: List[List[str]] = []
    for line in stdout.splitlines():
        if not line.strip() or line.startswith(_BANNER_PREFIXES):
            continue
        cols = line.split("\t")
        if header and [c.strip() for c in cols[: len(header)]] == list(header):
            continue
        rows.append([c.strip() for c in cols])
    return rows


def _query(args: Sequence[str]) -> str:
    return run_cmd(["rabbitmqctl", "-q", *args]).stdout


def list_users() -> Dict[str, List[str]]:
    """Map user name -> tags."""

    users: Dict[str, List[str]] = {}
    for row in _rows(_query(["list_users"]), header=("user", "tags")):
        tags = row[1].strip("[]") if len(row) > 1 else ""
        users[row[0]] = [t.strip() for t in tags.replace(",", " ").split() if t.strip()]
    return users


def add_user(name: str, password: str, *, dry_run: bool = False) -> None:
    run_cmd(["rabbitmqctl", "add_user", name, password], dry_run=dry_run)


def delete_user(name: str, *, dry_run: bool = False) -> None:
    run_cmd(["rabbitmqctl", "delete_user", name], dry_run=dry_run)


def set_user_tags(name: str, tags: Sequence[str], *, dry_run: bool = False) -> None:
    run_cmd(["rabbitmqctl", "set_user_tags", name, *tags], dry_run=dry_run)


def list_vhosts() -> List[str]:
    return [row[0] for row in _rows(_query(["list_vhosts"]), header=("name",))]


def add_vhost(name: str, *, dry_run: bool = False) -> None:
    run_cmd(["rabbitmqctl", "add_vhost", name], dry_run=dry_run)


def list_user_permissions(user: str) -> Dict[str, Tuple[str, str, str]]:
    """Map vhost -> (configure, write, read) for one user."""

    perms: Dict[str, Tuple[str, str, str]] = {}
    out = _query(["list_user_permissions", user])
    for row in _rows(out, header=("vhost", "configure", "write", "read")):
        padded = (row + ["", "", ""])[:4]
        perms[padded[0]] = (padded[1], padded[2], padded[3])
    return perms


def set_permissions(
    user: str,
    vhost: str,
    configure: str,
    write: str,
    read: str,
    *,
    dry_run: bool = False,
) -> None:
    run_cmd(["rabbitmqctl", "set_permissions", "-p", vhost, user, configure, write, read], dry_run=dry_run)
