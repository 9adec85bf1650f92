from __future__ import annotations

import grp
import logging
import os
import pwd
import shutil
import stat
from pathlib import Path
from typing import Optional, Tuple

from .command import run_cmd
from .env import host_path

logger = logging.getLogger(__name__)


def _owner_of(path: Path) -> Tuple[Optional[str], Optional[str]]:
    st = path.stat()
    try:
        user: Optional[str] = pwd.getpwuid(st.st_uid).pw_name
    except KeyError:
        user = None
    try:
        group: Optional[str] = grp.getgrgid(st.st_gid).gr_name
    except KeyError:
        group = None
    return user, group


def _mode_of(path: Path) -> int:
    return stat.S_IMODE(path.stat().st_mode)


def _ensure_attrs(
    p: Path,
    *,
    mode: Optional[int],
    owner: Optional[str],
    group: Optional[str],
    dry_run: bool,
) -> bool:
    changed = False

    if mode is not None and _mode_of(p) != mode:
        if dry_run:
            logger.info("Would chmod %o %s", mode, str(p))
        else:
            os.chmod(p, mode)
        changed = True

    if owner or group:
        cur_user, cur_group = _owner_of(p)
        if (owner and owner != cur_user) or (group and group != cur_group):
            spec = f"{owner or ''}:{group or ''}" if group else str(owner)
            run_cmd(["chown", spec, str(p)], dry_run=dry_run)
            changed = True

    return changed


def ensure_directory(
    root: str,
    path: str,
    *,
    mode: Optional[int] = None,
    owner: Optional[str] = None,
    group: Optional[str] = None,
    dry_run: bool = False,
) -> bool:
    """Make sure a directory exists with the given attributes. Returns True if anything changed."""

    p = host_path(root, path)
    if not p.exists():
        if dry_run:
            logger.info("Would create directory %s", str(p))
            return True
        p.mkdir(parents=True, exist_ok=True)
        logger.info("Created directory %s", str(p))
        _ensure_attrs(p, mode=mode, owner=owner, group=group, dry_run=dry_run)
        return True

    if not p.is_dir():
        raise RuntimeError(f"{p} exists and is not a directory")
    return _ensure_attrs(p, mode=mode, owner=owner, group=group, dry_run=dry_run)


def ensure_file(
    root: str,
    path: str,
    contents: str | bytes,
    *,
    mode: Optional[int] = None,
    owner: Optional[str] = None,
    group: Optional[str] = None,
    dry_run: bool = False,
) -> bool:
    """Converge one file's content and attributes. Returns True if anything changed."""

    p = host_path(root, path)
    data = contents.encode("utf-8") if isinstance(contents, str) else contents

    if p.exists() and not p.is_file():
        raise RuntimeError(f"{p} exists and is not a regular file")

    content_changed = not p.exists() or p.read_bytes() != data
    if content_changed:
        if dry_run:
            logger.info("Would write %s", str(p))
            return True
        p.parent.mkdir(parents=True, exist_ok=True)
        tmp = p.with_name(f".{p.name}.tmp")
        tmp.write_bytes(data)
        if mode is not None:
            os.chmod(tmp, mode)
        os.replace(tmp, p)
        logger.info("Wrote %s", str(p))

    attrs_changed = _ensure_attrs(p, mode=mode, owner=owner, group=group, dry_run=dry_run)
    return content_changed or attrs_changed


def read_file(root: str, path: str) -> Optional[str]:
    p = host_path(root, path)
    if not p.is_file():
        return None
    return p.read_text(encoding="utf-8")


def remove_tree(root: str, path: str, *, dry_run: bool = False) -> bool:
    p = host_path(root, path)
    if not p.exists():
        return False
    if dry_run:
        logger.info("Would remove %s", str(p))
        return True
    if p.is_dir() and not p.is_symlink():
        shutil.rmtree(p)
    else:
        p.unlink()
    logger.info("Removed %s", str(p))
    return True
