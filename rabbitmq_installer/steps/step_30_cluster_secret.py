"""Guard around changing the Erlang cookie of an existing node.

A node whose cookie changes can no longer talk to its mnesia database, so
the old state either has to be wiped (explicitly authorised) or the run
stops before anything else is touched.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..lib import service
from ..lib.files import read_file, remove_tree
from ..pipeline import ConvergeCtx

logger = logging.getLogger(__name__)


class CookieMismatchError(RuntimeError):
    def __init__(self, path: str) -> None:
        super().__init__(
            f"The Erlang cookie at {path} differs from the configured erlang_cookie. "
            "Changing it orphans the existing broker database. "
            "Set wipe_db_on_cookie_change=true to stop the service and delete it, "
            "or fix the configured cookie."
        )
        self.path = path


def current_cookie(root: str, path: str) -> Optional[str]:
    text = read_file(root, path)
    if text is None:
        return None
    return text.strip()


class ClusterSecretGuardStep:
    step_id = "30_cluster_secret"

    def run(self, ctx: ConvergeCtx) -> None:
        cfg = ctx.cfg
        if cfg.erlang_cookie is None:
            return

        existing = current_cookie(ctx.root, cfg.erlang_cookie_path)
        if existing is None:
            logger.info("No Erlang cookie on disk yet; it will be created")
            return
        if existing == cfg.erlang_cookie:
            return

        if not cfg.wipe_db_on_cookie_change:
            logger.error("Erlang cookie mismatch at %s and wipe_db_on_cookie_change=false", cfg.erlang_cookie_path)
            raise CookieMismatchError(cfg.erlang_cookie_path)

        logger.warning("Erlang cookie changed; wiping %s", cfg.mnesia_dir)
        if service.is_active(cfg.service_name):
            service.stop(cfg.service_name, dry_run=ctx.dry_run)
            ctx.record(f"service[{cfg.service_name}]", "stopped")
        if remove_tree(ctx.root, cfg.mnesia_dir, dry_run=ctx.dry_run):
            ctx.record(f"directory[{cfg.mnesia_dir}]", "wiped")
