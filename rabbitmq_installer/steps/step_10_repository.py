from __future__ import annotations

import logging

from ..lib.apt_repo import ensure_apt_repo, ensure_yum_repo
from ..lib.pkg import apt_update
from ..pipeline import ConvergeCtx

logger = logging.getLogger(__name__)


class RepositoryStep:
    step_id = "10_repository"

    def run(self, ctx: ConvergeCtx) -> None:
        cfg = ctx.cfg
        if not cfg.manage_repos:
            logger.info("Upstream repository not managed (manage_repos=false)")
            return

        if ctx.provider == "apt":
            if ensure_apt_repo(ctx.root, cfg, dry_run=ctx.dry_run):
                ctx.record("apt_repo[rabbitmq]", "configured")
                apt_update(dry_run=ctx.dry_run)
        else:
            if ensure_yum_repo(ctx.root, cfg, dry_run=ctx.dry_run):
                ctx.record("yum_repo[rabbitmq]", "configured")
