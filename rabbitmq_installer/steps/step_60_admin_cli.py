from __future__ import annotations

import logging

from ..lib.download import fetch
from ..lib.env import host_path
from ..lib.files import ensure_file
from ..pipeline import ConvergeCtx

logger = logging.getLogger(__name__)


class AdminCliStep:
    step_id = "60_admin_cli"

    def run(self, ctx: ConvergeCtx) -> None:
        cfg = ctx.cfg
        if not cfg.admin_enable:
            return
        if cfg.service_ensure != "running":
            logger.info("Skipping rabbitmqadmin download; the management listener is not running")
            return

        # Downloaded once, like the management plugin ships it; delete the file to refresh.
        if host_path(ctx.root, cfg.rabbitmqadmin_path).exists():
            return

        if ctx.dry_run:
            logger.info("Would download %s to %s", cfg.admin_url, cfg.rabbitmqadmin_path)
            ctx.record(f"file[{cfg.rabbitmqadmin_path}]", "downloaded")
            return

        data = fetch(
            cfg.admin_url,
            auth=(cfg.default_user, cfg.default_pass),
            verify=not cfg.ssl,
        )
        ensure_file(ctx.root, cfg.rabbitmqadmin_path, data, mode=0o755, dry_run=ctx.dry_run)
        ctx.record(f"file[{cfg.rabbitmqadmin_path}]", "downloaded")
