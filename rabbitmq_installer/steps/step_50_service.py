from __future__ import annotations

import logging

from ..lib.service import ensure_service
from ..pipeline import ConvergeCtx

logger = logging.getLogger(__name__)


class ServiceStep:
    step_id = "50_service"

    def run(self, ctx: ConvergeCtx) -> None:
        cfg = ctx.cfg
        if not cfg.service_manage:
            if ctx.service_notified:
                logger.info("Service %s not managed; restart it to apply changes", cfg.service_name)
            return

        actions = ensure_service(
            cfg.service_name,
            cfg.service_ensure,
            restart_needed=ctx.service_notified,
            dry_run=ctx.dry_run,
        )
        for action in actions:
            ctx.record(f"service[{cfg.service_name}]", action)
        ctx.service_notified = False
