from __future__ import annotations

import logging

from ..lib.plugins import ensure_plugins
from ..pipeline import ConvergeCtx

logger = logging.getLogger(__name__)


class EnablePluginsStep:
    step_id = "45_plugins"

    def run(self, ctx: ConvergeCtx) -> None:
        for name in ensure_plugins(ctx.cfg.enabled_plugins, dry_run=ctx.dry_run):
            ctx.record(f"plugin[{name}]", "enabled", notify_service=True)
