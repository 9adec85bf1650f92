from __future__ import annotations

import logging

from ..lib.pkg import ensure_package
from ..pipeline import ConvergeCtx

logger = logging.getLogger(__name__)


class InstallPackageStep:
    step_id = "20_package"

    def run(self, ctx: ConvergeCtx) -> None:
        cfg = ctx.cfg
        changed = ensure_package(
            ctx.provider,
            cfg.package_name,
            cfg.package_ensure,
            source=cfg.package_source,
            dry_run=ctx.dry_run,
        )
        if changed:
            ctx.record(f"package[{cfg.package_name}]", cfg.package_ensure, notify_service=True)
