from __future__ import annotations

import logging

from ..lib.env import PATHS
from ..lib.files import ensure_directory, ensure_file, read_file
from ..pipeline import ConvergeCtx

logger = logging.getLogger(__name__)

BROKER_USER = "rabbitmq"


def _cookie_text(root: str, path: str, cookie: str) -> str:
    """Keep an existing cookie file byte for byte when it only differs by surrounding whitespace."""

    existing = read_file(root, path)
    if existing is not None and existing.strip() == cookie:
        return existing
    return cookie


class ConfigureBrokerStep:
    step_id = "40_configure"

    def run(self, ctx: ConvergeCtx) -> None:
        cfg = ctx.cfg
        root = ctx.root
        dry_run = ctx.dry_run

        if ensure_directory(root, PATHS.config_dir, mode=0o755, owner="root", group="root", dry_run=dry_run):
            ctx.record(f"directory[{PATHS.config_dir}]", "ensured")

        if cfg.ssl and ensure_directory(root, PATHS.ssl_dir, mode=0o755, owner="root", group="root", dry_run=dry_run):
            ctx.record(f"directory[{PATHS.ssl_dir}]", "ensured")

        if ensure_file(
            root,
            cfg.config_path,
            ctx.rendered_config,
            mode=0o644,
            owner="root",
            group="root",
            dry_run=dry_run,
        ):
            ctx.record(f"file[{cfg.config_path}]", "updated", notify_service=True)

        if ensure_file(
            root,
            cfg.env_config_path,
            ctx.rendered_env,
            mode=0o644,
            owner="root",
            group="root",
            dry_run=dry_run,
        ):
            ctx.record(f"file[{cfg.env_config_path}]", "updated", notify_service=True)

        if cfg.erlang_cookie is not None and ensure_file(
            root,
            cfg.erlang_cookie_path,
            _cookie_text(root, cfg.erlang_cookie_path, cfg.erlang_cookie),
            mode=0o400,
            owner=BROKER_USER,
            group=BROKER_USER,
            dry_run=dry_run,
        ):
            ctx.record(f"file[{cfg.erlang_cookie_path}]", "updated", notify_service=True)
