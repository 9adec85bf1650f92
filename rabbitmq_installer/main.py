from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from .broker_config import BrokerConfig, ConfigValidationError, load_broker_config
from .lib.env import PATHS, host_path
from .lib.erlang_terms import TermSyntaxError
from .lib.pkg import detect_provider
from .lib.render import render_env_config, render_rabbitmq_config
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .pipeline import ConvergeCtx, run_pipeline
from .state_store import ensure_defaults, load_state, save_state, start_run
from .steps import (
    AdminCliStep,
    ClusterSecretGuardStep,
    ConfigureBrokerStep,
    CookieMismatchError,
    EnablePluginsStep,
    InstallPackageStep,
    RepositoryStep,
    ServiceStep,
    UsersStep,
)

logger = logging.getLogger(__name__)

EXIT_ABORTED = 2


def build_steps():
    return [
        RepositoryStep(),
        InstallPackageStep(),
        ClusterSecretGuardStep(),
        ConfigureBrokerStep(),
        EnablePluginsStep(),
        ServiceStep(),
        AdminCliStep(),
        UsersStep(),
    ]


def plan(cfg: BrokerConfig, *, root: str = "/") -> ConvergeCtx:
    """Render and check everything up front; no host state is touched here."""

    return ConvergeCtx(
        cfg=cfg,
        rendered_config=render_rabbitmq_config(cfg),
        rendered_env=render_env_config(cfg),
        provider=cfg.package_provider or detect_provider(root),
        root=root,
    )


def run(
    *,
    config_path: Optional[str],
    overrides: Sequence[str] = (),
    root: str = "/",
    state_path: Optional[str] = None,
    log_path: Optional[str] = DEFAULT_LOG_PATH,
    dry_run: bool = False,
    skip: Sequence[str] = (),
) -> Dict[str, Any]:
    """Converge the host once, persisting a record of the run."""

    actual_log_path = configure_logging(log_path=log_path)
    state_file = state_path or str(host_path(root, PATHS.state_default))

    state = ensure_defaults(load_state(state_file))
    record = start_run(state, started_at=datetime.now(timezone.utc).isoformat(), dry_run=dry_run)
    record["log_path"] = actual_log_path

    try:
        cfg = load_broker_config(config_path, overrides)
        ctx = plan(cfg, root=root)
        ctx.dry_run = dry_run
        record["provider"] = ctx.provider

        try:
            result = run_pipeline(ctx=ctx, steps=build_steps(), skip=skip)
        finally:
            record["current_step"] = ctx.current_step
            record["changes"] = [
                {"step": c.step, "resource": c.resource, "action": c.action} for c in ctx.changes
            ]

        record.update(result.as_dict())
        if result.changed and not dry_run:
            state["last_changed_run"] = record["started_at"]
        logger.info(
            "Convergence finished: %d change(s)%s",
            len(result.changes),
            " (dry run)" if dry_run else "",
        )
        return state
    except Exception as e:
        logger.exception("Convergence failed")
        record.setdefault("errors", []).append(
            {
                "step": record.get("current_step"),
                "type": type(e).__name__,
                "error": str(e),
            }
        )
        raise
    finally:
        if not dry_run:
            save_state(state_file, state)


def render(*, config_path: Optional[str], overrides: Sequence[str] = ()) -> Dict[str, str]:
    cfg = load_broker_config(config_path, overrides)
    return {
        cfg.config_path: render_rabbitmq_config(cfg),
        cfg.env_config_path: render_env_config(cfg),
    }


def main(argv: Optional[List[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="rabbitmq-installer", description="Install and configure RabbitMQ on this host")
    p.add_argument("--config", default=None, help="Broker descriptor (YAML)")
    p.add_argument(
        "--set",
        dest="overrides",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override one descriptor option (value parsed as YAML); repeatable",
    )
    p.add_argument("--root", default="/", help="Alternate filesystem root for managed files")
    p.add_argument("--state", default=None, help="Path to the run record (json|yaml)")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to the convergence log")
    p.add_argument("--dry-run", action="store_true", help="Log what would change without changing it")
    p.add_argument("--skip", action="append", default=[], metavar="STEP_ID", help="Skip a step (e.g. 10_repository)")
    p.add_argument("--render", action="store_true", help="Print the rendered config files and exit")

    args = p.parse_args(argv)

    try:
        if args.render:
            for path, text in render(config_path=args.config, overrides=args.overrides).items():
                sys.stdout.write(f"# ==> {path} <==\n{text}")
            return 0

        run(
            config_path=args.config,
            overrides=args.overrides,
            root=args.root,
            state_path=args.state,
            log_path=args.log,
            dry_run=bool(args.dry_run),
            skip=args.skip,
        )
    except (ConfigValidationError, TermSyntaxError, CookieMismatchError) as e:
        sys.stderr.write(f"rabbitmq-installer: {e}\n")
        return EXIT_ABORTED
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
