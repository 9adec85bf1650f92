from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

from .lib.env import PATHS

DEFAULT_LOG_PATH = PATHS.log_default
FALLBACK_LOG_NAME = "rabbitmq-installer.log"

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"


def _open_file_handler(log_path: str) -> tuple[logging.Handler, str]:
    """Open the requested log file, or one in the working directory if that is not writable."""

    try:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path), log_path
    except OSError:
        fallback = str(Path.cwd() / FALLBACK_LOG_NAME)
        return logging.FileHandler(fallback), fallback


def configure_logging(
    log_path: Optional[str] = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = True,
) -> Optional[str]:
    """Configure root logging for a convergence run.

    Every resource decision and every external command is logged, so the log
    file doubles as the audit trail of what a run changed on the host.
    ``log_path=None`` logs to the console only.

    Returns the path of the log file actually used.
    """

    root = logging.getLogger()
    root.setLevel(level)

    # Calling twice (e.g. from tests or a wrapper) must not duplicate output.
    if getattr(root, "_rabbitmq_installer_configured", False):
        return getattr(root, "_rabbitmq_installer_log_path", log_path)

    fmt = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)
    handlers: list[logging.Handler] = []

    chosen: Optional[str] = None
    if log_path:
        file_handler, chosen = _open_file_handler(log_path)
        handlers.append(file_handler)

    if also_console:
        handlers.append(logging.StreamHandler(sys.stderr))

    for h in handlers:
        h.setFormatter(fmt)
        root.addHandler(h)

    setattr(root, "_rabbitmq_installer_configured", True)
    setattr(root, "_rabbitmq_installer_log_path", chosen)

    logging.getLogger(__name__).info("Logging initialized (requested=%s, actual=%s)", log_path, chosen)
    return chosen
