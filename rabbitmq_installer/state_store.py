from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)

STATE_VERSION = 1


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"json", "yaml", "yml"}:
        return ext
    # Default to JSON for unknown extensions.
    return "json"


def load_state(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        return {}

    fmt = _detect_format(p)
    data: Dict[str, Any]

    if fmt in {"yaml", "yml"}:
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    else:
        data = json.loads(p.read_text(encoding="utf-8"))

    if not isinstance(data, dict):
        raise ValueError(f"State file must be an object/dict, got {type(data)}")

    return data


def save_state(path: str, state: Dict[str, Any]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    fmt = _detect_format(p)
    if fmt in {"yaml", "yml"}:
        p.write_text(yaml.safe_dump(state, sort_keys=False) + "\n", encoding="utf-8")
    else:
        p.write_text(json.dumps(state, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def ensure_defaults(state: Dict[str, Any]) -> Dict[str, Any]:
    """Fill required keys with defaults (without overriding recorded values)."""

    state.setdefault("version", STATE_VERSION)
    state.setdefault("runs", 0)
    state.setdefault("last_run", {})
    state.setdefault("last_changed_run", None)

    run = state["last_run"]
    run.setdefault("current_step", None)
    run.setdefault("changes", [])
    run.setdefault("errors", [])

    return state


def start_run(state: Dict[str, Any], *, started_at: str, dry_run: bool) -> Dict[str, Any]:
    """Reset ``last_run`` for a new convergence and return it."""

    state["runs"] = int(state.get("runs") or 0) + 1
    state["last_run"] = {
        "started_at": started_at,
        "dry_run": dry_run,
        "current_step": None,
        "changes": [],
        "errors": [],
    }
    return state["last_run"]
