from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import pytest
import yaml

from rabbitmq_installer.lib.command import CmdResult

RUN_CMD_MODULES = (
    "rabbitmq_installer.lib.files",
    "rabbitmq_installer.lib.pkg",
    "rabbitmq_installer.lib.plugins",
    "rabbitmq_installer.lib.rabbitmqctl",
    "rabbitmq_installer.lib.service",
)


@dataclass
class FakeHost:
    """In-memory stand-in for the package manager, systemd and the broker CLIs."""

    packages: Dict[str, str] = field(default_factory=dict)
    candidates: Dict[str, str] = field(default_factory=lambda: {"rabbitmq-server": "3.8.9-1"})
    active: Set[str] = field(default_factory=set)
    enabled: Set[str] = field(default_factory=set)
    plugins: Set[str] = field(default_factory=set)
    users: Dict[str, List[str]] = field(default_factory=lambda: {"guest": ["administrator"]})
    vhosts: Set[str] = field(default_factory=lambda: {"/"})
    permissions: Dict[str, Dict[str, Tuple[str, str, str]]] = field(default_factory=dict)
    owners: Dict[str, Tuple[str, str]] = field(default_factory=dict)
    calls: List[List[str]] = field(default_factory=list)
    dry_calls: List[List[str]] = field(default_factory=list)

    def owner_of(self, path: Path) -> Tuple[Optional[str], Optional[str]]:
        return self.owners.get(str(path), ("root", "root"))

    def commands(self, *prefix: str) -> List[List[str]]:
        return [c for c in self.calls if c[: len(prefix)] == list(prefix)]

    def run(self, argv, *, check=True, env=None, cwd=None, input_text=None, dry_run=False) -> CmdResult:
        argv = list(argv)
        if dry_run:
            self.dry_calls.append(argv)
            return CmdResult(argv=argv, returncode=0, stdout="", stderr="")
        self.calls.append(argv)
        rc, out = self._dispatch(argv)
        if check and rc != 0:
            raise RuntimeError(f"Command failed ({rc}): {' '.join(argv)}")
        return CmdResult(argv=argv, returncode=rc, stdout=out, stderr="")

    def _dispatch(self, argv: List[str]) -> Tuple[int, str]:
        cmd, args = argv[0], argv[1:]

        if cmd == "dpkg-query":
            name = args[-1]
            if name in self.packages:
                return 0, f"install ok installed {self.packages[name]}"
            return 1, ""
        if cmd == "apt-cache":
            name = args[-1]
            return 0, f"{name}:\n  Installed: (none)\n  Candidate: {self.candidates.get(name, '(none)')}\n"
        if cmd == "apt-get":
            if args[0] == "install":
                spec = args[-1]
                name, _, version = spec.partition("=")
                self.packages[name] = version or self.candidates.get(name, "1.0")
            elif args[0] == "remove":
                self.packages.pop(args[-1], None)
            return 0, ""

        if cmd == "systemctl":
            action, name = args[0], args[-1]
            if action == "is-active":
                return (0 if name in self.active else 3), ""
            if action == "is-enabled":
                return (0 if name in self.enabled else 1), ""
            if action in ("start", "restart"):
                self.active.add(name)
            elif action == "stop":
                self.active.discard(name)
            elif action == "enable":
                self.enabled.add(name)
            elif action == "disable":
                self.enabled.discard(name)
            return 0, ""

        if cmd == "rabbitmq-plugins":
            if args[0] == "list":
                return 0, "".join(f"{p}\n" for p in sorted(self.plugins))
            if args[0] == "enable":
                self.plugins.add(args[1])
            return 0, ""

        if cmd == "rabbitmqctl":
            return self._rabbitmqctl([a for a in args if a != "-q"])

        if cmd == "chown":
            user, _, group = args[0].partition(":")
            self.owners[args[1]] = (user, group or user)
            return 0, ""

        return 0, ""

    def _rabbitmqctl(self, args: List[str]) -> Tuple[int, str]:
        op = args[0]
        if op == "list_users":
            lines = ["Listing users ..."]
            lines += [f"{u}\t[{', '.join(tags)}]" for u, tags in sorted(self.users.items())]
            return 0, "\n".join(lines) + "\n"
        if op == "add_user":
            self.users[args[1]] = []
        elif op == "delete_user":
            self.users.pop(args[1], None)
        elif op == "set_user_tags":
            self.users[args[1]] = list(args[2:])
        elif op == "list_vhosts":
            return 0, "name\n" + "".join(f"{v}\n" for v in sorted(self.vhosts))
        elif op == "add_vhost":
            self.vhosts.add(args[1])
        elif op == "list_user_permissions":
            rows = self.permissions.get(args[1], {})
            return 0, "".join(f"{v}\t{c}\t{w}\t{r}\n" for v, (c, w, r) in sorted(rows.items()))
        elif op == "set_permissions":
            vhost, user, c, w, r = args[2], args[3], args[4], args[5], args[6]
            self.permissions.setdefault(user, {})[vhost] = (c, w, r)
        return 0, ""


@pytest.fixture
def host(monkeypatch) -> FakeHost:
    fake = FakeHost()
    for mod in RUN_CMD_MODULES:
        monkeypatch.setattr(f"{mod}.run_cmd", fake.run)
    monkeypatch.setattr("rabbitmq_installer.lib.files._owner_of", fake.owner_of)
    monkeypatch.setattr(
        "rabbitmq_installer.steps.step_60_admin_cli.fetch",
        lambda url, **kwargs: b"#!/usr/bin/env python3\n# rabbitmqadmin\n",
    )
    return fake


@pytest.fixture
def root(tmp_path: Path) -> Path:
    r = tmp_path / "root"
    r.mkdir()
    return r


@pytest.fixture
def write_config(tmp_path: Path):
    def _write(**options) -> str:
        p = tmp_path / "broker.yaml"
        p.write_text(yaml.safe_dump(options), encoding="utf-8")
        return str(p)

    return _write


@pytest.fixture
def converge(root: Path, tmp_path: Path):
    from rabbitmq_installer.main import run

    def _converge(config_path: str, **kwargs):
        state = run(
            config_path=config_path,
            root=str(root),
            state_path=str(tmp_path / "state.json"),
            log_path=None,
            **kwargs,
        )
        return state["last_run"]

    return _converge


@pytest.fixture(autouse=True)
def _reset_logging():
    root_logger = logging.getLogger()
    before = set(root_logger.handlers)
    yield
    for h in list(root_logger.handlers):
        if h not in before and type(h) in (logging.FileHandler, logging.StreamHandler):
            root_logger.removeHandler(h)
            h.close()
    if hasattr(root_logger, "_rabbitmq_installer_configured"):
        delattr(root_logger, "_rabbitmq_installer_configured")
