from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml


class ConfigValidationError(ValueError):
    """Raised when the broker descriptor is malformed. Nothing has been changed yet."""


_PORT_OPTIONS = (
    "port",
    "management_port",
    "ssl_port",
    "ssl_management_port",
    "ssl_stomp_port",
    "stomp_port",
    "ldap_port",
)

_BOOL_OPTIONS = (
    "manage_repos",
    "service_manage",
    "delete_guest_user",
    "admin_enable",
    "config_cluster",
    "wipe_db_on_cookie_change",
    "ssl",
    "ssl_only",
    "ssl_fail_if_no_peer_cert",
    "config_stomp",
    "ldap_auth",
    "ldap_use_ssl",
    "ldap_log",
)

_CHOICES: Dict[str, tuple] = {
    "package_provider": (None, "apt", "yum"),
    "service_ensure": ("running", "stopped"),
    "cluster_node_type": ("disc", "ram"),
    "cluster_partition_handling": ("ignore", "pause_minority", "autoheal"),
    "ssl_verify": ("verify_none", "verify_peer"),
}

_ENV_NAME = re.compile(r"^[A-Z_][A-Z0-9_]*$")
_ERLANG_KEY = re.compile(r"^[a-z][A-Za-z0-9_@]*$")
_DIGITS = re.compile(r"[0-9]+")
_PERMISSION_KEYS = ("configure", "write", "read")


@dataclass(frozen=True)
class BrokerConfig:
    """Broker configuration descriptor.

    Built once from caller-supplied options (see :func:`from_mapping`),
    validated, then only ever read.
    """

    package_name: str = "rabbitmq-server"
    package_ensure: str = "installed"
    package_provider: Optional[str] = None
    package_source: Optional[str] = None

    manage_repos: bool = False
    repo_location: str = "http://www.rabbitmq.com/debian/"
    repo_release: str = "testing"
    repo_components: str = "main"
    repo_key_source: str = "https://www.rabbitmq.com/rabbitmq-signing-key-public.asc"

    service_name: str = "rabbitmq-server"
    service_manage: bool = True
    service_ensure: str = "running"

    port: str = "5672"
    node_ip_address: Optional[str] = None
    management_port: str = "15672"

    default_user: str = "guest"
    default_pass: str = "guest"
    delete_guest_user: bool = False
    admin_enable: bool = True

    config_cluster: bool = False
    cluster_nodes: List[str] = field(default_factory=list)
    cluster_node_type: str = "disc"
    cluster_partition_handling: str = "ignore"
    erlang_cookie: Optional[str] = None
    wipe_db_on_cookie_change: bool = False

    ssl: bool = False
    ssl_only: bool = False
    ssl_cacert: Optional[str] = None
    ssl_cert: Optional[str] = None
    ssl_key: Optional[str] = None
    ssl_port: str = "5671"
    ssl_management_port: str = "15671"
    ssl_stomp_port: str = "6164"
    ssl_verify: str = "verify_none"
    ssl_fail_if_no_peer_cert: bool = False

    config_stomp: bool = False
    stomp_port: str = "6163"

    ldap_auth: bool = False
    ldap_server: str = "ldap"
    ldap_user_dn_pattern: str = "cn=${username},ou=People,dc=example,dc=com"
    ldap_other_bind: str = "anon"
    ldap_use_ssl: bool = False
    ldap_port: str = "389"
    ldap_log: bool = False

    plugins: List[str] = field(default_factory=list)
    config_variables: Dict[str, str] = field(default_factory=dict)
    config_kernel_variables: Dict[str, str] = field(default_factory=dict)
    environment_variables: Dict[str, str] = field(default_factory=dict)

    vhosts: List[str] = field(default_factory=list)
    users: List[Dict[str, Any]] = field(default_factory=list)
    permissions: List[Dict[str, str]] = field(default_factory=list)

    config_path: str = "/etc/rabbitmq/rabbitmq.config"
    env_config_path: str = "/etc/rabbitmq/rabbitmq-env.conf"
    erlang_cookie_path: str = "/var/lib/rabbitmq/.erlang.cookie"
    mnesia_dir: str = "/var/lib/rabbitmq/mnesia"
    rabbitmqadmin_path: str = "/usr/local/bin/rabbitmqadmin"

    @classmethod
    def option_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "BrokerConfig":
        unknown = sorted(set(raw) - set(cls.option_names()))
        if unknown:
            raise ConfigValidationError(f"Unknown option(s): {', '.join(unknown)}")

        values: Dict[str, Any] = {}
        for name, value in raw.items():
            if name in _PORT_OPTIONS:
                value = _port(name, value)
            values[name] = value

        cfg = cls(**values)
        cfg.validate()
        return cfg

    def validate(self) -> None:
        for name in _PORT_OPTIONS:
            _port(name, getattr(self, name))

        for name in _BOOL_OPTIONS:
            if not isinstance(getattr(self, name), bool):
                raise ConfigValidationError(f"{name} must be a boolean, got {getattr(self, name)!r}")

        for name, choices in _CHOICES.items():
            if getattr(self, name) not in choices:
                allowed = ", ".join(str(c) for c in choices if c is not None)
                raise ConfigValidationError(f"{name} must be one of: {allowed}")

        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, str) and "\n" in value:
                raise ConfigValidationError(f"{f.name} must not contain a newline")

        for name in ("package_name", "package_ensure", "service_name", "default_user", "default_pass"):
            _non_empty_str(name, getattr(self, name))

        for name in ("config_path", "env_config_path", "erlang_cookie_path", "mnesia_dir", "rabbitmqadmin_path"):
            value = _non_empty_str(name, getattr(self, name))
            if not value.startswith("/"):
                raise ConfigValidationError(f"{name} must be an absolute path")

        if self.node_ip_address is not None:
            _non_empty_str("node_ip_address", self.node_ip_address)

        _str_list("cluster_nodes", self.cluster_nodes)
        _str_list("plugins", self.plugins)
        _str_list("vhosts", self.vhosts)

        if self.config_cluster:
            if not self.erlang_cookie:
                raise ConfigValidationError("config_cluster requires erlang_cookie")
            if not self.cluster_nodes:
                raise ConfigValidationError("config_cluster requires at least one entry in cluster_nodes")

        if self.erlang_cookie is not None:
            cookie = _non_empty_str("erlang_cookie", self.erlang_cookie)
            if cookie != cookie.strip():
                raise ConfigValidationError("erlang_cookie must not have surrounding whitespace")

        if self.ssl:
            for name in ("ssl_cacert", "ssl_cert", "ssl_key"):
                if not getattr(self, name):
                    raise ConfigValidationError(f"ssl requires {name}")
        if self.ssl_only and not self.ssl:
            raise ConfigValidationError("ssl_only requires ssl")

        if self.ldap_auth:
            _non_empty_str("ldap_server", self.ldap_server)
            _non_empty_str("ldap_user_dn_pattern", self.ldap_user_dn_pattern)

        for name in ("config_variables", "config_kernel_variables"):
            mapping = getattr(self, name)
            if not isinstance(mapping, dict):
                raise ConfigValidationError(f"{name} must be a mapping")
            for key, value in mapping.items():
                if not isinstance(key, str) or not _ERLANG_KEY.match(key):
                    raise ConfigValidationError(f"{name}: invalid key {key!r}")
                if not isinstance(value, (str, int, bool)):
                    raise ConfigValidationError(f"{name}.{key} must be a scalar Erlang term")

        if not isinstance(self.environment_variables, dict):
            raise ConfigValidationError("environment_variables must be a mapping")
        for key, value in self.environment_variables.items():
            if not isinstance(key, str) or not _ENV_NAME.match(key):
                raise ConfigValidationError(f"environment_variables: invalid name {key!r}")
            if not isinstance(value, (str, int)) or "\n" in str(value):
                raise ConfigValidationError(f"environment_variables.{key} must be a single-line string")

        self._validate_users()

    def _validate_users(self) -> None:
        if not isinstance(self.users, list):
            raise ConfigValidationError("users must be a list")
        names = []
        for u in self.users:
            if not isinstance(u, dict):
                raise ConfigValidationError("users entries must be mappings")
            _non_empty_str("users[].name", u.get("name"))
            _non_empty_str("users[].password", u.get("password"))
            if not isinstance(u.get("admin", False), bool):
                raise ConfigValidationError("users[].admin must be a boolean")
            _str_list("users[].tags", u.get("tags") or [])
            if u["name"] in names:
                raise ConfigValidationError(f"users: duplicate name {u['name']!r}")
            names.append(u["name"])

        if not isinstance(self.permissions, list):
            raise ConfigValidationError("permissions must be a list")
        for p in self.permissions:
            if not isinstance(p, dict):
                raise ConfigValidationError("permissions entries must be mappings")
            _non_empty_str("permissions[].user", p.get("user"))
            _non_empty_str("permissions[].vhost", p.get("vhost"))
            for key in _PERMISSION_KEYS:
                if not isinstance(p.get(key, ".*"), str):
                    raise ConfigValidationError(f"permissions[].{key} must be a string")

    @property
    def enabled_plugins(self) -> List[str]:
        """Plugins implied by toggles plus the explicit list, de-duplicated in order."""

        wanted: list[str] = []
        if self.admin_enable:
            wanted.append("rabbitmq_management")
        if self.config_stomp:
            wanted.append("rabbitmq_stomp")
        if self.ldap_auth:
            wanted.append("rabbitmq_auth_backend_ldap")
        wanted.extend(self.plugins)

        dedup: list[str] = []
        for p in wanted:
            if p not in dedup:
                dedup.append(p)
        return dedup

    @property
    def admin_url(self) -> str:
        if self.ssl:
            return f"https://localhost:{self.ssl_management_port}/cli/rabbitmqadmin"
        return f"http://localhost:{self.management_port}/cli/rabbitmqadmin"


def _port(name: str, value: Any) -> str:
    if isinstance(value, bool):
        raise ConfigValidationError(f"{name} must be a port number, got {value!r}")
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str) or not _DIGITS.fullmatch(value):
        raise ConfigValidationError(f"{name} must be a port number, got {value!r}")
    if not 0 < int(value) < 65536:
        raise ConfigValidationError(f"{name} out of range: {value}")
    return value


def _non_empty_str(name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigValidationError(f"{name} must be a non-empty string")
    return value


def _str_list(name: str, value: Any) -> Sequence[str]:
    if not isinstance(value, list):
        raise ConfigValidationError(f"{name} must be a list")
    for item in value:
        _non_empty_str(f"{name}[]", item)
    return value


def parse_override(text: str) -> tuple[str, Any]:
    """Parse a ``key=value`` command-line override; the value is read as a YAML scalar."""

    if "=" not in text:
        raise ConfigValidationError(f"Override must look like key=value: {text!r}")
    key, _, raw_value = text.partition("=")
    key = key.strip()

    try:
        value = yaml.safe_load(raw_value) if raw_value.strip() else ""
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Cannot parse value for {key}: {e}") from e
    return key, value


def load_broker_config(path: Optional[str], overrides: Sequence[str] = ()) -> BrokerConfig:
    raw: Dict[str, Any] = {}
    if path:
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(path)
        if p.suffix.lower() not in {".yaml", ".yml"}:
            raise ConfigValidationError("broker config must be YAML")

        try:
            data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"{path}: invalid YAML: {e}") from e
        if not isinstance(data, dict):
            raise ConfigValidationError(f"{path} must contain a mapping/object")
        raw.update(data)

    for item in overrides:
        key, value = parse_override(item)
        raw[key] = value

    return BrokerConfig.from_mapping(raw)


__all__ = [
    "BrokerConfig",
    "ConfigValidationError",
    "load_broker_config",
    "parse_override",
]
