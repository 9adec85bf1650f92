from __future__ import annotations

import logging
import shlex
from typing import Dict, List, Mapping, Sequence

from ..broker_config import BrokerConfig
from .erlang_terms import check_config_terms, check_env_text

logger = logging.getLogger(__name__)

HEADER = "% This file is managed by rabbitmq-installer; local edits will be overwritten.\n"
ENV_HEADER = "# This file is managed by rabbitmq-installer; local edits will be overwritten.\n"

_TCP_LISTEN_OPTIONS = (
    "{tcp_listen_options, [binary, {packet, raw}, {reuseaddr, true}, "
    "{backlog, 128}, {nodelay, true}, {exit_on_close, false}]}"
)


def erl_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def erl_atom(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def erl_binary(value: str) -> str:
    return f"<<{erl_string(value)}>>"


def erl_bool(value: bool) -> str:
    return "true" if value else "false"


def erl_term(value: object) -> str:
    """Render a user-supplied variable value; strings are passed through as raw terms."""

    if isinstance(value, bool):
        return erl_bool(value)
    return str(value)


def _section(app: str, entries: Sequence[str], *, comment: str | None = None) -> str:
    lines: List[str] = []
    if comment:
        lines.append(f"  % {comment}")
    lines.append(f"  {{{app}, [")
    lines.append(",\n".join(f"    {e}" for e in entries))
    lines.append("  ]}")
    return "\n".join(lines)


def _nested(key: str, entries: Sequence[str], indent: str) -> str:
    inner = f",\n{indent}  ".join(entries)
    return f"{{{key}, [\n{indent}  {inner}\n{indent}]}}"


def _ssl_options(cfg: BrokerConfig) -> List[str]:
    return [
        f"{{cacertfile, {erl_string(cfg.ssl_cacert or '')}}}",
        f"{{certfile, {erl_string(cfg.ssl_cert or '')}}}",
        f"{{keyfile, {erl_string(cfg.ssl_key or '')}}}",
        f"{{verify, {cfg.ssl_verify}}}",
        f"{{fail_if_no_peer_cert, {erl_bool(cfg.ssl_fail_if_no_peer_cert)}}}",
    ]


def _rabbit_entries(cfg: BrokerConfig) -> List[str]:
    entries: List[str] = []

    if cfg.ldap_auth:
        entries.append("{auth_backends, [rabbit_auth_backend_internal, rabbit_auth_backend_ldap]}")

    if cfg.config_cluster:
        nodes = ", ".join(erl_atom(n if "@" in n else f"rabbit@{n}") for n in cfg.cluster_nodes)
        entries.append(f"{{cluster_nodes, {{[{nodes}], {cfg.cluster_node_type}}}}}")
        entries.append(f"{{cluster_partition_handling, {cfg.cluster_partition_handling}}}")

    entries.append(_TCP_LISTEN_OPTIONS)

    if cfg.ssl_only:
        entries.append("{tcp_listeners, []}")
    else:
        if cfg.node_ip_address:
            entries.append(f"{{tcp_listeners, [{{{erl_string(cfg.node_ip_address)}, {cfg.port}}}]}}")
        else:
            entries.append(f"{{tcp_listeners, [{cfg.port}]}}")

    if cfg.ssl:
        entries.append(f"{{ssl_listeners, [{cfg.ssl_port}]}}")
        entries.append(_nested("ssl_options", _ssl_options(cfg), "    "))

    for key in sorted(cfg.config_variables):
        entries.append(f"{{{key}, {erl_term(cfg.config_variables[key])}}}")

    entries.append(f"{{default_user, {erl_binary(cfg.default_user)}}}")
    entries.append(f"{{default_pass, {erl_binary(cfg.default_pass)}}}")
    return entries


def _management_entries(cfg: BrokerConfig) -> List[str]:
    if cfg.ssl:
        listener = [
            f"{{port, {cfg.ssl_management_port}}}",
            "{ssl, true}",
            _nested("ssl_opts", _ssl_options(cfg)[:3], "        "),
        ]
    else:
        listener = [f"{{port, {cfg.management_port}}}"]
    return [_nested("listener", listener, "    ")]


def _stomp_entries(cfg: BrokerConfig) -> List[str]:
    entries = [f"{{tcp_listeners, [{cfg.stomp_port}]}}"]
    if cfg.ssl:
        entries.append(f"{{ssl_listeners, [{cfg.ssl_stomp_port}]}}")
    return entries


def _ldap_entries(cfg: BrokerConfig) -> List[str]:
    return [
        f"{{other_bind, {cfg.ldap_other_bind}}}",
        f"{{servers, [{erl_string(cfg.ldap_server)}]}}",
        f"{{user_dn_pattern, {erl_string(cfg.ldap_user_dn_pattern)}}}",
        f"{{use_ssl, {erl_bool(cfg.ldap_use_ssl)}}}",
        f"{{port, {cfg.ldap_port}}}",
        f"{{log, {erl_bool(cfg.ldap_log)}}}",
    ]


def render_rabbitmq_config(cfg: BrokerConfig) -> str:
    """Render ``rabbitmq.config``.

    Each optional application block is built on its own and the blocks are
    joined afterwards, so every combination of toggles yields valid syntax.
    """

    sections = [_section("rabbit", _rabbit_entries(cfg))]

    if cfg.config_kernel_variables:
        kernel = [
            f"{{{key}, {erl_term(cfg.config_kernel_variables[key])}}}" for key in sorted(cfg.config_kernel_variables)
        ]
        sections.append(_section("kernel", kernel))
    if cfg.admin_enable:
        sections.append(_section("rabbitmq_management", _management_entries(cfg)))
    if cfg.config_stomp:
        sections.append(
            _section("rabbitmq_stomp", _stomp_entries(cfg), comment="Configure the STOMP plugin listening port")
        )
    if cfg.ldap_auth:
        sections.append(
            _section(
                "rabbitmq_auth_backend_ldap", _ldap_entries(cfg), comment="Configure the LDAP authentication plugin"
            )
        )

    text = HEADER + "[\n" + ",\n".join(sections) + "\n].\n% EOF\n"
    check_config_terms(text)
    return text


def env_variables(cfg: BrokerConfig) -> Dict[str, str]:
    env: Dict[str, str] = {}
    if cfg.node_ip_address:
        env["NODE_IP_ADDRESS"] = cfg.node_ip_address
    env["NODE_PORT"] = cfg.port
    for key, value in cfg.environment_variables.items():
        env[key] = str(value)
    return env


def render_env_config(cfg: BrokerConfig) -> str:
    return render_env_lines(env_variables(cfg))


def render_env_lines(env: Mapping[str, str]) -> str:
    lines = [ENV_HEADER.rstrip("\n")]
    for key in sorted(env):
        lines.append(f"{key}={shlex.quote(env[key])}")
    text = "\n".join(lines) + "\n"
    check_env_text(text)
    return text
