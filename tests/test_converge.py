from __future__ import annotations

import json
import stat
from pathlib import Path

from rabbitmq_installer.main import main


def _mode(p: Path) -> int:
    return stat.S_IMODE(p.stat().st_mode)


def test_first_run_installs_configures_and_starts(host, root, write_config, converge) -> None:
    run = converge(write_config(config_stomp=True))

    assert host.packages["rabbitmq-server"] == "3.8.9-1"
    assert "rabbitmq-server" in host.active
    assert "rabbitmq-server" in host.enabled
    assert host.plugins == {"rabbitmq_management", "rabbitmq_stomp"}

    config = root / "etc/rabbitmq/rabbitmq.config"
    assert "{rabbitmq_stomp, [" in config.read_text(encoding="utf-8")
    assert _mode(config) == 0o644
    assert (root / "etc/rabbitmq/rabbitmq-env.conf").read_text(encoding="utf-8").endswith("NODE_PORT=5672\n")

    admin = root / "usr/local/bin/rabbitmqadmin"
    assert admin.exists()
    assert _mode(admin) == 0o755

    resources = [c["resource"] for c in run["changes"]]
    assert "package[rabbitmq-server]" in resources
    assert "file[/etc/rabbitmq/rabbitmq.config]" in resources
    assert run["errors"] == []


def test_second_run_with_same_input_changes_nothing(host, root, write_config, converge) -> None:
    config = write_config(
        config_cluster=True,
        cluster_nodes=["mq1", "mq2"],
        erlang_cookie="SECRETCOOKIE",
        ldap_auth=True,
        vhosts=["/app"],
        users=[{"name": "app", "password": "s3cret", "admin": True}],
        permissions=[{"user": "app", "vhost": "/app"}],
        delete_guest_user=True,
    )

    first = converge(config)
    assert first["changes"]
    calls_after_first = len(host.calls)

    second = converge(config)
    assert second["changes"] == []
    mutating = [
        c
        for c in host.calls[calls_after_first:]
        if c[0] in ("apt-get", "chown") or c[:2] in (["systemctl", "start"], ["systemctl", "restart"])
    ]
    assert mutating == []


def test_config_change_restarts_running_service(host, root, write_config, converge) -> None:
    converge(write_config())
    assert host.commands("systemctl", "restart") == []

    run = converge(write_config(port=5673))

    assert host.commands("systemctl", "restart") == [["systemctl", "restart", "rabbitmq-server"]]
    assert {"step": "50_service", "resource": "service[rabbitmq-server]", "action": "restarted"} in run["changes"]


def test_unmanaged_service_is_left_alone(host, root, write_config, converge) -> None:
    converge(write_config(service_manage=False, admin_enable=False))
    assert host.commands("systemctl") == []


def test_stopped_service_skips_admin_cli_and_users(host, root, write_config, converge) -> None:
    converge(write_config(service_ensure="stopped", delete_guest_user=True))

    assert "rabbitmq-server" not in host.active
    assert not (root / "usr/local/bin/rabbitmqadmin").exists()
    assert "guest" in host.users


def test_guest_user_deleted_only_when_requested(host, root, write_config, converge) -> None:
    converge(write_config())
    assert "guest" in host.users
    assert host.commands("rabbitmqctl", "delete_user") == []

    run = converge(write_config(delete_guest_user=True))
    assert "guest" not in host.users
    assert {"step": "70_users", "resource": "user[guest]", "action": "deleted"} in run["changes"]


def test_users_vhosts_and_permissions(host, root, write_config, converge) -> None:
    converge(
        write_config(
            vhosts=["/app"],
            users=[{"name": "app", "password": "s3cret", "tags": ["monitoring"], "admin": True}],
            permissions=[{"user": "app", "vhost": "/app", "configure": "^app-.*", "write": ".*", "read": ".*"}],
        )
    )

    assert "/app" in host.vhosts
    assert sorted(host.users["app"]) == ["administrator", "monitoring"]
    assert host.permissions["app"]["/app"] == ("^app-.*", ".*", ".*")


def test_pinned_version_and_absent_package(host, root, write_config, converge) -> None:
    host.packages["rabbitmq-server"] = "3.7.0-1"
    converge(write_config(package_ensure="3.8.9-1", service_manage=False, admin_enable=False))
    assert host.commands("apt-get", "install") == [
        ["apt-get", "install", "-y", "--no-install-recommends", "rabbitmq-server=3.8.9-1"]
    ]

    converge(write_config(package_ensure="absent", service_manage=False, admin_enable=False))
    assert "rabbitmq-server" not in host.packages


def test_managed_repo_is_written_once(host, root, write_config, converge, monkeypatch) -> None:
    monkeypatch.setattr("rabbitmq_installer.lib.apt_repo.fetch", lambda url, **kw: b"-----BEGIN PGP-----\n")

    converge(write_config(manage_repos=True))
    sources = root / "etc/apt/sources.list.d/rabbitmq.list"
    assert sources.read_text(encoding="utf-8") == (
        "deb [signed-by=/etc/apt/trusted.gpg.d/rabbitmq.asc] http://www.rabbitmq.com/debian/ testing main\n"
    )
    assert host.commands("apt-get", "update") == [["apt-get", "update"]]

    converge(write_config(manage_repos=True))
    assert len(host.commands("apt-get", "update")) == 1


def test_dry_run_touches_nothing(host, root, write_config, converge, tmp_path) -> None:
    run = converge(write_config(erlang_cookie="SECRETCOOKIE"), dry_run=True)

    assert run["dry_run"] is True
    assert run["changes"]
    assert list(root.iterdir()) == []
    assert not (tmp_path / "state.json").exists()
    assert host.packages == {}
    assert host.active == set()
    assert ["apt-get", "install", "-y", "--no-install-recommends", "rabbitmq-server"] in host.dry_calls
    assert ["systemctl", "start", "rabbitmq-server"] in host.dry_calls


def _mutating(calls):
    return [
        c
        for c in calls
        if c[0] in ("apt-get", "chown", "rpm", "yum")
        or c[:2] in (["systemctl", "start"], ["systemctl", "stop"], ["systemctl", "restart"])
        or c[:2] == ["rabbitmq-plugins", "enable"]
    ]


def test_dry_run_on_converged_host_reports_no_changes(host, root, write_config, converge) -> None:
    config = write_config(
        config_stomp=True,
        erlang_cookie="SECRETCOOKIE",
        vhosts=["/app"],
        users=[{"name": "app", "password": "s3cret", "admin": True}],
        permissions=[{"user": "app", "vhost": "/app"}],
        delete_guest_user=True,
    )
    converge(config)
    calls_after_first = len(host.calls)

    run = converge(config, dry_run=True)

    assert run["changes"] == []
    assert _mutating(host.calls[calls_after_first:]) == []
    assert host.dry_calls == []


def test_dry_run_on_stopped_host_reports_nothing_to_stop(host, root, write_config, converge) -> None:
    config = write_config(service_ensure="stopped", admin_enable=False)
    converge(config)
    assert "rabbitmq-server" not in host.active

    run = converge(config, dry_run=True)

    assert run["changes"] == []
    assert host.dry_calls == []


def test_dry_run_lists_only_the_pending_actions(host, root, write_config, converge) -> None:
    converge(write_config())

    run = converge(write_config(config_stomp=True), dry_run=True)

    actions = [(c["resource"], c["action"]) for c in run["changes"]]
    assert ("plugin[rabbitmq_stomp]", "enabled") in actions
    assert ("plugin[rabbitmq_management]", "enabled") not in actions
    assert ("package[rabbitmq-server]", "installed") not in actions
    assert ("service[rabbitmq-server]", "restarted") in actions
    assert "rabbitmq_stomp" not in host.plugins
    assert host.dry_calls == [
        ["rabbitmq-plugins", "enable", "rabbitmq_stomp"],
        ["systemctl", "restart", "rabbitmq-server"],
    ]


def test_run_record_is_persisted(host, root, write_config, converge, tmp_path) -> None:
    converge(write_config())
    converge(write_config())

    state = json.loads((tmp_path / "state.json").read_text(encoding="utf-8"))
    assert state["runs"] == 2
    assert state["last_run"]["changes"] == []
    assert state["last_run"]["provider"] == "apt"
    assert state["last_changed_run"] is not None


def test_main_exits_with_abort_status_on_invalid_config(host, root, write_config, tmp_path, capsys) -> None:
    rc = main(
        [
            "--config",
            write_config(port="not-a-port"),
            "--root",
            str(root),
            "--state",
            str(tmp_path / "state.json"),
            "--log",
            str(tmp_path / "installer.log"),
        ]
    )

    assert rc == 2
    assert "port must be a port number" in capsys.readouterr().err
    assert host.calls == []
    state = json.loads((tmp_path / "state.json").read_text(encoding="utf-8"))
    assert state["last_run"]["errors"][0]["type"] == "ConfigValidationError"


def test_main_render_prints_both_files(write_config, capsys) -> None:
    assert main(["--config", write_config(ldap_auth=True), "--render"]) == 0
    out = capsys.readouterr().out
    assert "# ==> /etc/rabbitmq/rabbitmq.config <==" in out
    assert "rabbitmq_auth_backend_ldap" in out
    assert "# ==> /etc/rabbitmq/rabbitmq-env.conf <==" in out
