from __future__ import annotations

import logging

from ..lib import rabbitmqctl, service
from ..pipeline import ConvergeCtx

logger = logging.getLogger(__name__)

GUEST_USER = "guest"


class UsersStep:
    step_id = "70_users"

    def run(self, ctx: ConvergeCtx) -> None:
        cfg = ctx.cfg
        dry_run = ctx.dry_run

        wants_users = cfg.delete_guest_user or cfg.vhosts or cfg.users or cfg.permissions
        if not wants_users:
            return
        if cfg.service_ensure != "running":
            logger.info("Skipping users/vhosts; the broker is not meant to be running")
            return
        if dry_run and not service.is_active(cfg.service_name):
            logger.info("Dry run: %s is not running yet, users/vhosts cannot be compared", cfg.service_name)
            return

        if cfg.vhosts:
            existing_vhosts = set(rabbitmqctl.list_vhosts())
            for vhost in cfg.vhosts:
                if vhost not in existing_vhosts:
                    rabbitmqctl.add_vhost(vhost, dry_run=dry_run)
                    ctx.record(f"vhost[{vhost}]", "created")

        users = rabbitmqctl.list_users()
        preexisting = set(users)

        for u in cfg.users:
            name = u["name"]
            tags = list(u.get("tags") or [])
            if u.get("admin") and "administrator" not in tags:
                tags.append("administrator")

            if name not in users:
                rabbitmqctl.add_user(name, u["password"], dry_run=dry_run)
                ctx.record(f"user[{name}]", "created")
                users[name] = []
            if sorted(users[name]) != sorted(tags):
                rabbitmqctl.set_user_tags(name, tags, dry_run=dry_run)
                ctx.record(f"user[{name}]", f"tags={','.join(tags) or '-'}")

        perms_cache: dict[str, dict] = {}
        for p in cfg.permissions:
            user, vhost = p["user"], p["vhost"]
            wanted = (p.get("configure", ".*"), p.get("write", ".*"), p.get("read", ".*"))
            if user not in perms_cache:
                # Users created in this run have no permissions yet.
                perms_cache[user] = rabbitmqctl.list_user_permissions(user) if user in preexisting else {}
            if perms_cache[user].get(vhost) != wanted:
                rabbitmqctl.set_permissions(user, vhost, *wanted, dry_run=dry_run)
                perms_cache[user][vhost] = wanted
                ctx.record(f"permissions[{user}@{vhost}]", "set")

        if cfg.delete_guest_user:
            if cfg.default_user == GUEST_USER:
                logger.warning("delete_guest_user=true while default_user is %s", GUEST_USER)
            if GUEST_USER in users:
                rabbitmqctl.delete_user(GUEST_USER, dry_run=dry_run)
                ctx.record(f"user[{GUEST_USER}]", "deleted")
