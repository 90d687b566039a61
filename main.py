#!/usr/bin/env python3
"""
Gatehouse -- administration CLI for the authentication core.

Usage:
  python main.py create-user alice@example.com --activate
  python main.py activate alice@example.com
  python main.py ban alice@example.com
  python main.py unban alice@example.com
  python main.py status alice@example.com
  python main.py create-group editors posts.*=1 posts.delete=0
  python main.py add-to-group alice@example.com editors
  python main.py check alice@example.com posts.edit posts.publish
  python main.py check alice@example.com posts.edit admin --any
  python main.py hash --hasher bcrypt

Passwords are always read with getpass, never from argv.

Environment variables (see core/config.py):
  GATEHOUSE_SECRET_KEY    Required unless GATEHOUSE_DEBUG=true.
  GATEHOUSE_DATABASE_URL  SQLAlchemy URL. Defaults to auth/gatehouse.db.
  GATEHOUSE_HASHER        native | bcrypt | sha256
"""

from __future__ import annotations

import argparse
import getpass
import sys
from typing import Optional

from auth.errors import GatehouseError
from auth.factory import AuthServices, build_services
from auth.hashing import make_hasher
from auth.models import Group
from core.config import get_settings
from core.logging import configure_logging


def _parse_grant(text: str) -> tuple[str, int]:
    """Parse "name=1" / "name=0" (bare "name" means grant)."""
    name, sep, value = text.partition("=")
    if not name:
        raise argparse.ArgumentTypeError(f"'{text}' is not a permission")
    if not sep:
        return name, 1
    if value not in ("0", "1"):
        raise argparse.ArgumentTypeError(f"'{text}': value must be 0 or 1")
    return name, int(value)


def _read_password(prompt: str = "Password: ") -> str:
    password = getpass.getpass(prompt)
    confirm = getpass.getpass("Confirm: ")
    if password != confirm:
        raise SystemExit("  [!] Passwords do not match.")
    return password


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gatehouse",
        description="Manage users, groups and throttling for the Gatehouse auth core.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("create-user", help="Register a user (password prompted)")
    p.add_argument("login", help="Login value (email or username, per configuration)")
    p.add_argument("--activate", action="store_true", help="Activate immediately instead of issuing a code")

    p = sub.add_parser("activate", help="Activate a user without an activation code")
    p.add_argument("login")

    for name, text in (
        ("ban", "Ban a user"),
        ("unban", "Lift a ban (also clears suspension)"),
        ("suspend", "Suspend a user for the configured window"),
        ("unsuspend", "Lift a suspension"),
        ("status", "Show activation and throttle state"),
        ("reset-password", "Issue a reset code and set a new password"),
    ):
        p = sub.add_parser(name, help=text)
        p.add_argument("login")

    p = sub.add_parser("create-group", help="Create or update a group")
    p.add_argument("name")
    p.add_argument("grants", nargs="*", type=_parse_grant, metavar="PERM[=0|1]")

    p = sub.add_parser("add-to-group", help="Add a user to a group")
    p.add_argument("login")
    p.add_argument("group")

    p = sub.add_parser("remove-from-group", help="Remove a user from a group")
    p.add_argument("login")
    p.add_argument("group")

    p = sub.add_parser("check", help="Check a user's access to permission(s)")
    p.add_argument("login")
    p.add_argument("permissions", nargs="+")
    p.add_argument("--any", action="store_true", help="Succeed if any permission matches")

    p = sub.add_parser("hash", help="Hash a password with the configured (or given) hasher")
    p.add_argument("--hasher", choices=["native", "bcrypt", "sha256"], default=None)

    return parser


def _group(services: AuthServices, name: str) -> Group:
    group = services.groups.find_by_name(name)
    if group is None:
        raise SystemExit(f"  [!] No group named '{name}'.")
    return group


def run(args: argparse.Namespace, services: AuthServices) -> int:
    """Execute one parsed command. Returns the process exit code."""
    auth = services.session()

    if args.command == "create-user":
        password = _read_password()
        user = auth.register(args.login, password, activate=args.activate)
        print(f"  Created user {user.id} ({args.login}).")
        if not user.is_activated:
            code = services.codes.issue_activation_code(user)
            print(f"  Activation code: {code}")
        return 0

    if args.command == "create-group":
        group = services.groups.find_by_name(args.name) or Group(name=args.name)
        group.permissions.update(dict(args.grants))
        services.groups.save(group)
        print(f"  Group '{group.name}': {group.permissions}")
        return 0

    if args.command == "hash":
        hasher = make_hasher(args.hasher) if args.hasher else services.hasher
        print(hasher.hash(getpass.getpass("Password: ")))
        return 0

    user = auth.find_user_by_login(args.login)

    if args.command == "activate":
        code = services.codes.issue_activation_code(user)
        services.codes.attempt_activation(user, code)
        print(f"  User {user.id} activated.")
    elif args.command == "ban":
        services.throttle.ban(user)
        print(f"  User {user.id} banned.")
    elif args.command == "unban":
        services.throttle.unban(user)
        print(f"  User {user.id} unbanned.")
    elif args.command == "suspend":
        services.throttle.suspend(user)
        print(f"  User {user.id} suspended.")
    elif args.command == "unsuspend":
        services.throttle.unsuspend(user)
        print(f"  User {user.id} unsuspended.")
    elif args.command == "status":
        print(f"  User {user.id}")
        print(f"    activated:  {'yes' if user.is_activated else 'no'}")
        print(f"    last login: {user.last_login or 'never'}")
        print(f"    throttle:   {services.throttle.state(user).value} ({services.throttle.attempts(user)} attempts)")
        groups = auth.get_groups(user)
        print(f"    groups:     {', '.join(g.name for g in groups) or '-'}")
    elif args.command == "reset-password":
        code = services.codes.issue_reset_code(user)
        password = _read_password("New password: ")
        services.codes.attempt_reset_password(user, code, password)
        print(f"  Password updated for user {user.id}.")
    elif args.command == "add-to-group":
        auth.add_group(user, _group(services, args.group))
        print(f"  User {user.id} added to '{args.group}'.")
    elif args.command == "remove-from-group":
        auth.remove_group(user, _group(services, args.group))
        print(f"  User {user.id} removed from '{args.group}'.")
    elif args.command == "check":
        allowed = auth.has_access(user, args.permissions, all=not args.any)
        print("  allowed" if allowed else "  denied")
        return 0 if allowed else 1
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    settings = get_settings()
    configure_logging(settings.log_level)
    services = build_services(settings)
    try:
        return run(args, services)
    except GatehouseError as exc:
        print(f"  [!] {exc}", file=sys.stderr)
        return 1
    finally:
        services.close()


if __name__ == "__main__":
    sys.exit(main())
