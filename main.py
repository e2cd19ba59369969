#!/usr/bin/env python3
"""
CourtStats -- operator commands for the school tennis stats backend.

Usage:
  python main.py init-db
  python main.py create-user --email coach@school.edu --name "Pat Coach" --role Coach
  python main.py create-user --email admin@school.edu --name Admin --role Admin --password s3cret!
  python main.py list-roles
  python main.py purge-sessions

Environment variables:
  DATABASE_URL  Connection string (PostgreSQL or SQLite). --database-url overrides it.
  SECRET_KEY    Required unless DEBUG=true. Not used by these commands but
                validated on startup like the API.
"""

import argparse
import getpass
import logging
import sys
from typing import Optional

from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import UserStore
from core.config import get_settings
from core.database import create_db_engine, init_schema
from core.errors import AppError

logger = logging.getLogger("courtstats.cli")


def _build_service(database_url: str) -> AuthService:
    settings = get_settings()
    engine = create_db_engine(database_url)
    init_schema(engine)
    return AuthService(
        users=UserStore(engine),
        sessions=SessionStore(engine, settings.session_max_age_seconds),
        hasher=PasswordHasher(settings.bcrypt_rounds),
        default_role_name=settings.oauth_default_role,
        link_requires_verified_email=settings.oauth_link_requires_verified_email,
    )


def _cmd_init_db(service: AuthService, args: argparse.Namespace) -> int:
    # _build_service() already created the tables and seeded roles.
    roles = service.list_roles()
    print(f"  Database ready. {len(roles)} role(s) present.")
    return 0


def _cmd_create_user(service: AuthService, args: argparse.Namespace) -> int:
    role = service.users.get_role_by_name(args.role)
    if role is None:
        print(f"  [!] Unknown role '{args.role}'. Run 'list-roles' to see the options.")
        return 1
    password: Optional[str] = args.password or getpass.getpass("  Password: ")
    user = service.create_user_admin(args.email, args.name, role.id, password=password)
    print(f"  Created user {user.email} (id={user.id}, role={role.name}).")
    return 0


def _cmd_list_roles(service: AuthService, args: argparse.Namespace) -> int:
    for role in service.list_roles():
        print(f"  {role.id:>3}  {role.name}")
    return 0


def _cmd_purge_sessions(service: AuthService, args: argparse.Namespace) -> int:
    removed = service.purge_expired_sessions()
    print(f"  Removed {removed} expired session(s).")
    return 0


_COMMANDS = {
    "init-db": _cmd_init_db,
    "create-user": _cmd_create_user,
    "list-roles": _cmd_list_roles,
    "purge-sessions": _cmd_purge_sessions,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="courtstats",
        description="Operator commands for the CourtStats backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--database-url",
        metavar="URL",
        default=None,
        help="Override DATABASE_URL for this command",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    sub.add_parser("init-db", help="Create tables and seed the default roles")

    create = sub.add_parser("create-user", help="Create a local email/password account")
    create.add_argument("--email", required=True)
    create.add_argument("--name", required=True)
    create.add_argument("--role", default="Player", help="Role name (default: Player)")
    create.add_argument("--password", default=None, help="Prompted for when omitted")

    sub.add_parser("list-roles", help="Print role ids and names")
    sub.add_parser("purge-sessions", help="Delete expired sessions")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)-5s %(name)s %(message)s")
    args = build_parser().parse_args(argv)
    service = _build_service(args.database_url or get_settings().database_url)
    try:
        return _COMMANDS[args.command](service, args)
    except AppError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        service.users.engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
