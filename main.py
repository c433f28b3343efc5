#!/usr/bin/env python3
"""
Userbase operator CLI.

Usage:
  python main.py create-admin admin@example.com --first-name Ada --last-name Admin
  python main.py purge-expired
  python main.py force-logout 42

create-admin reads the password from the USERBASE_ADMIN_PASSWORD environment
variable if set, otherwise prompts for it without echo.

Configuration comes from the same environment / .env file as the API
(DATABASE_URL, SECRET_KEY, BCRYPT_ROUNDS, ...).
"""

import argparse
import getpass
import logging
import os
import sys

from auth.models import AccountStatus, Role
from auth.passwords import PasswordHasher
from auth.sessions import ForceLogoutCounter
from auth.store import AccountStore
from core.config import get_settings
from core.errors import ServiceError

logger = logging.getLogger("userbase.cli")


def _create_admin(store: AccountStore, args: argparse.Namespace) -> int:
    settings = get_settings()
    password = os.environ.get("USERBASE_ADMIN_PASSWORD") or getpass.getpass("Admin password: ")
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
    try:
        digest = hasher.hash(password)
    except ValueError as e:
        print(f"  [!] {e}")
        return 1
    account = store.create_account_with_profile(
        {
            "email": args.email,
            "password_hash": digest,
            "status": AccountStatus.ACTIVE,
            "verified": True,
            "role": Role.ADMIN,
        },
        {"first_name": args.first_name, "last_name": args.last_name},
    )
    print(f"  Created admin account id={account.id} email={account.email}")
    return 0


def _purge_expired(store: AccountStore, args: argparse.Namespace) -> int:
    removed = store.purge_expired()
    for table, count in removed.items():
        print(f"  {table}: {count} removed")
    return 0


def _force_logout(store: AccountStore, args: argparse.Namespace) -> int:
    value = ForceLogoutCounter(store).bump(args.account_id)
    print(f"  Account id={args.account_id} force_logout is now {value}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="userbase", description="Userbase account administration")
    sub = parser.add_subparsers(dest="command", required=True)

    admin = sub.add_parser("create-admin", help="Create an active, verified admin account")
    admin.add_argument("email")
    admin.add_argument("--first-name", default="Admin")
    admin.add_argument("--last-name", default="User")
    admin.set_defaults(func=_create_admin)

    purge = sub.add_parser("purge-expired", help="Delete expired confirmation/remember/reset/throttle rows")
    purge.set_defaults(func=_purge_expired)

    logout = sub.add_parser("force-logout", help="Invalidate every session token for an account")
    logout.add_argument("account_id", type=int)
    logout.set_defaults(func=_force_logout)

    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)-5s %(name)s %(message)s")
    args = build_parser().parse_args(argv)
    store = AccountStore(get_settings().database_url)
    try:
        return args.func(store, args)
    except ServiceError as e:
        print(f"  [!] {e.message}")
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
