#!/usr/bin/env python3
"""
AccountGuard -- operator commands for the user store.

Usage:
  python main.py promote alice@example.com
  python main.py demote alice@example.com
  python main.py deactivate alice@example.com
  python main.py restore alice@example.com
  python main.py generate-secret

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the user store. Defaults to accountguard.db
                next to this file. --database-url overrides it.

The account commands open the store directly and apply the same
AccountSecurityPolicy transitions the API uses. They need no SECRET_KEY or
ENCRYPTION_KEY, so an operator can recover an admin account on a host where
the API cannot start.
"""

import argparse
import os
import secrets
import sys
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import ROLE_ADMIN, ROLE_USER, UserRecord
from auth.policy import AccountSecurityPolicy
from auth.service import normalize_email
from auth.store import UserStore
from core.config import DEFAULT_DATABASE_URL


def _already_applied(command: str, user: UserRecord) -> bool:
    if command == "promote":
        return user.role == ROLE_ADMIN
    if command == "demote":
        return user.role == ROLE_USER
    if command == "deactivate":
        return user.deleted_at is not None
    return user.deleted_at is None  # restore


def _apply(store: UserStore, command: str, email: str) -> int:
    """Run one account command against the record for *email*. Returns the exit code."""
    # restore is the only command that has to see soft-deleted records
    user: Optional[UserRecord] = store.get_by_email(normalize_email(email), include_deleted=command == "restore")
    if user is None:
        print(f"  [!] No account found for '{email}'.")
        return 1
    if _already_applied(command, user):
        print(f"  {user.email}: nothing to do ({command} already in effect).")
        return 0

    if command == "promote":
        transition = AccountSecurityPolicy.promote(user)
    elif command == "demote":
        transition = AccountSecurityPolicy.demote(user)
    elif command == "deactivate":
        transition = AccountSecurityPolicy.soft_delete(user, datetime.now(timezone.utc))
    else:
        transition = AccountSecurityPolicy.restore(user)

    try:
        store.update(user.id, **transition.changes())
    except IntegrityError:
        # restore: a live account took the email or username in the meantime
        print(f"  [!] Cannot {command} '{user.email}': the email or username is used by another account.")
        return 1
    print(f"  {user.email} ({user.id}): {command} done.")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="accountguard",
        description="Operator commands for AccountGuard accounts.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py promote alice@example.com
  python main.py --database-url sqlite:///prod.db deactivate mallory@example.com
  python main.py generate-secret >> .env
        """,
    )
    parser.add_argument(
        "--database-url",
        metavar="URL",
        default=None,
        help="SQLAlchemy database URL (default: $DATABASE_URL or accountguard.db)",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    for name, help_text in (
        ("promote", "Give an account the admin role"),
        ("demote", "Return an account to the user role"),
        ("deactivate", "Soft-delete an account; its email becomes free to register"),
        ("restore", "Undo a soft delete"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("email", help="Account email address")
    sub.add_parser("generate-secret", help="Print a random 64-char hex value for SECRET_KEY / ENCRYPTION_KEY")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 2

    if args.command == "generate-secret":
        print(secrets.token_hex(32))
        return 0

    db_url = args.database_url or os.environ.get("DATABASE_URL") or DEFAULT_DATABASE_URL
    store = UserStore(db_url)
    try:
        return _apply(store, args.command, args.email)
    except SQLAlchemyError as e:
        print(f"  [!] Database error: {e}")
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
