#!/usr/bin/env python3
"""
Inspection gateway -- out-of-band account provisioning.

Inspector accounts must be bound to their device before they can sign in;
this command binds them. It talks straight to the configured database
(DATABASE_URL), so run it on the server.

Usage:
  python main.py create-account root root@example.org --role admin
  python main.py create-account insp01 insp01@example.org --role inspector \\
      --device-id DEV-123 --device-platform android
  python main.py list-accounts
  python main.py list-accounts --json

The password is read from --password, the INSPECTGATE_PASSWORD environment
variable, or prompted for interactively.
"""

import argparse
import getpass
import json
import os
import sys

from auth.models import Account, DeviceBinding, Platform, Role
from auth.store import AccountStore, DuplicateAccount
from auth.tokens import hash_password
from core.config import get_settings


def _read_password(args: argparse.Namespace) -> str:
    if args.password:
        return args.password
    env_password = os.environ.get("INSPECTGATE_PASSWORD")
    if env_password:
        return env_password
    first = getpass.getpass("Password: ")
    if first != getpass.getpass("Repeat password: "):
        raise SystemExit("Passwords do not match.")
    return first


def _create_account(store: AccountStore, args: argparse.Namespace) -> int:
    device = None
    if args.device_id:
        if not args.device_platform:
            print("--device-platform is required with --device-id", file=sys.stderr)
            return 2
        device = DeviceBinding(device_id=args.device_id, platform=Platform(args.device_platform))

    account = Account(
        username=args.username,
        email=args.email.lower(),
        hashed_password=hash_password(_read_password(args)),
        roles=tuple(Role(r) for r in args.role),
        device=device,
    )
    try:
        account_id = store.create_account(account)
    except DuplicateAccount as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    print(f"Created account {args.username} (id={account_id})")
    return 0


def _list_accounts(store: AccountStore, args: argparse.Namespace) -> int:
    accounts = store.list_accounts()
    if args.json:
        rows = [
            {
                "id": a.id,
                "username": a.username,
                "email": a.email,
                "roles": [r.value for r in a.roles],
                "is_active": a.is_active,
                "device_id": a.device.device_id if a.device else None,
                "last_login": a.last_login,
            }
            for a in accounts
        ]
        print(json.dumps(rows, indent=2))
        return 0
    for a in accounts:
        device = f"{a.device.device_id} ({a.device.platform.value})" if a.device else "-"
        status = "active" if a.is_active else "inactive"
        print(f"{a.id:>4}  {a.username:<20} {','.join(r.value for r in a.roles):<16} {status:<8} {device}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Inspection gateway account provisioning",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-account", help="Create an account (binds a device for inspectors)")
    create.add_argument("username")
    create.add_argument("email")
    create.add_argument(
        "--role",
        action="append",
        required=True,
        choices=[r.value for r in Role],
        help="Role to grant; the first one given is the primary role",
    )
    create.add_argument("--password", help="Plaintext password (prefer INSPECTGATE_PASSWORD or the prompt)")
    create.add_argument("--device-id", help="Device identifier to bind (inspectors only)")
    create.add_argument("--device-platform", choices=["android", "ios"])

    listing = sub.add_parser("list-accounts", help="List provisioned accounts")
    listing.add_argument("--json", action="store_true", help="Emit JSON instead of a table")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    store = AccountStore(get_settings().database_url)
    try:
        if args.command == "create-account":
            return _create_account(store, args)
        return _list_accounts(store, args)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
