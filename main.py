#!/usr/bin/env python3
"""
HostGate -- admin command line.

There is no HTTP path that creates an admin account; the first one (and any
later ones) are provisioned here, against the same DATABASE_URL the API uses.

Usage:
  python main.py create-admin --email ops@stay.io --name "Ops"
  python main.py purge-codes
  python main.py list-hosts --status pending

Environment variables are read through core.config (SECRET_KEY, DATABASE_URL, ...).
"""

import argparse
import getpass
import logging
import sys
from typing import Optional

from auth.errors import AuthError
from auth.models import VerificationStatus
from auth.wiring import AuthComponents, build_components
from core.config import get_settings

logger = logging.getLogger("hostgate.cli")


def _prompt_password() -> Optional[str]:
    """Read a password twice without echo. Returns None if the entries differ."""
    first = getpass.getpass("Password: ")
    second = getpass.getpass("Confirm password: ")
    if first != second:
        print("  [!] Passwords do not match.")
        return None
    return first


def create_admin(components: AuthComponents, email: str, name: str, password: str) -> bool:
    try:
        account = components.orchestrator.provision_admin(name, email, password)
    except AuthError as e:
        print(f"  [!] {e.message}")
        return False
    print(f"  Admin {account.email} created (id {account.id}).")
    return True


def purge_codes(components: AuthComponents) -> int:
    removed = components.orchestrator.purge_expired_codes()
    print(f"  Removed {removed} expired code(s).")
    return removed


def list_hosts(components: AuthComponents, status: Optional[str]) -> int:
    hosts = components.workflow.list_hosts(VerificationStatus(status) if status else None)
    for host in hosts:
        reason = f"  ({host.rejection_reason})" if host.rejection_reason else ""
        print(f"  {host.id}  {host.verification_status.value:<8}  {host.email}{reason}")
    if not hosts:
        print("  No hosts found.")
    return len(hosts)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="hostgate",
        description="HostGate administration.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-admin --email ops@stay.io --name "Ops"
  python main.py purge-codes
  python main.py list-hosts --status rejected
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    admin = sub.add_parser("create-admin", help="Provision an admin account (password is prompted)")
    admin.add_argument("--email", required=True, help="Admin email address")
    admin.add_argument("--name", required=True, help="Display name")

    sub.add_parser("purge-codes", help="Delete expired sign-in and reset codes")

    hosts = sub.add_parser("list-hosts", help="List host accounts by verification status")
    hosts.add_argument(
        "--status",
        choices=[s.value for s in VerificationStatus],
        default=None,
        help="Only show hosts in this state",
    )

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    logging.basicConfig(level=logging.WARNING, format="%(levelname)-5s %(name)s %(message)s")
    components = build_components(get_settings())
    try:
        if args.command == "create-admin":
            password = _prompt_password()
            if password is None:
                return 1
            return 0 if create_admin(components, args.email, args.name, password) else 1
        if args.command == "purge-codes":
            purge_codes(components)
            return 0
        list_hosts(components, args.status)
        return 0
    finally:
        components.close()


if __name__ == "__main__":
    sys.exit(main())
