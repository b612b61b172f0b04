#!/usr/bin/env python3
"""
authcore -- Admin command line for the authentication core.

Usage:
  python main.py create-user --name "Anna K" --email anna@example.com
  python main.py create-user --name "Ivan P" --phone +375291234567 --role partner
  python main.py revoke-sessions USER_ID
  python main.py deactivate USER_ID
  python main.py serve --port 8000

Environment variables:
  SECRET_KEY     Required unless DEBUG=true. At least 32 characters.
  DATABASE_URL   SQLAlchemy URL of the user store (default: SQLite next to auth/).
"""

import argparse
import getpass
import logging
import sys
from typing import Optional

from auth.errors import AuthError
from auth.service import AuthService, build_auth_service
from core.config import get_settings


def _service() -> AuthService:
    return build_auth_service(get_settings())


def _read_password(given: Optional[str]) -> str:
    """Return the --password value, or prompt twice without echo."""
    if given:
        return given
    first = getpass.getpass("Password: ")
    second = getpass.getpass("Repeat password: ")
    if first != second:
        raise SystemExit("  [!] Passwords do not match.")
    return first


def cmd_create_user(args: argparse.Namespace) -> int:
    service = _service()
    try:
        user = service.create_user(
            password=_read_password(args.password),
            name=args.name,
            email=args.email,
            phone=args.phone,
            role=args.role,
        )
    except AuthError as exc:
        print(f"  [!] {exc.code.value}: {exc.message}")
        return 1
    finally:
        service.store.close()
    print(f"  Created {user.role} {user.id} ({user.email or user.phone})")
    return 0


def cmd_revoke_sessions(args: argparse.Namespace) -> int:
    service = _service()
    try:
        count = service.invalidate_all(args.user_id)
    finally:
        service.store.close()
    print(f"  Revoked {count} active session(s) for {args.user_id}")
    return 0


def cmd_deactivate(args: argparse.Namespace) -> int:
    service = _service()
    try:
        revoked = service.deactivate_user(args.user_id)
    finally:
        service.store.close()
    if revoked is None:
        print(f"  [!] No user with id {args.user_id}")
        return 1
    print(f"  Deactivated {args.user_id}, revoked {revoked} active session(s)")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="authcore",
        description="Administer users and sessions of the authcore user store.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user --name "Anna K" --email anna@example.com --role admin
  python main.py revoke-sessions 6f1c2d7e-...
  python main.py deactivate 6f1c2d7e-...
  DEBUG=true python main.py serve --reload
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    create = sub.add_parser("create-user", help="Register a user (password is prompted unless --password is given)")
    create.add_argument("--name", required=True, help="Display name, 2-100 characters")
    create.add_argument("--email", help="Email address (login identifier)")
    create.add_argument("--phone", help="Phone number in +375XXXXXXXXX format (login identifier)")
    create.add_argument(
        "--role",
        choices=["user", "partner", "admin"],
        default="user",
        help="Role stored on the account (default: user)",
    )
    create.add_argument("--password", help="Password; avoid on shared machines, it lands in shell history")
    create.set_defaults(func=cmd_create_user)

    revoke = sub.add_parser("revoke-sessions", help="Invalidate every active refresh token of a user")
    revoke.add_argument("user_id", metavar="USER_ID")
    revoke.set_defaults(func=cmd_revoke_sessions)

    deactivate = sub.add_parser("deactivate", help="Disable an account and revoke its sessions")
    deactivate.add_argument("user_id", metavar="USER_ID")
    deactivate.set_defaults(func=cmd_deactivate)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development)")
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 2

    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
