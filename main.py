#!/usr/bin/env python3
"""
SIWES Auth -- command-line entry point.

Usage:
  python main.py create-user admin@siwes.edu --role admin --first-name Ada --last-name Obi
  python main.py create-user student@siwes.edu --role student --password 'Test@1234'
  python main.py serve --host 0.0.0.0 --port 8000

Accounts created here start in the first-login state: the first login returns
a reset ticket and the user must choose a new password before getting a
session. When --password is omitted a temporary password is generated and
printed once.

Environment variables:
  DATABASE_URL   SQLAlchemy URL of the user database (default: sqlite:///siwes_auth.db)
  SECRET_KEY     Required unless DEBUG=true
"""

import argparse
import sys

from sqlalchemy.exc import IntegrityError

from api.models import check_password_strength
from api.routes.v1.users import generate_temporary_password
from auth.models import Role, User
from auth.store import connect_store
from auth.tokens import TokenService
from core.config import get_settings


def _create_user(args: argparse.Namespace) -> int:
    settings = get_settings()

    password = args.password
    generated = password is None
    if generated:
        password = generate_temporary_password()
    else:
        try:
            check_password_strength(password)
        except ValueError as e:
            print(f"  [!] {e}")
            return 1

    store = connect_store(settings.database_url, settings.db_connect_retries, settings.db_connect_retry_delay)
    tokens = TokenService(settings)
    try:
        user_id = store.create_user(
            User(
                email=args.email,
                role=args.role,
                first_name=args.first_name,
                last_name=args.last_name,
                hashed_password=tokens.hash_password(password),
                is_first_login=True,
                password_reset_required=True,
            )
        )
    except IntegrityError:
        print(f"  [!] A user with email '{args.email}' already exists.")
        return 1
    finally:
        store.close()

    print(f"  Created {args.role} account {args.email.strip().lower()} (id={user_id}).")
    if generated:
        print(f"  Temporary password: {password}")
    print("  The user must set a new password on first login.")
    return 0


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="siwes-auth",
        description="SIWES authentication service administration.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user admin@siwes.edu --role admin --first-name Ada --last-name Obi
  python main.py create-user test@example.com --role student --password 'Test@1234'
  python main.py serve --reload
        """,
    )
    sub = parser.add_subparsers(dest="command")

    create = sub.add_parser("create-user", help="Create an account in the first-login state")
    create.add_argument("email", help="Login email (stored lowercased)")
    create.add_argument(
        "--role",
        choices=[r.value for r in Role],
        default=Role.STUDENT.value,
        help="Account role (default: student)",
    )
    create.add_argument("--first-name", default="", help="Given name")
    create.add_argument("--last-name", default="", help="Family name")
    create.add_argument(
        "--password",
        default=None,
        help="Initial password. Omit to generate and print a temporary one.",
    )
    create.set_defaults(func=_create_user)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")
    serve.set_defaults(func=_serve)

    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
