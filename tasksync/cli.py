from __future__ import annotations

import argparse
import secrets
import sys

from .auth import register_user
from .db import Base, SessionLocal, engine


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="tasksync")
    sub = parser.add_subparsers(dest="command", required=True)

    p_user = sub.add_parser("create-user", help="Register a user account from the command line.")
    p_user.add_argument("--name", required=True, help="Display name")
    p_user.add_argument("--email", required=True, help="Login email")
    p_user.add_argument(
        "--password",
        default=None,
        help="Password. If omitted, a random password is generated and printed.",
    )

    args = parser.parse_args(argv)

    if args.command == "create-user":
        password: str = args.password or secrets.token_urlsafe(12)
        Base.metadata.create_all(bind=engine)
        with SessionLocal() as db:
            try:
                user = register_user(db, name=args.name, email=args.email, password=password)
            except ValueError as e:
                print(f"error: {e}", file=sys.stderr)
                sys.exit(1)

        print(user.id)
        if args.password is None:
            # Printed so operators can copy/paste it.
            print(password)
        return

    parser.print_help()
    sys.exit(2)


if __name__ == "__main__":
    main()
