#!/usr/bin/env python3
"""
Grant the admin role to a DonateHub account, creating the account if needed.
Usage:
    python scripts/create_admin.py admin@example.com --password S3cretPass --name "Site Admin"
    python scripts/create_admin.py admin@example.com  # prompts for the password
"""

import argparse
import asyncio
import getpass
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import select

from donatehub.core.security import get_password_hash
from donatehub.database import AsyncSessionLocal, Base, engine
from donatehub.models import User


async def promote_admin(email: str, password: str, name: str = "Administrator") -> User:
    """Create the admin account, or promote and re-key an existing one."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    email = email.strip().lower()
    async with AsyncSessionLocal() as db:
        user = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()
        if user is None:
            user = User(name=name, email=email, role="admin", is_active=True)
            db.add(user)
            action = "Created"
        else:
            user.role = "admin"
            user.is_active = True
            action = "Promoted"
        user.hashed_password = get_password_hash(password)
        await db.commit()
    print(f"{action} admin account {email}")
    return user


def _parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Create or promote a DonateHub admin account")
    parser.add_argument("email")
    parser.add_argument("--password", help="omit to be prompted")
    parser.add_argument("--name", default="Administrator")
    return parser.parse_args(argv)


async def _run(args) -> None:
    password = args.password or getpass.getpass("Admin password: ")
    if not password:
        print("Error: a password is required", file=sys.stderr)
        sys.exit(1)
    try:
        await promote_admin(args.email, password, args.name)
    finally:
        await engine.dispose()


def main(argv=None):
    asyncio.run(_run(_parse_args(argv)))


if __name__ == "__main__":
    main()
