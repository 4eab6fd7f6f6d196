#!/usr/bin/env python3
"""Create an admin-area user in the configured store."""
from __future__ import annotations

import argparse
import asyncio
import sys
from getpass import getpass
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from nomod_admin.core.config import ConfigurationError, get_settings
from nomod_admin.schemas.user import AdminUserCreate
from nomod_admin.services.users import UserManagementError, UserService
from nomod_admin.store import StoreError, create_store
from nomod_admin.store.sql import SqlAlchemyStore


async def create_user(email: str, name: str, password: str, role: str) -> str:
    settings = get_settings()
    store = create_store(settings)
    try:
        if isinstance(store, SqlAlchemyStore):
            await store.create_schema()
        user = await UserService(store, settings).create_user(
            AdminUserCreate(email=email, name=name, password=password, role=role)
        )
    finally:
        if isinstance(store, SqlAlchemyStore):
            await store.dispose()
    return user.id


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--email", help="login email of the new user")
    parser.add_argument("--name", help="display name of the new user")
    parser.add_argument("--role", choices=["admin", "editor"], default="editor")
    args = parser.parse_args()

    email = args.email or input("Email: ").strip()
    name = args.name or input("Name: ").strip()

    pw1 = getpass("Password: ")
    pw2 = getpass("Repeat password: ")
    if pw1 != pw2:
        raise SystemExit("Passwords do not match")

    try:
        user_id = asyncio.run(create_user(email, name, pw1, args.role))
    except (UserManagementError, ConfigurationError, StoreError) as exc:
        raise SystemExit(str(exc)) from exc
    print(f"OK -> {args.role} user {user_id}")


if __name__ == "__main__":
    main()
