"""Bootstrap a superadmin and print its API key.

Usage:
    DATABASE_URL=... python -m scripts.create_superadmin root root@example.com

Idempotent per username: an existing superadmin gets a fresh key instead.
"""

import argparse
import asyncio

from backend.app.auth.api_keys import generate_api_key, hash_api_key
from backend.app.config import get_settings
from backend.app.db.context import Role
from backend.app.db.engine import create_store_from_settings
from backend.app.db.filters import QueryFilter, eq
from backend.app.db.repositories import UserRecord


async def create_superadmin(username: str, email: str) -> str:
    """Create (or re-key) a superadmin.

    Returns:
        The plaintext API key, shown only once
    """
    store = await create_store_from_settings(get_settings())
    api_key = generate_api_key()
    try:
        existing = await store.users.find_one(QueryFilter().where(eq("username", username)))
        if existing is None:
            user = await store.users.insert(
                UserRecord(
                    username=username,
                    email=email,
                    organization_id=None,
                    role=Role.superadmin,
                    api_key_hash=hash_api_key(api_key),
                )
            )
            print(f"Created superadmin {user.username} ({user.id})")
        elif existing.role != Role.superadmin:
            raise SystemExit(f"User {username} exists and is not a superadmin")
        else:
            await store.users.update(
                QueryFilter().where(eq("id", existing.id)),
                {"api_key_hash": hash_api_key(api_key), "is_active": True},
            )
            print(f"Superadmin {existing.username} already exists; issued a new key")
    finally:
        await store.close()

    return api_key


def main() -> None:
    parser = argparse.ArgumentParser(description="Bootstrap a superadmin")
    parser.add_argument("username")
    parser.add_argument("email")
    args = parser.parse_args()

    api_key = asyncio.run(create_superadmin(args.username, args.email))
    print(f"API key: {api_key}")


if __name__ == "__main__":
    main()
