"""Mint a signed access token for an existing user.

The service has no password login; operators use this to hand out bearer
tokens. Claims are taken from the stored user so the token passes identity
resolution.

Usage:
    python -m scripts.mint_token <user-id> [--minutes 60]
"""

import argparse
import asyncio
import uuid
from datetime import timedelta

from backend.app.auth.tokens import TokenService
from backend.app.config import get_settings
from backend.app.db.engine import create_store_from_settings


async def mint_token(user_id: uuid.UUID, minutes: int | None = None) -> str:
    settings = get_settings()
    store = await create_store_from_settings(settings)
    try:
        user = await store.users.get(user_id)
    finally:
        await store.close()

    if user is None:
        raise SystemExit(f"User {user_id} not found")
    if not user.is_active:
        raise SystemExit(f"User {user_id} is inactive")

    expires = timedelta(minutes=minutes) if minutes else None
    return TokenService(settings).create_access_token(
        user.id, user.organization_id, user.role, expires=expires
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Mint an access token for a user")
    parser.add_argument("user_id", type=uuid.UUID)
    parser.add_argument("--minutes", type=int, default=None, help="Token lifetime override")
    args = parser.parse_args()

    print(asyncio.run(mint_token(args.user_id, args.minutes)))


if __name__ == "__main__":
    main()
