from __future__ import annotations

import argparse
import os
import secrets

from botgate.core.security import create_session_token, hash_password
from botgate.storage.db import create_engine, create_sessionmaker
from botgate.storage.repos import create_user, get_user_by_email


async def main() -> None:
    parser = argparse.ArgumentParser(description="Create a user and print a session token (dev)")
    parser.add_argument("--email", default="dev@example.com", help="User email")
    parser.add_argument("--name", default="Dev User", help="Display name")
    parser.add_argument("--password", default=None, help="Password (random when omitted)")
    parser.add_argument("--openai-api-key", default=None, help="Provider API key to store on the user")
    args = parser.parse_args()

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise SystemExit("DATABASE_URL is not set")

    engine = create_engine(database_url=database_url)
    sessionmaker = create_sessionmaker(engine)

    password = args.password or secrets.token_urlsafe(12)
    email = args.email.strip().lower()

    async with sessionmaker() as session:
        user = await get_user_by_email(session, email=email)
        if user is None:
            user = await create_user(session, name=args.name, email=email, password_hash=hash_password(password))
            print(f"created {email} password={password}")
        else:
            print(f"exists {email}")
        if args.openai_api_key:
            user.openai_api_key = args.openai_api_key.strip()
        await session.commit()
        token = create_session_token(user_id=user.id, email=user.email)

    await engine.dispose()

    print(token)


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
