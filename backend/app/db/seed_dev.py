"""Dev seeding: an administrator, two users and a few posts.

Run with the ability of an administrator installed, so the seed goes
through the same authorization path as any other write.
"""

import asyncio

from sqlalchemy import select

from backend.app.authz.context import installed
from backend.app.authz.policy import build_ability
from backend.app.config import get_settings
from backend.app.db.context import Caller
from backend.app.db.engine import get_session_factory
from backend.app.db.models import Post, User

# Fixed IDs matching the bearer stub in backend/app/api/auth.py
DEV_ADMIN_ID = 1
DEV_USER_IDS = (2, 3)


async def seed_dev_users_and_posts() -> None:
    """Seed dev users and posts.

    This function is idempotent - safe to run multiple times.
    Creates:
    - Admin user DEV_ADMIN_ID
    - Ordinary users DEV_USER_IDS, each with one draft and one published post
    """
    settings = get_settings()
    admin = Caller(id=DEV_ADMIN_ID, role=settings.admin_role)

    with installed(build_ability(admin), admin):
        async with get_session_factory()() as session:
            existing = set((await session.execute(select(User.id))).scalars().all())

            if DEV_ADMIN_ID not in existing:
                print(f"Creating dev admin with id {DEV_ADMIN_ID}...")
                session.add(
                    User(id=DEV_ADMIN_ID, email="admin@example.com", name="Admin", role=settings.admin_role)
                )

            for user_id in DEV_USER_IDS:
                if user_id in existing:
                    print(f"Dev user already exists: {user_id}")
                    continue

                print(f"Creating dev user with id {user_id}...")
                session.add(
                    User(
                        id=user_id,
                        email=f"user{user_id}@example.com",
                        name=f"User {user_id}",
                        role=settings.default_role,
                    )
                )
                session.add(Post(title=f"Draft by {user_id}", author_id=user_id, published=False))
                session.add(Post(title=f"Hello from {user_id}", author_id=user_id, published=True))

            await session.commit()
            print("Dev seeding complete")


if __name__ == "__main__":
    asyncio.run(seed_dev_users_and_posts())
