"""Shared pytest fixtures for all test suites."""

from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path

import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from backend.app.db.engine import create_session_factory
from backend.app.db.models import Base, Post, User

# Two ordinary users and an administrator
USER_1 = 1
USER_2 = 2
ADMIN = 3


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Create async engine over a fresh SQLite file database."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Authorized session factory bound to the test engine."""
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def seeded(engine: AsyncEngine) -> dict[str, int]:
    """Seed users and posts through a plain (unscoped) session.

    Returns:
        Mapping of post name to post id:
        - "own_published": USER_1, published
        - "own_draft": USER_1, draft
        - "other_draft": USER_2, draft
    """
    async with AsyncSession(engine, expire_on_commit=False) as session:
        session.add_all(
            [
                User(id=USER_1, email="one@example.com", name="One", role="USER"),
                User(id=USER_2, email="two@example.com", name="Two", role="USER"),
                User(id=ADMIN, email="admin@example.com", name="Admin", role="ADMIN"),
            ]
        )
        await session.flush()

        own_published = Post(title="Published by one", author_id=USER_1, published=True)
        own_draft = Post(title="Draft by one", author_id=USER_1, published=False)
        other_draft = Post(title="Draft by two", author_id=USER_2, published=False)
        session.add_all([own_published, own_draft, other_draft])
        await session.commit()

        return {
            "own_published": own_published.id,
            "own_draft": own_draft.id,
            "other_draft": other_draft.id,
        }


@pytest_asyncio.fixture
async def stored_post_ids(engine: AsyncEngine) -> Callable[[], Awaitable[set[int]]]:
    """Read post ids currently stored, through a plain (unscoped) session."""

    async def _stored_post_ids() -> set[int]:
        async with AsyncSession(engine) as session:
            return set((await session.execute(select(Post.id))).scalars().all())

    return _stored_post_ids
