"""Tests for query interception on AuthorizedSession."""

import asyncio
from collections.abc import Awaitable, Callable

import pytest
from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from backend.app.authz.context import installed, run_with_ability
from backend.app.authz.errors import AuthorizationDenied, RecordNotFound
from backend.app.authz.interception import fetch_authorized
from backend.app.authz.policy import build_ability
from backend.app.authz.rules import Ability, Action, Effect, Rule
from backend.app.db.context import Caller
from backend.app.db.models import Post, User

USER_1 = Caller(id=1, role="USER")
USER_2 = Caller(id=2, role="USER")
ADMIN = Caller(id=3, role="ADMIN")


def ability_for(caller: Caller | None) -> Ability:
    return build_ability(caller, admin_role="ADMIN")


@pytest.mark.asyncio
async def test_list_is_public_read(
    session_factory: async_sessionmaker[AsyncSession], seeded: dict[str, int]
) -> None:
    """Every caller, anonymous included, reads every post."""
    for caller in (None, USER_1, USER_2):
        with installed(ability_for(caller), caller):
            async with session_factory() as session:
                posts = (await session.execute(select(Post))).scalars().all()

        assert {p.id for p in posts} == set(seeded.values())


@pytest.mark.asyncio
async def test_deny_all_ability_reads_nothing(
    session_factory: async_sessionmaker[AsyncSession], seeded: dict[str, int]
) -> None:
    """Reads are narrowed by the read filter, not just left alone."""
    with installed(Ability.deny_all()):
        async with session_factory() as session:
            posts = (await session.execute(select(Post))).scalars().all()
            by_id = await session.get(Post, seeded["own_draft"])

    assert posts == []
    assert by_id is None


@pytest.mark.asyncio
async def test_bulk_delete_only_removes_deletable_rows(
    session_factory: async_sessionmaker[AsyncSession],
    seeded: dict[str, int],
    stored_post_ids: Callable[[], Awaitable[set[int]]],
) -> None:
    """A match-all bulk delete by user 2 only removes user 2's posts."""
    with installed(ability_for(USER_2), USER_2):
        async with session_factory() as session:
            result = await session.execute(delete(Post).execution_options(synchronize_session=False))
            await session.commit()

    assert result.rowcount == 1
    assert await stored_post_ids() == {seeded["own_published"], seeded["own_draft"]}


@pytest.mark.asyncio
async def test_bulk_delete_keeps_caller_filter(
    session_factory: async_sessionmaker[AsyncSession],
    seeded: dict[str, int],
    stored_post_ids: Callable[[], Awaitable[set[int]]],
) -> None:
    """Injected criteria are ANDed with the statement's own WHERE clause."""
    with installed(ability_for(USER_1), USER_1):
        async with session_factory() as session:
            await session.execute(
                delete(Post)
                .where(Post.published.is_(False))
                .execution_options(synchronize_session=False)
            )
            await session.commit()

    assert await stored_post_ids() == {seeded["own_published"], seeded["other_draft"]}


@pytest.mark.asyncio
async def test_bulk_update_only_touches_updatable_rows(
    engine: AsyncEngine,
    session_factory: async_sessionmaker[AsyncSession],
    seeded: dict[str, int],
) -> None:
    """A match-all bulk update by user 2 only changes user 2's posts."""
    with installed(ability_for(USER_2), USER_2):
        async with session_factory() as session:
            await session.execute(
                update(Post).values(title="renamed").execution_options(synchronize_session=False)
            )
            await session.commit()

    async with AsyncSession(engine) as plain:
        titles = dict((await plain.execute(select(Post.id, Post.title))).all())

    assert titles[seeded["other_draft"]] == "renamed"
    assert titles[seeded["own_draft"]] == "Draft by one"
    assert titles[seeded["own_published"]] == "Published by one"


@pytest.mark.asyncio
async def test_anonymous_bulk_delete_removes_nothing(
    session_factory: async_sessionmaker[AsyncSession],
    seeded: dict[str, int],
    stored_post_ids: Callable[[], Awaitable[set[int]]],
) -> None:
    """Writes the policy never allows synthesize to an always-false filter."""
    with installed(ability_for(None)):
        async with session_factory() as session:
            result = await session.execute(delete(Post).execution_options(synchronize_session=False))
            await session.commit()

    assert result.rowcount == 0
    assert await stored_post_ids() == set(seeded.values())


@pytest.mark.asyncio
async def test_missing_context_fails_closed(
    session_factory: async_sessionmaker[AsyncSession],
    seeded: dict[str, int],
    stored_post_ids: Callable[[], Awaitable[set[int]]],
) -> None:
    """Outside any request the anonymous rules apply: read yes, write no."""
    async with session_factory() as session:
        posts = (await session.execute(select(Post))).scalars().all()
        result = await session.execute(delete(Post).execution_options(synchronize_session=False))
        await session.commit()

        assert len(posts) == 3
        assert result.rowcount == 0

        session.add(Post(title="sneaky", author_id=1))
        with pytest.raises(AuthorizationDenied):
            await session.commit()

    assert await stored_post_ids() == set(seeded.values())


@pytest.mark.asyncio
async def test_flush_denies_deleting_foreign_post(
    session_factory: async_sessionmaker[AsyncSession],
    seeded: dict[str, int],
    stored_post_ids: Callable[[], Awaitable[set[int]]],
) -> None:
    """Unit-of-work deletes are checked per instance."""
    with installed(ability_for(USER_2), USER_2):
        async with session_factory() as session:
            post = await session.get(Post, seeded["own_published"])
            assert post is not None

            await session.delete(post)
            with pytest.raises(AuthorizationDenied):
                await session.commit()

    assert seeded["own_published"] in await stored_post_ids()


@pytest.mark.asyncio
async def test_flush_checks_update_against_persisted_owner(
    session_factory: async_sessionmaker[AsyncSession], seeded: dict[str, int]
) -> None:
    """Reassigning a foreign post to oneself is still an update of a foreign post."""
    with installed(ability_for(USER_2), USER_2):
        async with session_factory() as session:
            post = await session.get(Post, seeded["own_draft"])
            assert post is not None

            post.author_id = USER_2.id
            with pytest.raises(AuthorizationDenied):
                await session.commit()


@pytest.mark.asyncio
async def test_flush_allows_own_update_and_create(
    session_factory: async_sessionmaker[AsyncSession], seeded: dict[str, int]
) -> None:
    """Own posts may be edited and new posts created."""
    with installed(ability_for(USER_1), USER_1):
        async with session_factory() as session:
            post = await session.get(Post, seeded["own_draft"])
            assert post is not None
            post.published = True

            created = Post(title="New", author_id=USER_1.id)
            session.add(created)
            await session.commit()

    assert post.published is True
    assert created.id is not None


@pytest.mark.asyncio
async def test_fetch_authorized_distinguishes_missing_and_forbidden(
    session_factory: async_sessionmaker[AsyncSession], seeded: dict[str, int]
) -> None:
    """Missing -> RecordNotFound; present but denied -> AuthorizationDenied."""
    with installed(ability_for(USER_2), USER_2):
        async with session_factory() as session:
            with pytest.raises(RecordNotFound):
                await fetch_authorized(session, Post, 9999, Action.delete)

            with pytest.raises(AuthorizationDenied):
                await fetch_authorized(session, Post, seeded["own_draft"], Action.delete)

            own = await fetch_authorized(session, Post, seeded["other_draft"], Action.delete)
            foreign_read = await fetch_authorized(session, Post, seeded["own_draft"], Action.read)

    assert own.author_id == USER_2.id
    assert foreign_read.author_id == USER_1.id


@pytest.mark.asyncio
async def test_fetch_authorized_reports_existing_unreadable_record_as_forbidden(
    session_factory: async_sessionmaker[AsyncSession], seeded: dict[str, int]
) -> None:
    """An existing record is never reported as missing, even when reads are denied."""
    with installed(Ability.deny_all()):
        async with session_factory() as session:
            with pytest.raises(AuthorizationDenied):
                await fetch_authorized(session, Post, seeded["own_draft"], Action.read)

            with pytest.raises(AuthorizationDenied):
                await fetch_authorized(session, Post, seeded["own_draft"], Action.delete)

            with pytest.raises(RecordNotFound):
                await fetch_authorized(session, Post, 9999, Action.read)

            # the lookup bypass does not leak into ordinary queries
            posts = (await session.execute(select(Post))).scalars().all()

    assert posts == []


@pytest.mark.asyncio
async def test_aggregates_are_read_scoped(
    session_factory: async_sessionmaker[AsyncSession], seeded: dict[str, int]
) -> None:
    """Counts and other aggregates only see readable rows."""
    with installed(Ability.deny_all()):
        async with session_factory() as session:
            count = (await session.execute(select(func.count()).select_from(Post))).scalar_one()
            newest = (await session.execute(select(func.max(Post.id)))).scalar_one()

    assert count == 0
    assert newest is None

    with installed(ability_for(USER_1), USER_1):
        async with session_factory() as session:
            count = (await session.execute(select(func.count()).select_from(Post))).scalar_one()

    assert count == len(seeded)


@pytest.mark.asyncio
async def test_relationship_loads_are_read_scoped(
    session_factory: async_sessionmaker[AsyncSession], seeded: dict[str, int]
) -> None:
    """Posts reached through a relationship are filtered like direct reads."""
    users_only = Ability(rules=(Rule(Effect.allow, Action.read, "User"),))

    with installed(users_only):
        async with session_factory() as session:
            result = await session.execute(select(User).options(selectinload(User.posts)))
            users = result.scalars().all()

    assert len(users) == 3
    assert all(user.posts == [] for user in users)


@pytest.mark.asyncio
async def test_bulk_insert_checks_create_permission(
    session_factory: async_sessionmaker[AsyncSession],
    seeded: dict[str, int],
    stored_post_ids: Callable[[], Awaitable[set[int]]],
) -> None:
    """ORM insert statements need the create permission on the subject type."""
    with installed(ability_for(None)):
        async with session_factory() as session:
            with pytest.raises(AuthorizationDenied):
                await session.execute(insert(Post).values(title="anon", author_id=USER_1.id))

    assert await stored_post_ids() == set(seeded.values())

    with installed(ability_for(USER_1), USER_1):
        async with session_factory() as session:
            await session.execute(insert(Post).values(title="mine", author_id=USER_1.id))
            await session.commit()

    assert len(await stored_post_ids()) == len(seeded) + 1


@pytest.mark.asyncio
async def test_administrator_deletes_everything(
    session_factory: async_sessionmaker[AsyncSession],
    seeded: dict[str, int],
    stored_post_ids: Callable[[], Awaitable[set[int]]],
) -> None:
    """manage all makes every filter true."""
    with installed(ability_for(ADMIN), ADMIN):
        async with session_factory() as session:
            await session.execute(delete(Post).execution_options(synchronize_session=False))
            await session.commit()

    assert await stored_post_ids() == set()


@pytest.mark.asyncio
async def test_interleaved_requests_keep_their_own_filters(
    session_factory: async_sessionmaker[AsyncSession], seeded: dict[str, int]
) -> None:
    """Concurrent requests sharing one engine each get their own row scope."""

    async def list_readable() -> set[int]:
        ids: set[int] = set()
        for _ in range(3):
            async with session_factory() as session:
                stmt = select(Post.id).where(Post.id.in_(list(seeded.values())))
                await asyncio.sleep(0)
                rows = (await session.execute(stmt)).scalars().all()
                ids.update(rows)
        return ids

    readable_by_none, readable_by_user = await asyncio.gather(
        run_with_ability(Ability.deny_all(), list_readable),
        run_with_ability(ability_for(USER_1), list_readable, USER_1),
    )

    assert readable_by_none == set()
    assert readable_by_user == set(seeded.values())
