"""SQL implementations of repository interfaces."""

from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.authz.interception import fetch_authorized
from backend.app.authz.rules import Action
from backend.app.db.models import Post
from backend.app.db.queries import select_accessible
from backend.app.db.repositories import PostRecord

UPDATABLE_FIELDS = frozenset({"title", "content", "published"})


def to_record(post: Post) -> PostRecord:
    return PostRecord(
        id=post.id,
        title=post.title,
        content=post.content,
        published=post.published,
        author_id=post.author_id,
        created_at=post.created_at,
        updated_at=post.updated_at,
    )


class SqlPostRepository:
    """SQL implementation of PostRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_post(
        self, author_id: int, title: str, content: str | None, published: bool
    ) -> PostRecord:
        """Create a new post."""
        post = Post(title=title, content=content, published=published, author_id=author_id)

        self._session.add(post)
        await self._session.commit()

        return to_record(post)

    async def list_posts(
        self,
        *,
        published: bool | None = None,
        author_id: int | None = None,
        can: Action | None = None,
        limit: int = 100,
    ) -> list[PostRecord]:
        """List readable posts, newest first."""
        stmt = select_accessible(Post, can) if can is not None else select(Post)
        if published is not None:
            stmt = stmt.where(Post.published == published)
        if author_id is not None:
            stmt = stmt.where(Post.author_id == author_id)
        stmt = stmt.order_by(Post.created_at.desc(), Post.id.desc()).limit(limit)

        result = await self._session.execute(stmt)
        return [to_record(post) for post in result.scalars().all()]

    async def get_post(self, post_id: int) -> PostRecord:
        """Get a post by ID."""
        post = await fetch_authorized(self._session, Post, post_id, Action.read)
        return to_record(post)

    async def update_post(self, post_id: int, changes: dict[str, Any]) -> PostRecord:
        """Apply field changes to a post."""
        post = await fetch_authorized(self._session, Post, post_id, Action.update)

        for key, value in changes.items():
            if key in UPDATABLE_FIELDS:
                setattr(post, key, value)

        await self._session.commit()

        return to_record(post)

    async def delete_post(self, post_id: int) -> PostRecord:
        """Delete a post and return its last state."""
        post = await fetch_authorized(self._session, Post, post_id, Action.delete)
        record = to_record(post)

        await self._session.delete(post)
        await self._session.commit()

        return record

    async def delete_posts(self, *, author_id: int | None = None) -> int:
        """Delete every post matching the filter that the caller may delete."""
        stmt = delete(Post)
        if author_id is not None:
            stmt = stmt.where(Post.author_id == author_id)

        result = await self._session.execute(stmt.execution_options(synchronize_session=False))
        await self._session.commit()

        return result.rowcount
