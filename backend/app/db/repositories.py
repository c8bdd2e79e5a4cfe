"""Repository protocol interfaces for data access."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from backend.app.authz.rules import Action


@dataclass
class PostRecord:
    """Post data record."""

    id: int
    title: str
    content: str | None
    published: bool
    author_id: int
    created_at: datetime
    updated_at: datetime


class PostRepository(Protocol):
    """Repository for post operations.

    Every method runs under the ability installed for the current request;
    none of them take authorization arguments.
    """

    async def create_post(
        self, author_id: int, title: str, content: str | None, published: bool
    ) -> PostRecord:
        """Create a new post.

        Raises:
            AuthorizationDenied: If the caller may not create it
        """
        ...

    async def list_posts(
        self,
        *,
        published: bool | None = None,
        author_id: int | None = None,
        can: Action | None = None,
        limit: int = 100,
    ) -> list[PostRecord]:
        """List readable posts, newest first.

        Args:
            published: Optional published flag filter
            author_id: Optional author filter
            can: Further narrow to posts the caller may perform this action on
            limit: Maximum number of results
        """
        ...

    async def get_post(self, post_id: int) -> PostRecord:
        """Get a post by ID.

        Raises:
            RecordNotFound: If no post has this ID
            AuthorizationDenied: If reading it is denied
        """
        ...

    async def update_post(self, post_id: int, changes: dict[str, Any]) -> PostRecord:
        """Apply field changes to a post.

        Raises:
            RecordNotFound: If no post has this ID
            AuthorizationDenied: If updating it is denied
        """
        ...

    async def delete_post(self, post_id: int) -> PostRecord:
        """Delete a post and return its last state.

        Raises:
            RecordNotFound: If no post has this ID
            AuthorizationDenied: If deleting it is denied
        """
        ...

    async def delete_posts(self, *, author_id: int | None = None) -> int:
        """Delete every post matching the filter that the caller may delete.

        Returns:
            Number of deleted posts
        """
        ...
