"""Post endpoints - CRUD scoped by the installed ability."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.auth import check_policies, get_current_context
from backend.app.authz.policy import POST
from backend.app.authz.rules import Action
from backend.app.db.context import RequestContext
from backend.app.db.engine import get_session
from backend.app.db.repositories import PostRecord, PostRepository
from backend.app.db.sql_repositories import SqlPostRepository

router = APIRouter(prefix="/posts", tags=["posts"])


class CreatePostRequest(BaseModel):
    """Request body for POST /posts."""

    title: str = Field(..., min_length=1, max_length=200, description="Post title")
    content: str | None = Field(None, description="Post body")
    published: bool = Field(False, description="Whether the post is published")


class UpdatePostRequest(BaseModel):
    """Request body for PATCH /posts/{post_id}."""

    title: str | None = Field(None, min_length=1, max_length=200)
    content: str | None = None
    published: bool | None = None


class PostResponse(BaseModel):
    """Single post."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    content: str | None
    published: bool
    author_id: int
    created_at: datetime
    updated_at: datetime


class PostListResponse(BaseModel):
    """Response for GET /posts."""

    posts: list[PostResponse]


class DeletePostsResponse(BaseModel):
    """Response for DELETE /posts."""

    deleted: int


def _repo(session: AsyncSession) -> PostRepository:
    return SqlPostRepository(session)


def _to_response(record: PostRecord) -> PostResponse:
    return PostResponse.model_validate(record)


@router.post(
    "",
    response_model=PostResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_policies(Action.create, POST))],
)
async def create_post(
    request: CreatePostRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> PostResponse:
    """Create a post authored by the caller.

    Args:
        request: Post creation request
        ctx: Request context (caller, ability)
        session: Database session

    Returns:
        Created post
    """
    if ctx.caller is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    record = await _repo(session).create_post(
        author_id=ctx.caller.id,
        title=request.title,
        content=request.content,
        published=request.published,
    )
    return _to_response(record)


@router.get(
    "",
    response_model=PostListResponse,
    dependencies=[Depends(check_policies(Action.read, POST))],
)
async def list_posts(
    session: Annotated[AsyncSession, Depends(get_session)],
    published: Annotated[bool | None, Query()] = None,
    author_id: Annotated[int | None, Query()] = None,
    can: Annotated[Action | None, Query(description="Only posts the caller may do this to")] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> PostListResponse:
    """List posts visible to the caller."""
    records = await _repo(session).list_posts(
        published=published, author_id=author_id, can=can, limit=limit
    )
    return PostListResponse(posts=[_to_response(r) for r in records])


@router.get("/{post_id}", response_model=PostResponse)
async def get_post(
    post_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> PostResponse:
    """Get a post by ID (404 if absent, 403 if reading it is denied)."""
    record = await _repo(session).get_post(post_id)
    return _to_response(record)


@router.patch("/{post_id}", response_model=PostResponse)
async def update_post(
    post_id: int,
    request: UpdatePostRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> PostResponse:
    """Update a post (404 if absent, 403 if updating it is denied)."""
    changes = request.model_dump(exclude_unset=True)
    record = await _repo(session).update_post(post_id, changes)
    return _to_response(record)


@router.delete("/{post_id}", response_model=PostResponse)
async def delete_post(
    post_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> PostResponse:
    """Delete a post (404 if absent, 403 if deleting it is denied)."""
    record = await _repo(session).delete_post(post_id)
    return _to_response(record)


@router.delete("", response_model=DeletePostsResponse)
async def delete_posts(
    session: Annotated[AsyncSession, Depends(get_session)],
    author_id: Annotated[int | None, Query()] = None,
) -> DeletePostsResponse:
    """Bulk delete posts matching the filter, limited to posts the caller may delete."""
    deleted = await _repo(session).delete_posts(author_id=author_id)
    return DeletePostsResponse(deleted=deleted)
