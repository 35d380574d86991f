"""
Post service - business logic for the Post aggregate.

Design notes
------------
- The public feed goes through the cache-aside feed cache. Every write
  (create, update, delete, status change, reaction toggle, comment count
  change) marks the session, and all cached feed pages are dropped after
  the request transaction commits.
- Listings are ordered by ``created_at DESC, id DESC``. Timestamps can
  collide, so the id breaks ties and page boundaries stay stable.
- Likes and dislikes live in two association tables. A toggle is a
  direct INSERT/DELETE on those rows inside the request transaction, so
  a user is never left in both sets.
- Loaded posts always use ``populate_existing`` so a post already present
  in the session identity map is re-read with its current reactions.
- Service functions flush but do not commit; the transaction boundary
  is owned by the ``get_db`` dependency.
"""
import logging
import math

from fastapi import UploadFile
from sqlalchemy import delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from quickblog.cache import cache
from quickblog.config import settings
from quickblog.exceptions import Forbidden, InvalidId, NotFound, ValidationError
from quickblog.guard import Identity, can_modify, ensure_owner_or_admin
from quickblog.models import (
    MAX_ID,
    STATUS_DRAFT,
    STATUS_PUBLISHED,
    STATUSES,
    Comment,
    Post,
    post_dislikes,
    post_likes,
)
from quickblog.schemas import PostCreate, PostPage, PostUpdate
from quickblog.storage import save_thumbnail

logger = logging.getLogger(__name__)

# Fields that may not be cleared once a post exists.
_REQUIRED_FIELDS = ("title", "content", "category", "status")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def parse_id(raw, label: str = "Post") -> int:
    """Return *raw* as a positive integer id or raise InvalidId."""
    if isinstance(raw, bool):
        raise InvalidId(f"Invalid {label} ID format")
    if isinstance(raw, int):
        value = raw
    else:
        text = str(raw).strip()
        if not (text.isascii() and text.isdigit()):
            raise InvalidId(f"Invalid {label} ID format")
        value = int(text)
    if value < 1 or value > MAX_ID:
        raise InvalidId(f"Invalid {label} ID format")
    return value


def validate_pagination(page, limit) -> tuple[int, int]:
    """Reject non-positive page/limit values and cap *limit*."""
    for name, value in (("page", page), ("limit", limit)):
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ValidationError(f"{name} must be a positive integer.")
    return page, min(limit, settings.MAX_PAGE_SIZE)


def _post_query():
    return (
        select(Post)
        .options(
            joinedload(Post.author),
            selectinload(Post.liked_by),
            selectinload(Post.disliked_by),
        )
        .execution_options(populate_existing=True)
    )


async def _load_post(db: AsyncSession, post_id: int) -> Post | None:
    result = await db.execute(_post_query().where(Post.id == post_id))
    return result.unique().scalar_one_or_none()


async def _get_post_or_404(db: AsyncSession, post_id: int) -> Post:
    result = await db.execute(select(Post).where(Post.id == post_id))
    post = result.scalar_one_or_none()
    if post is None:
        raise NotFound("Post not found")
    return post


async def _paginate(db: AsyncSession, condition, page: int, limit: int) -> PostPage:
    page, limit = validate_pagination(page, limit)

    count_q = select(func.count()).select_from(Post)
    posts_q = _post_query().order_by(Post.created_at.desc(), Post.id.desc())
    if condition is not None:
        count_q = count_q.where(condition)
        posts_q = posts_q.where(condition)

    total: int = (await db.execute(count_q)).scalar_one()
    result = await db.execute(posts_q.offset((page - 1) * limit).limit(limit))
    posts = result.unique().scalars().all()

    return PostPage(
        items=[post_to_dict(p) for p in posts],
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if total > 0 else 0,
        total_count=total,
    )


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def serialize_author(author) -> dict | None:
    if author is None:
        return None
    return {"id": author.id, "username": author.username, "role": author.role}


def post_to_dict(post: Post) -> dict:
    return {
        "id": post.id,
        "title": post.title,
        "subtitle": post.subtitle,
        "content": post.content,
        "thumbnail": post.thumbnail,
        "category": list(post.category or []),
        "status": post.status,
        "author_id": post.author_id,
        "author": serialize_author(post.author),
        "likes": sorted(u.id for u in post.liked_by),
        "dislikes": sorted(u.id for u in post.disliked_by),
        "comment_count": post.comment_count,
        "created_at": post.created_at.isoformat() if post.created_at else None,
        "updated_at": post.updated_at.isoformat() if post.updated_at else None,
    }


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------

async def list_published(
    db: AsyncSession,
    page: int = 1,
    limit: int = settings.DEFAULT_PAGE_SIZE,
) -> PostPage:
    """Return one page of the public feed (Published posts only)."""
    page, limit = validate_pagination(page, limit)
    cache_key = cache.feed_key(page, limit)
    cached = await cache.get(cache_key)
    if cached:
        return PostPage(**cached)

    result = await _paginate(db, Post.status == STATUS_PUBLISHED, page, limit)
    await cache.set(cache_key, result.model_dump(), ttl=settings.CACHE_TTL_LIST)
    return result


async def list_by_author(
    db: AsyncSession,
    identity: Identity,
    author_id,
    page: int = 1,
    limit: int = settings.DEFAULT_PAGE_SIZE,
) -> PostPage:
    """
    Return every post of *author_id*, drafts included.

    Only the author themselves or an admin may see this listing.
    """
    author_id = parse_id(author_id, "User")
    if not can_modify(identity, author_id):
        raise Forbidden("Not authorized to view this author's posts.")
    return await _paginate(db, Post.author_id == author_id, page, limit)


async def list_all(
    db: AsyncSession,
    page: int = 1,
    limit: int = settings.DEFAULT_PAGE_SIZE,
) -> PostPage:
    """Every post regardless of status, for the admin dashboard."""
    return await _paginate(db, None, page, limit)


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

async def get_post(db: AsyncSession, post_id, identity: Identity | None = None) -> dict:
    """
    Return a single post.

    Drafts are visible only to their author and to admins; everyone
    else, anonymous callers included, gets Forbidden.
    """
    post = await _load_post(db, parse_id(post_id))
    if post is None:
        raise NotFound("Post not found")
    if post.status == STATUS_DRAFT and not can_modify(identity, post.author_id):
        raise Forbidden("Post is a draft and cannot be viewed.")
    return post_to_dict(post)


async def create_post(
    db: AsyncSession,
    identity: Identity,
    data: PostCreate,
    thumbnail: UploadFile | None,
) -> dict:
    """Create a post owned by the caller. New posts are published immediately."""
    thumbnail_url = await save_thumbnail(thumbnail)

    post = Post(
        title=data.title,
        subtitle=data.subtitle,
        content=data.content,
        category=data.category,
        thumbnail=thumbnail_url,
        status=STATUS_PUBLISHED,
        comment_count=0,
        author_id=identity.id,
    )
    db.add(post)
    await db.flush()
    logger.info("Post %s created by user %s", post.id, identity.id)

    cache.mark_feed_stale(db)
    return post_to_dict(await _load_post(db, post.id))


async def update_post(
    db: AsyncSession,
    identity: Identity,
    post_id,
    data: PostUpdate,
    thumbnail: UploadFile | None = None,
) -> dict:
    """
    Apply the fields explicitly set in *data*; swap the thumbnail only
    when a new file is supplied.
    """
    post_id = parse_id(post_id)
    post = await _get_post_or_404(db, post_id)
    ensure_owner_or_admin(identity, post.author_id, "Not authorized to update this post")

    changes = data.model_dump(exclude_unset=True)
    for field in _REQUIRED_FIELDS:
        if field in changes and changes[field] is None:
            del changes[field]

    for field, value in changes.items():
        setattr(post, field, value)

    if thumbnail is not None and thumbnail.filename:
        post.thumbnail = await save_thumbnail(thumbnail)

    await db.flush()
    cache.mark_feed_stale(db)
    return post_to_dict(await _load_post(db, post_id))


async def delete_post(db: AsyncSession, identity: Identity, post_id) -> None:
    """Delete a post together with its comments and reactions."""
    post_id = parse_id(post_id)
    post = await _get_post_or_404(db, post_id)
    ensure_owner_or_admin(
        identity,
        post.author_id,
        "Not authorized to delete this post. You must be the author or an administrator.",
    )

    await db.execute(delete(Comment).where(Comment.post_id == post_id))
    await db.execute(delete(post_likes).where(post_likes.c.post_id == post_id))
    await db.execute(delete(post_dislikes).where(post_dislikes.c.post_id == post_id))
    await db.delete(post)
    await db.flush()
    logger.info("Post %s deleted by user %s", post_id, identity.id)

    cache.mark_feed_stale(db)


async def set_status(db: AsyncSession, post_id, status: str) -> dict:
    """Publish or unpublish a post. The route restricts this to admins."""
    if status not in STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(STATUSES)}")
    post_id = parse_id(post_id)
    post = await _get_post_or_404(db, post_id)
    post.status = status
    await db.flush()

    cache.mark_feed_stale(db)
    return post_to_dict(await _load_post(db, post_id))


# ---------------------------------------------------------------------------
# Reactions
# ---------------------------------------------------------------------------

async def _toggle_reaction(db: AsyncSession, identity: Identity, post_id, table, opposite) -> dict:
    post_id = parse_id(post_id)
    await _get_post_or_404(db, post_id)

    membership = (table.c.post_id == post_id) & (table.c.user_id == identity.id)
    present = (await db.execute(select(table.c.post_id).where(membership))).first()

    if present:
        await db.execute(delete(table).where(membership))
    else:
        await db.execute(insert(table).values(post_id=post_id, user_id=identity.id))
        await db.execute(
            delete(opposite).where(
                (opposite.c.post_id == post_id) & (opposite.c.user_id == identity.id)
            )
        )

    cache.mark_feed_stale(db)
    return post_to_dict(await _load_post(db, post_id))


async def toggle_like(db: AsyncSession, identity: Identity, post_id) -> dict:
    """Like the post, or take the like back if it is already there."""
    return await _toggle_reaction(db, identity, post_id, post_likes, post_dislikes)


async def toggle_dislike(db: AsyncSession, identity: Identity, post_id) -> dict:
    """Dislike the post, or take the dislike back if it is already there."""
    return await _toggle_reaction(db, identity, post_id, post_dislikes, post_likes)
