"""
Comment service - comments scoped to a post.

Authorisation is deliberately asymmetric: only the author may edit a
comment, while the author or an admin may delete it.

``Post.comment_count`` is a denormalised counter. It is changed with a
single ``UPDATE ... SET comment_count = comment_count +/- 1`` in the same
transaction as the comment insert/delete, so it cannot drift from
interleaved read-modify-write cycles.
"""
import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from quickblog.cache import cache
from quickblog.exceptions import Forbidden, NotFound, ValidationError
from quickblog.guard import Identity, ensure_owner_or_admin
from quickblog.models import Comment, Post
from quickblog.services.post_service import parse_id, serialize_author

logger = logging.getLogger(__name__)


def _clean_content(content: str | None) -> str:
    text = (content or "").strip()
    if not text:
        raise ValidationError("Comment content cannot be empty.")
    return text


def comment_to_dict(comment: Comment) -> dict:
    return {
        "id": comment.id,
        "content": comment.content,
        "post_id": comment.post_id,
        "author_id": comment.author_id,
        "author": serialize_author(comment.author),
        "created_at": comment.created_at.isoformat() if comment.created_at else None,
        "updated_at": comment.updated_at.isoformat() if comment.updated_at else None,
    }


async def _load_comment(db: AsyncSession, comment_id: int) -> Comment | None:
    q = (
        select(Comment)
        .where(Comment.id == comment_id)
        .options(joinedload(Comment.author))
        .execution_options(populate_existing=True)
    )
    result = await db.execute(q)
    return result.unique().scalar_one_or_none()


async def _get_comment_or_404(db: AsyncSession, comment_id: int) -> Comment:
    comment = await _load_comment(db, comment_id)
    if comment is None:
        raise NotFound("Comment not found")
    return comment


async def _adjust_comment_count(db: AsyncSession, post_id: int, delta: int) -> None:
    stmt = update(Post).where(Post.id == post_id)
    if delta < 0:
        stmt = stmt.where(Post.comment_count > 0)
    await db.execute(stmt.values(comment_count=Post.comment_count + delta))
    cache.mark_feed_stale(db)


async def list_for_post(db: AsyncSession, post_id) -> list[dict]:
    """All comments on a post, oldest first."""
    post_id = parse_id(post_id)
    q = (
        select(Comment)
        .where(Comment.post_id == post_id)
        .options(joinedload(Comment.author))
        .order_by(Comment.created_at.asc(), Comment.id.asc())
    )
    result = await db.execute(q)
    return [comment_to_dict(c) for c in result.unique().scalars().all()]


async def add_comment(db: AsyncSession, identity: Identity, post_id, content: str | None) -> dict:
    post_id = parse_id(post_id)
    exists = (await db.execute(select(Post.id).where(Post.id == post_id))).scalar_one_or_none()
    if exists is None:
        raise NotFound("Post not found.")

    comment = Comment(content=_clean_content(content), post_id=post_id, author_id=identity.id)
    db.add(comment)
    await db.flush()
    await _adjust_comment_count(db, post_id, 1)
    logger.info("Comment %s added to post %s by user %s", comment.id, post_id, identity.id)

    return comment_to_dict(await _load_comment(db, comment.id))


async def update_comment(db: AsyncSession, identity: Identity, comment_id, content: str | None) -> dict:
    """Replace a comment's text. Only its author may do this, admins included."""
    comment_id = parse_id(comment_id, "Comment")
    text = _clean_content(content)
    comment = await _get_comment_or_404(db, comment_id)
    if comment.author_id != identity.id:
        raise Forbidden("Not authorized to update this comment")

    comment.content = text
    await db.flush()
    return comment_to_dict(await _load_comment(db, comment_id))


async def delete_comment(db: AsyncSession, identity: Identity, comment_id) -> None:
    comment_id = parse_id(comment_id, "Comment")
    comment = await _get_comment_or_404(db, comment_id)
    ensure_owner_or_admin(identity, comment.author_id, "Not authorized to delete this comment")

    post_id = comment.post_id
    await db.delete(comment)
    await db.flush()
    await _adjust_comment_count(db, post_id, -1)
    logger.info("Comment %s deleted by user %s", comment_id, identity.id)
