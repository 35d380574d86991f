from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from quickblog.database import get_db
from quickblog.dependencies import get_current_user
from quickblog.guard import Identity
from quickblog.schemas import CommentCreate, CommentUpdate
from quickblog.services import comment_service

router = APIRouter(prefix="/api/v1/comments", tags=["comments"])


@router.get("/{post_id}")
async def list_comments(post_id: str, db: AsyncSession = Depends(get_db)):
    comments = await comment_service.list_for_post(db, post_id)
    return {"success": True, "count": len(comments), "data": comments}


@router.post("/{post_id}", status_code=201)
async def add_comment(
    post_id: str,
    data: CommentCreate,
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    comment = await comment_service.add_comment(db, identity, post_id, data.content)
    return {"success": True, "data": comment}


@router.put("/{comment_id}")
async def update_comment(
    comment_id: str,
    data: CommentUpdate,
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    comment = await comment_service.update_comment(db, identity, comment_id, data.content)
    return {"success": True, "data": comment}


@router.delete("/{comment_id}")
async def delete_comment(
    comment_id: str,
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await comment_service.delete_comment(db, identity, comment_id)
    return {"success": True, "data": {}}
