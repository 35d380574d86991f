from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from quickblog.database import get_db
from quickblog.dependencies import (
    PaginationParams,
    get_current_user,
    get_optional_user,
    require_roles,
)
from quickblog.guard import Identity
from quickblog.models import ROLE_ADMIN
from quickblog.schemas import PostCreate, PostStatusUpdate, PostUpdate
from quickblog.services import post_service

router = APIRouter(prefix="/api/v1/posts", tags=["posts"])


def _present(**fields) -> dict:
    """Drop form fields the client did not send."""
    return {name: value for name, value in fields.items() if value is not None}


@router.get("")
async def list_posts(pagination: PaginationParams = Depends(), db: AsyncSession = Depends(get_db)):
    page = await post_service.list_published(db, pagination.page, pagination.limit)
    return {"success": True, **page.envelope()}


@router.get("/my-blogs")
async def list_my_posts(
    pagination: PaginationParams = Depends(),
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    page = await post_service.list_by_author(
        db, identity, identity.id, pagination.page, pagination.limit
    )
    return {"success": True, **page.envelope()}


@router.get("/admin/all")
async def list_all_posts(
    pagination: PaginationParams = Depends(),
    identity: Identity = Depends(require_roles(ROLE_ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    page = await post_service.list_all(db, pagination.page, pagination.limit)
    return {"success": True, **page.envelope()}


@router.get("/{post_id}")
async def get_post(
    post_id: str,
    identity: Identity | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return {"success": True, "data": await post_service.get_post(db, post_id, identity)}


@router.post("", status_code=201)
async def create_post(
    title: str | None = Form(None),
    subtitle: str | None = Form(None),
    content: str | None = Form(None),
    category: list[str] | None = Form(None),
    thumbnail: UploadFile | None = File(None),
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    data = PostCreate(
        **_present(title=title, subtitle=subtitle, content=content, category=category)
    )
    return {"success": True, "data": await post_service.create_post(db, identity, data, thumbnail)}


@router.put("/{post_id}")
async def update_post(
    post_id: str,
    title: str | None = Form(None),
    subtitle: str | None = Form(None),
    content: str | None = Form(None),
    category: list[str] | None = Form(None),
    status: str | None = Form(None),
    thumbnail: UploadFile | None = File(None),
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    data = PostUpdate(
        **_present(
            title=title, subtitle=subtitle, content=content, category=category, status=status
        )
    )
    post = await post_service.update_post(db, identity, post_id, data, thumbnail)
    return {"success": True, "data": post}


@router.delete("/{post_id}")
async def delete_post(
    post_id: str,
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await post_service.delete_post(db, identity, post_id)
    return {"success": True, "data": {}}


@router.put("/{post_id}/status")
async def set_post_status(
    post_id: str,
    data: PostStatusUpdate,
    identity: Identity = Depends(require_roles(ROLE_ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    return {"success": True, "data": await post_service.set_status(db, post_id, data.status)}


@router.put("/{post_id}/like")
async def like_post(
    post_id: str,
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"success": True, "data": await post_service.toggle_like(db, identity, post_id)}


@router.put("/{post_id}/dislike")
async def dislike_post(
    post_id: str,
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"success": True, "data": await post_service.toggle_dislike(db, identity, post_id)}
