from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from quickblog.database import get_db
from quickblog.dependencies import PaginationParams, get_current_user
from quickblog.guard import Identity
from quickblog.schemas import LoginRequest, RegisterRequest
from quickblog.services import user_service

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post("/register", status_code=201)
async def register(data: RegisterRequest, db: AsyncSession = Depends(get_db)):
    return {"success": True, **await user_service.register(db, data)}


@router.post("/login")
async def login(data: LoginRequest, db: AsyncSession = Depends(get_db)):
    return {"success": True, **await user_service.login(db, data.email, data.password)}


@router.get("/logout")
async def logout(identity: Identity = Depends(get_current_user)):
    # Tokens are stateless; the client discards its copy.
    return {"success": True, "data": {}, "message": "Logged out successfully"}


@router.get("/me")
async def me(
    pagination: PaginationParams = Depends(),
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    profile = await user_service.get_profile(db, identity, pagination.page, pagination.limit)
    return {"success": True, "user": profile["user"], "posts": profile["posts"].envelope()}
