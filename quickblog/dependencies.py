from fastapi import Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from quickblog import guard
from quickblog.config import settings
from quickblog.database import get_db
from quickblog.exceptions import Unauthenticated
from quickblog.guard import Identity


class PaginationParams:
    """
    Reusable FastAPI dependency that parses ``page`` / ``limit`` query
    parameters.

    Usage in a router::

        @router.get("/posts")
        async def list_posts(pagination: PaginationParams = Depends()):
            ...

    Attributes
    ----------
    page:
        1-based page number (minimum 1).
    limit:
        Number of posts per page (minimum 1). The service layer clamps it
        to ``settings.MAX_PAGE_SIZE``.
    """

    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number (1-based)."),
        limit: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            description=f"Number of posts per page (capped at {settings.MAX_PAGE_SIZE}).",
        ),
    ) -> None:
        self.page = page
        self.limit = limit


async def get_current_user(
    authorization: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
) -> Identity:
    """Resolve the bearer token or fail with 401."""
    return await guard.authenticate(db, authorization)


async def get_optional_user(
    authorization: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
) -> Identity | None:
    """
    Resolve the bearer token when one is sent. A missing or rejected token
    makes the caller anonymous instead of failing the request.
    """
    if guard.extract_bearer_token(authorization) is None:
        return None
    try:
        return await guard.authenticate(db, authorization)
    except Unauthenticated:
        return None


def require_roles(*roles: str):
    """Dependency factory: an authenticated caller whose role is in *roles*."""

    async def _checker(identity: Identity = Depends(get_current_user)) -> Identity:
        guard.authorize(identity, roles)
        return identity

    return _checker
