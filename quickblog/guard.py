"""
Access guard: resolves bearer tokens to identities and holds the single
ownership-or-admin predicate used by every mutating service call.
"""
import logging
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quickblog.exceptions import Forbidden, Unauthenticated
from quickblog.models import ROLE_ADMIN, User
from quickblog.security import verify_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """The authenticated caller. Never carries the password hash."""

    id: int
    username: str
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @classmethod
    def from_user(cls, user: User) -> "Identity":
        return cls(id=user.id, username=user.username, email=user.email, role=user.role)


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from an ``Authorization: Bearer <token>`` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


async def authenticate(db: AsyncSession, authorization: str | None) -> Identity:
    token = extract_bearer_token(authorization)
    if token is None:
        raise Unauthenticated("Not authorized to access this route (No token).")

    user_id = verify_token(token)

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        logger.info("Token presented for missing user id=%s", user_id)
        raise Unauthenticated("Not authorized, user not found.")
    return Identity.from_user(user)


def authorize(identity: Identity, allowed_roles: Iterable[str]) -> None:
    if identity.role not in allowed_roles:
        raise Forbidden(f"User role {identity.role} is not authorized to access this route.")


def can_modify(identity: Identity | None, author_id: int) -> bool:
    if identity is None:
        return False
    return identity.id == author_id or identity.is_admin


def ensure_owner_or_admin(identity: Identity | None, author_id: int, message: str) -> None:
    if not can_modify(identity, author_id):
        raise Forbidden(message)
