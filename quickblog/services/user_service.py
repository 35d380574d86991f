"""
User service - registration, login and the caller's own profile.

Passwords are stored as bcrypt hashes and never leave this module; every
serialised user omits ``password_hash``.
"""
import logging

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from quickblog.config import settings
from quickblog.exceptions import Unauthenticated, ValidationError
from quickblog.guard import Identity
from quickblog.models import ROLE_USER, ROLES, User
from quickblog.schemas import RegisterRequest
from quickblog.security import hash_password, issue_token, verify_password
from quickblog.services import post_service

logger = logging.getLogger(__name__)


def user_to_dict(user) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "role": user.role,
    }


def _session_payload(user: User) -> dict:
    return {"token": issue_token(user.id), "user": user_to_dict(user)}


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def create_user(
    db: AsyncSession,
    username: str,
    email: str,
    password: str,
    role: str = ROLE_USER,
) -> User:
    """
    Insert a user with a hashed password.

    Raises ValidationError when the username or email is already taken.
    """
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    email = email.strip().lower()

    taken = await db.execute(
        select(User.id).where(or_(User.username == username, User.email == email))
    )
    if taken.first() is not None:
        raise ValidationError("A user with this username or email already exists")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise ValidationError("A user with this username or email already exists") from exc
    return user


async def register(db: AsyncSession, data: RegisterRequest) -> dict:
    """Create an ordinary user and return ``{"token", "user"}``."""
    user = await create_user(db, data.username, data.email, data.password)
    logger.info("Registered user %s (%s)", user.id, user.username)
    return _session_payload(user)


async def login(db: AsyncSession, email: str | None, password: str | None) -> dict:
    if not email or not password:
        raise ValidationError("Please provide an email and password")

    result = await db.execute(select(User).where(User.email == email.strip().lower()))
    user = result.scalar_one_or_none()
    if user is None or not verify_password(password, user.password_hash):
        logger.info("Failed login for %s", email)
        raise Unauthenticated("Invalid credentials")
    return _session_payload(user)


async def get_profile(
    db: AsyncSession,
    identity: Identity,
    page: int = 1,
    limit: int = settings.DEFAULT_PAGE_SIZE,
) -> dict:
    """The caller together with one page of their own posts, drafts included."""
    posts = await post_service.list_by_author(db, identity, identity.id, page, limit)
    return {
        "user": user_to_dict(identity),
        "posts": posts,
    }
