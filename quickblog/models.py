from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quickblog.config import settings
from quickblog.database import Base

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)

STATUS_DRAFT = "Draft"
STATUS_PUBLISHED = "Published"
STATUSES = (STATUS_DRAFT, STATUS_PUBLISHED)

# Primary keys are 32-bit INTEGER columns.
MAX_ID = 2**31 - 1

# ---------------------------------------------------------------------------
# Association tables: Post <-> User reactions (a row means membership)
# ---------------------------------------------------------------------------
post_likes = Table(
    "post_likes",
    Base.metadata,
    Column("post_id", Integer, ForeignKey("posts.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id"), primary_key=True),
)

post_dislikes = Table(
    "post_dislikes",
    Base.metadata,
    Column("post_id", Integer, ForeignKey("posts.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id"), primary_key=True),
)


# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default=ROLE_USER, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    posts: Mapped[List["Post"]] = relationship("Post", back_populates="author", lazy="raise")


# ---------------------------------------------------------------------------
# Post
# ---------------------------------------------------------------------------
class Post(Base):
    __tablename__ = "posts"

    __table_args__ = (
        # Author's own posts, newest first (my-blogs, profile)
        Index("ix_posts_author_id_created_at", "author_id", "created_at"),
        # Public feed
        Index("ix_posts_status_created_at", "status", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    subtitle: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    thumbnail: Mapped[str] = mapped_column(String(500), default=settings.DEFAULT_THUMBNAIL, nullable=False)
    category: Mapped[List[str]] = mapped_column(JSON, default=lambda: ["General"], nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=STATUS_DRAFT, nullable=False)
    comment_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    author_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )

    # lazy="raise" everywhere; services choose joinedload/selectinload explicitly.
    # Comments are removed by the service (and the FK cascade) before a post
    # is deleted, so the unit of work never has to load them.
    author: Mapped["User"] = relationship("User", back_populates="posts", lazy="raise")
    comments: Mapped[List["Comment"]] = relationship(
        "Comment", back_populates="post", lazy="raise", passive_deletes=True
    )
    liked_by: Mapped[List["User"]] = relationship(
        "User", secondary=post_likes, lazy="raise", viewonly=True
    )
    disliked_by: Mapped[List["User"]] = relationship(
        "User", secondary=post_dislikes, lazy="raise", viewonly=True
    )


# ---------------------------------------------------------------------------
# Comment
# ---------------------------------------------------------------------------
class Comment(Base):
    __tablename__ = "comments"

    __table_args__ = (
        Index("ix_comments_post_id_created_at", "post_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    post_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)

    post: Mapped["Post"] = relationship("Post", back_populates="comments", lazy="raise")
    author: Mapped["User"] = relationship("User", lazy="raise")
