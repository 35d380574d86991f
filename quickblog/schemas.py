from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

DEFAULT_CATEGORY = ["General"]


def _normalise_category(value):
    """
    Accept a list or a comma separated string and return a clean list.

    An empty result falls back to the default category so a post is never
    left without one.
    """
    if value is None:
        return value
    if isinstance(value, str):
        value = [value]
    names: list[str] = []
    for item in value:
        for part in str(item).split(","):
            part = part.strip()
            if part and part not in names:
                names.append(part)
    return names or list(DEFAULT_CATEGORY)


# --- Auth ---

class RegisterRequest(BaseModel):
    username: str = Field(min_length=1, max_length=50)
    email: EmailStr
    # Passwords are hashed exactly as sent; login compares them unstripped.
    password: str = Field(min_length=6, max_length=128)

    @field_validator("username", "email", mode="before")
    @classmethod
    def strip_identifiers(cls, value):
        return value.strip() if isinstance(value, str) else value


class LoginRequest(BaseModel):
    email: str | None = None
    password: str | None = None


# --- Post ---

class PostCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=100)
    subtitle: str | None = Field(None, max_length=200)
    content: str = Field(min_length=1)
    category: list[str] = Field(default_factory=lambda: list(DEFAULT_CATEGORY))

    @field_validator("category", mode="before")
    @classmethod
    def split_category(cls, value):
        return _normalise_category(value)


class PostUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str | None = Field(None, min_length=1, max_length=100)
    subtitle: str | None = Field(None, max_length=200)
    content: str | None = Field(None, min_length=1)
    category: list[str] | None = None
    status: Literal["Draft", "Published"] | None = None

    @field_validator("category", mode="before")
    @classmethod
    def split_category(cls, value):
        return _normalise_category(value)


class PostStatusUpdate(BaseModel):
    status: Literal["Draft", "Published"]


# --- Comment ---

class CommentCreate(BaseModel):
    content: str = ""


class CommentUpdate(BaseModel):
    content: str = ""


# --- Pagination ---

class PostPage(BaseModel):
    items: list[dict]
    page: int
    limit: int
    total_pages: int
    total_count: int

    def envelope(self) -> dict:
        """Render the page the way list endpoints return it."""
        return {
            "data": self.items,
            "totalPages": self.total_pages,
            "currentPage": self.page,
            "totalPosts": self.total_count,
        }
