from typing import Any, Dict, List, Optional, Annotated
from datetime import datetime
from sqlmodel import Field, SQLModel, Column
from sqlalchemy import JSON
from pydantic import BaseModel, ConfigDict, StringConstraints, field_validator
from pydantic import Field as PydanticField
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from app.models.blocks import AbsoluteUrl, ContentBlock
from app.models.user import utcnow

TITLE_MAX_LENGTH = 120
EXCERPT_MAX_LENGTH = 300
TAG_MAX_LENGTH = 25
MAX_TAGS = 10
SLUG_PATTERN = r"^[a-z0-9-]+$"


class Post(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    # Author, fixed at creation
    author_id: int = Field(foreign_key="user.id", index=True)

    title: str = Field(index=True)
    slug: str = Field(unique=True, index=True)
    content: List[Dict[str, Any]] = Field(default=[], sa_column=Column(JSON))  # block documents, render order
    excerpt: str = ""
    cover_image: Optional[str] = None
    tags: List[str] = Field(default=[], sa_column=Column(JSON))  # display order

    # Status
    published: bool = Field(default=False, index=True)
    published_at: Optional[datetime] = Field(default=None, index=True)  # first publication only
    reading_time: int = 0

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class PostTag(SQLModel, table=True):
    """Lower-cased tag index used by tag filtering and search."""
    post_id: int = Field(foreign_key="post.id", primary_key=True)
    tag: str = Field(primary_key=True, index=True)


# Request models

Tag = Annotated[str, StringConstraints(strip_whitespace=True, to_lower=True, max_length=TAG_MAX_LENGTH)]


class PostCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = PydanticField(min_length=1, max_length=TITLE_MAX_LENGTH)
    slug: str = PydanticField(pattern=SLUG_PATTERN)
    content: List[ContentBlock] = PydanticField(min_length=1)
    excerpt: Optional[str] = PydanticField(None, max_length=EXCERPT_MAX_LENGTH)
    coverImage: Optional[AbsoluteUrl] = None
    tags: List[Tag] = PydanticField(default_factory=list, max_length=MAX_TAGS)
    published: bool = False


class PostUpdate(BaseModel):
    """Partial update. Only fields present in the payload are applied."""
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = PydanticField(None, min_length=1, max_length=TITLE_MAX_LENGTH)
    slug: Optional[str] = PydanticField(None, pattern=SLUG_PATTERN)
    content: Optional[List[ContentBlock]] = PydanticField(None, min_length=1)
    excerpt: Optional[str] = PydanticField(None, max_length=EXCERPT_MAX_LENGTH)
    coverImage: Optional[AbsoluteUrl] = None
    tags: Optional[List[Tag]] = PydanticField(None, max_length=MAX_TAGS)
    published: Optional[bool] = None

    @field_validator("title", "slug", "content", "tags", "published", mode="before")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise PydanticCustomError("null_forbidden", "cannot be null")
        return v


# Response models

class AuthorRead(BaseModel):
    id: int
    name: Optional[str] = None
    email: Optional[str] = None


class PostRead(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    title: str
    slug: str
    content: List[Dict[str, Any]]
    excerpt: str
    cover_image: Optional[str] = None
    author: AuthorRead
    published: bool
    published_at: Optional[datetime] = None
    tags: List[str]
    reading_time: int
    created_at: datetime
    updated_at: datetime


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class PaginatedPosts(BaseModel):
    data: List[PostRead]
    pagination: Pagination
