"""
Query/filter engine for the public post feed.

Turns ``page``/``limit``/``tag``/``search`` parameters into SQL conditions
over published posts and computes the pagination block returned with every
listing.
"""

from typing import Any, List, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy import exists, func, or_
from sqlmodel import Session, select

from app.models.post import Pagination, Post, PostTag

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 50


def _to_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class PostQuery(BaseModel):
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    tag: Optional[str] = None
    search: Optional[str] = None
    slug: Optional[str] = None

    @classmethod
    def from_params(cls, page: Any = None, limit: Any = None, tag: Optional[str] = None,
                    search: Optional[str] = None, slug: Optional[str] = None) -> "PostQuery":
        """Clamp raw request parameters: page >= 1, 1 <= limit <= 50."""
        return cls(
            page=max(1, _to_int(page, DEFAULT_PAGE)),
            limit=min(MAX_LIMIT, max(1, _to_int(limit, DEFAULT_LIMIT))),
            tag=tag.strip().lower() if tag and tag.strip() else None,
            search=search.strip() if search and search.strip() else None,
            slug=slug or None,
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def _has_tag(condition):
    return exists().where(PostTag.post_id == Post.id, condition)


def build_conditions(query: PostQuery) -> list:
    conditions = [Post.published == True]

    if query.tag:
        conditions.append(_has_tag(PostTag.tag == query.tag))

    if query.search:
        pattern = f"%{_escape_like(query.search)}%"
        conditions.append(or_(
            Post.title.ilike(pattern, escape="\\"),
            Post.excerpt.ilike(pattern, escape="\\"),
            _has_tag(PostTag.tag.ilike(pattern, escape="\\")),
        ))

    return conditions


def paginate(total: int, page: int, limit: int) -> Pagination:
    return Pagination(page=page, limit=limit, total=total, totalPages=(total + limit - 1) // limit)


def single_page() -> Pagination:
    return Pagination(page=1, limit=1, total=1, totalPages=1)


def list_published(session: Session, query: PostQuery) -> Tuple[List[Post], Pagination]:
    conditions = build_conditions(query)

    total = session.exec(select(func.count(Post.id)).where(*conditions)).one()

    posts = session.exec(
        select(Post)
        .where(*conditions)
        .order_by(Post.published_at.desc(), Post.id.asc())
        .offset(query.offset)
        .limit(query.limit)
    ).all()

    return list(posts), paginate(total, query.page, query.limit)
