import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.core.errors import AuthenticationError, AuthorizationError, ConflictError, NotFoundError, UpstreamError
from app.models.post import (
    EXCERPT_MAX_LENGTH,
    AuthorRead,
    Pagination,
    Post,
    PostRead,
    PostTag,
)
from app.models.user import User
from app.services.auth import AuthContext
from app.services.query import PostQuery, list_published, single_page
from app.services.s3 import DRAFTS_PREFIX, POSTS_PREFIX, S3Service, s3_service
from app.services.validation import validate_post_create, validate_post_update

logger = logging.getLogger(__name__)

WORDS_PER_MINUTE = 265
EXCERPT_SOURCE_TYPES = ("paragraph", "heading")


def derive_excerpt(blocks: Sequence[Mapping[str, Any]]) -> str:
    for block in blocks:
        if block.get("type") in EXCERPT_SOURCE_TYPES:
            return (block.get("content") or "").strip()[:EXCERPT_MAX_LENGTH]
    return ""


def count_words(blocks: Sequence[Mapping[str, Any]]) -> int:
    return sum(len((block.get("content") or "").split()) for block in blocks)


def compute_reading_time(blocks: Sequence[Mapping[str, Any]]) -> int:
    return math.ceil(count_words(blocks) / WORDS_PER_MINUTE)


def normalize_tags(tags: Sequence[str]) -> List[str]:
    seen = []
    for tag in tags:
        tag = tag.lower()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def apply_publish_state(post: Post, published: bool, now: Optional[datetime] = None) -> None:
    """Set the publish flag; ``published_at`` records the first publication only."""
    if published and not post.published and post.published_at is None:
        post.published_at = now or datetime.now(timezone.utc)
    post.published = published


class PostService:
    def __init__(self, session: Session, storage: S3Service = None):
        self.session = session
        self.storage = storage or s3_service

    # Reads

    def list_posts(self, query: PostQuery) -> Tuple[List[Post], Pagination]:
        if query.slug:
            post = self.session.exec(
                select(Post).where(Post.slug == query.slug, Post.published == True)
            ).first()
            if not post:
                raise NotFoundError()
            return [post], single_page()
        return list_published(self.session, query)

    def get_post(self, id_or_slug: str, auth: Optional[AuthContext] = None) -> Post:
        """Lookup by numeric id or slug. Drafts are visible to their author and admins only."""
        if str(id_or_slug).isdigit():
            post = self.session.get(Post, int(id_or_slug))
        else:
            post = self.session.exec(select(Post).where(Post.slug == id_or_slug)).first()

        if not post:
            raise NotFoundError()
        if not post.published and not self._can_manage(post, auth):
            raise NotFoundError()
        return post

    def to_read(self, post: Post) -> PostRead:
        author = self.session.get(User, post.author_id)
        return PostRead(
            id=post.id,
            title=post.title,
            slug=post.slug,
            content=post.content,
            excerpt=post.excerpt,
            cover_image=post.cover_image,
            author=AuthorRead(
                id=post.author_id,
                name=author.name if author else None,
                email=author.email if author else None,
            ),
            published=post.published,
            published_at=post.published_at,
            tags=post.tags,
            reading_time=post.reading_time,
            created_at=post.created_at,
            updated_at=post.updated_at,
        )

    # Writes

    def create_post(self, payload: Any, auth: Optional[AuthContext]) -> Post:
        self._require_admin(auth)
        data = validate_post_create(payload)

        if self._slug_taken(data.slug):
            raise ConflictError("Slug already exists", details=[{"field": "slug", "message": "Slug already exists"}])

        content = self._promote_draft_images([block.to_document() for block in data.content], auth.user_id)

        post = Post(
            author_id=auth.user_id,
            title=data.title,
            slug=data.slug,
            content=content,
            excerpt=data.excerpt or derive_excerpt(content),
            cover_image=data.coverImage,
            tags=normalize_tags(data.tags),
            reading_time=compute_reading_time(content),
        )
        apply_publish_state(post, data.published)

        self._save(post, sync_tags=True)
        logger.info("Post %s created by user %s (published=%s)", post.slug, auth.user_id, post.published)
        return post

    def update_post(self, post_id: int, payload: Any, auth: Optional[AuthContext]) -> Post:
        """
        Partial update. Fields absent from the payload keep their value.

        No optimistic locking: two concurrent updates both succeed and the
        later commit wins.
        """
        if auth is None:
            raise AuthenticationError("Authentication required")
        data = validate_post_update(payload)
        fields = data.model_dump(exclude_unset=True)

        post = self.session.get(Post, post_id)
        if not post:
            raise NotFoundError()
        if not self._can_manage(post, auth):
            raise AuthorizationError("Only the author or an admin can edit this post")

        if "slug" in fields and fields["slug"] != post.slug and self._slug_taken(fields["slug"]):
            raise ConflictError("Slug already exists", details=[{"field": "slug", "message": "Slug already exists"}])

        if "title" in fields:
            post.title = data.title
        if "slug" in fields:
            post.slug = data.slug
        if "excerpt" in fields:
            post.excerpt = data.excerpt or ""
        if "coverImage" in fields:
            post.cover_image = data.coverImage
        if "content" in fields:
            excerpt_was_derived = post.excerpt == derive_excerpt(post.content)
            post.content = [block.to_document() for block in data.content]
            post.reading_time = compute_reading_time(post.content)
            if excerpt_was_derived and "excerpt" not in fields:
                post.excerpt = derive_excerpt(post.content)
        if not post.excerpt:
            post.excerpt = derive_excerpt(post.content)
        if "tags" in fields:
            post.tags = normalize_tags(data.tags)
        if "published" in fields:
            apply_publish_state(post, data.published)

        post.updated_at = datetime.now(timezone.utc)
        self._save(post, sync_tags="tags" in fields)
        return post

    def delete_post(self, post_id: int, auth: Optional[AuthContext]) -> bool:
        if auth is None:
            raise AuthenticationError("Authentication required")

        post = self.session.get(Post, post_id)
        if not post:
            raise NotFoundError()
        if not self._can_manage(post, auth):
            raise AuthorizationError("Only the author or an admin can delete this post")

        self.session.exec(delete(PostTag).where(PostTag.post_id == post.id))
        self.session.delete(post)
        self.session.commit()
        logger.info("Post %s deleted by user %s", post_id, auth.user_id)
        return True

    # Helpers

    def _require_admin(self, auth: Optional[AuthContext]) -> None:
        if auth is None:
            raise AuthenticationError("Authentication required")
        if not auth.is_admin:
            raise AuthorizationError("Admin privileges required")

    def _can_manage(self, post: Post, auth: Optional[AuthContext]) -> bool:
        # Author-or-admin
        return auth is not None and (auth.is_admin or auth.user_id == post.author_id)

    def _slug_taken(self, slug: str) -> bool:
        return self.session.exec(select(Post.id).where(Post.slug == slug)).first() is not None

    def _save(self, post: Post, sync_tags: bool) -> None:
        try:
            self.session.add(post)
            self.session.flush()
            if sync_tags:
                self.session.exec(delete(PostTag).where(PostTag.post_id == post.id))
                for tag in post.tags:
                    self.session.add(PostTag(post_id=post.id, tag=tag))
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError("Slug already exists", details=[{"field": "slug", "message": "Slug already exists"}])
        self.session.refresh(post)

    def _promote_draft_images(self, blocks: List[Dict[str, Any]], user_id: int) -> List[Dict[str, Any]]:
        """Move this user's draft images under posts/ and point the blocks at the new keys."""
        draft_prefix = f"{DRAFTS_PREFIX}/{user_id}/"
        promoted = []
        for block in blocks:
            public_id = block.get("publicId") or ""
            if block["type"] != "image" or not public_id.startswith(draft_prefix):
                promoted.append(block)
                continue

            target = f"{POSTS_PREFIX}/{user_id}/{public_id[len(draft_prefix):]}"
            try:
                self.storage.move_file(public_id, target)
            except UpstreamError:
                logger.warning("Keeping draft image %s, promotion failed", public_id)
                promoted.append(block)
                continue
            promoted.append({**block, "publicId": target, "url": self.storage.get_public_url(target)})
        return promoted
