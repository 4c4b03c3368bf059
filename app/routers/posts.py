from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from pydantic import BaseModel
from sqlmodel import Session

from app.db.session import get_session
from app.models.post import PaginatedPosts, PostRead
from app.routers.auth import get_auth_context_optional
from app.services.auth import AuthContext
from app.services.post import PostService
from app.services.query import PostQuery
from app.services.renderer import RenderNode, render_content
from app.services.s3 import S3Service, get_s3_service

router = APIRouter()


class RenderedPost(BaseModel):
    post: PostRead
    nodes: List[RenderNode]


def get_post_service(
    session: Session = Depends(get_session),
    storage: S3Service = Depends(get_s3_service),
) -> PostService:
    return PostService(session, storage=storage)


@router.get("", response_model=PaginatedPosts)
def list_posts(
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    tag: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    slug: Optional[str] = Query(None),
    service: PostService = Depends(get_post_service),
):
    """
    Published posts, newest first.

    ``page`` and ``limit`` are clamped rather than rejected. ``slug`` short
    circuits to a single-post page.
    """
    query = PostQuery.from_params(page=page, limit=limit, tag=tag, search=search, slug=slug)
    posts, pagination = service.list_posts(query)
    return {"data": [service.to_read(post) for post in posts], "pagination": pagination}


@router.post("", response_model=PostRead, status_code=status.HTTP_201_CREATED)
def create_post(
    payload: Any = Body(...),
    auth: Optional[AuthContext] = Depends(get_auth_context_optional),
    service: PostService = Depends(get_post_service),
):
    post = service.create_post(payload, auth)
    return service.to_read(post)


@router.get("/{id_or_slug}", response_model=PostRead)
def read_post(
    id_or_slug: str,
    auth: Optional[AuthContext] = Depends(get_auth_context_optional),
    service: PostService = Depends(get_post_service),
):
    return service.to_read(service.get_post(id_or_slug, auth))


@router.get("/{id_or_slug}/rendered", response_model=RenderedPost)
def read_rendered_post(
    id_or_slug: str,
    auth: Optional[AuthContext] = Depends(get_auth_context_optional),
    service: PostService = Depends(get_post_service),
):
    post = service.get_post(id_or_slug, auth)
    return {"post": service.to_read(post), "nodes": render_content(post.content)}


@router.put("/{post_id}", response_model=PostRead)
def update_post(
    post_id: int,
    payload: Any = Body(...),
    auth: Optional[AuthContext] = Depends(get_auth_context_optional),
    service: PostService = Depends(get_post_service),
):
    post = service.update_post(post_id, payload, auth)
    return service.to_read(post)


@router.delete("/{post_id}")
def delete_post(
    post_id: int,
    auth: Optional[AuthContext] = Depends(get_auth_context_optional),
    service: PostService = Depends(get_post_service),
):
    return {"success": service.delete_post(post_id, auth)}
