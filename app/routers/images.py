from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel
from sqlmodel import Session

from app.core.config import settings
from app.db.session import get_session
from app.routers.auth import get_auth_context, require_admin
from app.services.auth import AuthContext
from app.services.images import ImageService
from app.services.s3 import S3Service, get_s3_service

router = APIRouter()


class UploadedImage(BaseModel):
    url: str
    publicId: str
    width: Optional[int] = None
    height: Optional[int] = None


def get_image_service(
    session: Session = Depends(get_session),
    storage: S3Service = Depends(get_s3_service),
) -> ImageService:
    return ImageService(session, storage=storage)


@router.post("/upload", response_model=UploadedImage)
async def upload_image(
    image: UploadFile = File(...),
    width: Optional[int] = Form(None),
    height: Optional[int] = Form(None),
    auth: AuthContext = Depends(get_auth_context),
    service: ImageService = Depends(get_image_service),
):
    """
    Upload an image for the editor.

    The file lands in the caller's draft folder and is promoted to the post
    folder when a post using it is created.
    """
    # Reject on the multipart metadata before pulling the body into memory
    service.validate_upload(image.filename, image.content_type, image.size or 0)
    content = await image.read(settings.MAX_UPLOAD_BYTES + 1)
    return service.upload(
        content,
        file_name=image.filename,
        content_type=image.content_type,
        user_id=auth.user_id,
        width=width,
        height=height,
    )


@router.post("/cleanup")
def cleanup_drafts(
    auth: AuthContext = Depends(require_admin),
    service: ImageService = Depends(get_image_service),
):
    return service.cleanup_drafts()


@router.delete("/{public_id:path}")
def delete_image(
    public_id: str,
    auth: AuthContext = Depends(require_admin),
    service: ImageService = Depends(get_image_service),
):
    return service.delete(public_id)
