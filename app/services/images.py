import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

from sqlmodel import Session, select

from app.core.config import settings
from app.core.errors import NotFoundError, ValidationError
from app.models.post import Post
from app.services.s3 import S3Service, s3_service

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp", "image/jpg")


class ImageService:
    def __init__(self, session: Session, storage: S3Service = None):
        self.session = session
        self.storage = storage or s3_service

    def validate_upload(self, file_name: Optional[str], content_type: Optional[str], size: int) -> None:
        details = []
        if not file_name:
            details.append({"field": "name", "message": "Image name is required"})
        if content_type not in ALLOWED_IMAGE_TYPES:
            details.append({"field": "type", "message": "Only JPEG, PNG, GIF, or WEBP images are allowed"})
        if size > settings.MAX_UPLOAD_BYTES:
            limit_mb = settings.MAX_UPLOAD_BYTES // (1024 * 1024)
            details.append({"field": "size", "message": f"Image size must be less than {limit_mb}MB"})
        if details:
            raise ValidationError(details, message="Invalid image upload")

    def upload(self, content: bytes, file_name: str, content_type: str, user_id: int,
               width: Optional[int] = None, height: Optional[int] = None) -> Dict[str, object]:
        self.validate_upload(file_name, content_type, len(content))
        public_id = self.storage.upload_draft_image(content, file_name, user_id, content_type)
        logger.info("User %s uploaded draft image %s", user_id, public_id)
        return {
            "url": self.storage.get_public_url(public_id),
            "publicId": public_id,
            "width": width,
            "height": height,
        }

    def delete(self, public_id: str) -> Dict[str, object]:
        if not self.storage.delete_file(public_id):
            raise NotFoundError("The specified image was not found")
        return {"success": True, "publicId": public_id}

    def referenced_keys(self) -> Set[str]:
        """Storage keys referenced by any post body or cover image."""
        keys = set()
        for content, cover_image in self.session.exec(select(Post.content, Post.cover_image)).all():
            for block in content or []:
                if block.get("type") != "image":
                    continue
                if block.get("publicId"):
                    keys.add(block["publicId"])
                key = self.storage.key_from_url(block.get("url"))
                if key:
                    keys.add(key)
            cover_key = self.storage.key_from_url(cover_image)
            if cover_key:
                keys.add(cover_key)
        return keys

    def cleanup_drafts(self, now: Optional[datetime] = None) -> Dict[str, object]:
        """Delete draft uploads older than the retention window that no post references."""
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=settings.DRAFT_RETENTION_DAYS)
        used = self.referenced_keys()

        total = 0
        stale: List[str] = []
        for key, last_modified in self.storage.list_drafts():
            total += 1
            if last_modified.tzinfo is None:
                last_modified = last_modified.replace(tzinfo=timezone.utc)
            if key not in used and last_modified < cutoff:
                stale.append(key)

        results = self.storage.delete_files(stale)
        deleted = sum(1 for r in results if r["success"])
        logger.info("Draft cleanup: %d of %d drafts removed, %d failed", deleted, total, len(results) - deleted)
        return {
            "deleted": deleted,
            "failed": len(results) - deleted,
            "total": total,
            "details": results,
        }
