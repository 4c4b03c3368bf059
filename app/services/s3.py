import logging
import os
import time
import uuid
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import boto3
from botocore.exceptions import ClientError

from app.core.config import settings
from app.core.errors import UpstreamError

logger = logging.getLogger(__name__)

DRAFTS_PREFIX = "drafts"
POSTS_PREFIX = "posts"
DELETE_BATCH_SIZE = 100

_NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound")


class S3Service:
    def __init__(self):
        self.s3_client = boto3.client(
            's3',
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
            region_name=settings.AWS_REGION
        )
        self.bucket_name = settings.S3_BUCKET

    def upload_draft_image(self, file_content: bytes, file_name: str, user_id: int, content_type: str = "image/jpeg") -> str:
        """
        Store an uploaded image under the user's draft folder.

        Returns the S3 key, which doubles as the image's ``publicId``.
        Draft images are moved under ``posts/`` when a post referencing them
        is created; unreferenced drafts are removed by the cleanup sweep.
        """
        file_extension = os.path.splitext(file_name)[1].lower()
        s3_key = f"{DRAFTS_PREFIX}/{user_id}/{int(time.time() * 1000)}-{uuid.uuid4().hex}{file_extension}"
        try:
            # ACL is left to the bucket policy (Object Ownership = Bucket owner enforced)
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=s3_key,
                Body=file_content,
                ContentType=content_type,
                Tagging=f"state=draft&user={user_id}",
            )
        except ClientError:
            logger.exception("Error uploading %s to S3", s3_key)
            raise UpstreamError("Failed to upload image")
        return s3_key

    def exists(self, s3_key: str) -> bool:
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=s3_key)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES:
                return False
            logger.exception("Error checking %s on S3", s3_key)
            raise UpstreamError("Failed to reach image storage")

    def delete_file(self, s3_key: str) -> bool:
        """Delete one object. Returns False when it does not exist."""
        if not self.exists(s3_key):
            return False
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=s3_key)
        except ClientError:
            logger.exception("Error deleting %s from S3", s3_key)
            raise UpstreamError("Failed to delete image")
        return True

    def move_file(self, source_key: str, target_key: str) -> None:
        try:
            self.s3_client.copy_object(
                Bucket=self.bucket_name,
                Key=target_key,
                CopySource={"Bucket": self.bucket_name, "Key": source_key},
                TaggingDirective="REPLACE",
                Tagging="state=published",
            )
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=source_key)
        except ClientError:
            logger.exception("Error moving %s to %s", source_key, target_key)
            raise UpstreamError("Failed to move image")

    def list_drafts(self) -> Iterator[Tuple[str, datetime]]:
        """Yield ``(key, last_modified)`` for every draft object."""
        paginator = self.s3_client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=f"{DRAFTS_PREFIX}/"):
                for obj in page.get("Contents", []):
                    yield obj["Key"], obj["LastModified"]
        except ClientError:
            logger.exception("Error listing drafts on S3")
            raise UpstreamError("Failed to list draft images")

    def delete_files(self, s3_keys: Iterable[str]) -> List[Dict[str, object]]:
        """Bulk delete in batches; one result entry per key, failures included."""
        keys = list(s3_keys)
        results = []
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start:start + DELETE_BATCH_SIZE]
            try:
                response = self.s3_client.delete_objects(
                    Bucket=self.bucket_name,
                    Delete={"Objects": [{"Key": key} for key in batch], "Quiet": False},
                )
            except ClientError as e:
                logger.warning("Batch delete of %d drafts failed: %s", len(batch), e)
                results.extend({"publicId": key, "success": False, "error": str(e)} for key in batch)
                continue

            errors = {err["Key"]: err.get("Message", err.get("Code")) for err in response.get("Errors", [])}
            for key in batch:
                if key in errors:
                    results.append({"publicId": key, "success": False, "error": errors[key]})
                else:
                    results.append({"publicId": key, "success": True})
        return results

    def get_public_url(self, s3_key: str) -> str:
        return f"{settings.S3_BASE_URL}/{s3_key}"

    def key_from_url(self, url: Optional[str]) -> Optional[str]:
        prefix = f"{settings.S3_BASE_URL}/"
        if url and url.startswith(prefix):
            return url[len(prefix):]
        return None

# Singleton instance
s3_service = S3Service()


def get_s3_service() -> S3Service:
    return s3_service
