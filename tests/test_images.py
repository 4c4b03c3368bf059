"""
Tests for image upload, deletion and the draft cleanup sweep.
"""
from datetime import datetime, timedelta, timezone

import pytest
from botocore.exceptions import ClientError

from app.core.errors import NotFoundError, UpstreamError, ValidationError
from app.services.images import ImageService

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


@pytest.fixture
def image_service(session, storage):
    return ImageService(session, storage=storage)


def not_found(operation):
    return ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, operation)


def test_upload_stores_draft(image_service, s3_client):
    result = image_service.upload(b"\x89PNG", "Cat.PNG", "image/png", user_id=4, width=640, height=480)

    key = result["publicId"]
    assert key.startswith("drafts/4/")
    assert key.endswith(".png")
    assert result["url"] == image_service.storage.get_public_url(key)
    assert (result["width"], result["height"]) == (640, 480)
    s3_client.put_object.assert_called_once()
    assert s3_client.put_object.call_args.kwargs["ContentType"] == "image/png"


def test_uploads_in_same_millisecond_get_distinct_keys(image_service, monkeypatch):
    monkeypatch.setattr("app.services.s3.time.time", lambda: 1700000000.0)
    first = image_service.upload(b"a", "a.png", "image/png", user_id=1)["publicId"]
    second = image_service.upload(b"b", "b.png", "image/png", user_id=1)["publicId"]

    assert first != second
    assert first.startswith("drafts/1/1700000000000-")
    assert second.startswith("drafts/1/1700000000000-")


def test_upload_rejects_every_violation(image_service, s3_client, monkeypatch):
    monkeypatch.setattr("app.services.images.settings.MAX_UPLOAD_BYTES", 4)
    with pytest.raises(ValidationError) as exc_info:
        image_service.upload(b"too large", "notes.txt", "text/plain", user_id=1)

    assert exc_info.value.fields == ["type", "size"]
    assert exc_info.value.details[0]["message"] == "Only JPEG, PNG, GIF, or WEBP images are allowed"
    s3_client.put_object.assert_not_called()


def test_upload_size_message():
    service = ImageService(session=None)
    with pytest.raises(ValidationError) as exc_info:
        service.validate_upload("big.jpg", "image/jpeg", 11 * 1024 * 1024)
    assert exc_info.value.details == [{"field": "size", "message": "Image size must be less than 10MB"}]


def test_upload_storage_failure(image_service, s3_client):
    s3_client.put_object.side_effect = ClientError({"Error": {"Code": "500"}}, "PutObject")
    with pytest.raises(UpstreamError) as exc_info:
        image_service.upload(b"x", "a.gif", "image/gif", user_id=1)
    assert exc_info.value.status_code == 502


def test_delete_image(image_service, s3_client):
    assert image_service.delete("posts/1/a.png") == {"success": True, "publicId": "posts/1/a.png"}
    s3_client.delete_object.assert_called_once_with(Bucket=image_service.storage.bucket_name, Key="posts/1/a.png")


def test_delete_missing_image(image_service, s3_client):
    s3_client.head_object.side_effect = not_found("HeadObject")
    with pytest.raises(NotFoundError) as exc_info:
        image_service.delete("posts/1/missing.png")
    assert exc_info.value.message == "The specified image was not found"
    s3_client.delete_object.assert_not_called()


def test_cleanup_removes_only_old_unreferenced_drafts(image_service, s3_client, post_service, admin_auth, post_payload):
    used_key = "drafts/9/used.png"
    post_service.create_post(post_payload(content=[
        {"type": "image", "url": image_service.storage.get_public_url(used_key), "publicId": used_key},
    ]), admin_auth)

    old = NOW - timedelta(days=8)
    paginator = s3_client.get_paginator.return_value
    paginator.paginate.return_value = [
        {"Contents": [
            {"Key": "drafts/1/old.png", "LastModified": old},
            {"Key": "drafts/1/fresh.png", "LastModified": NOW - timedelta(days=1)},
            {"Key": used_key, "LastModified": old},
        ]},
        {"Contents": [{"Key": "drafts/2/broken.png", "LastModified": old}]},
    ]
    s3_client.delete_objects.return_value = {
        "Deleted": [{"Key": "drafts/1/old.png"}],
        "Errors": [{"Key": "drafts/2/broken.png", "Code": "AccessDenied", "Message": "Access Denied"}],
    }

    result = image_service.cleanup_drafts(now=NOW)

    assert result["total"] == 4
    assert result["deleted"] == 1
    assert result["failed"] == 1
    assert result["details"] == [
        {"publicId": "drafts/1/old.png", "success": True},
        {"publicId": "drafts/2/broken.png", "success": False, "error": "Access Denied"},
    ]
    deleted = s3_client.delete_objects.call_args.kwargs["Delete"]["Objects"]
    assert deleted == [{"Key": "drafts/1/old.png"}, {"Key": "drafts/2/broken.png"}]


def test_cleanup_deletes_in_batches(image_service, s3_client):
    old = NOW - timedelta(days=30)
    s3_client.get_paginator.return_value.paginate.return_value = [
        {"Contents": [{"Key": f"drafts/1/{i}.png", "LastModified": old} for i in range(250)]},
    ]
    s3_client.delete_objects.return_value = {}

    result = image_service.cleanup_drafts(now=NOW)

    assert result["deleted"] == 250
    batch_sizes = [len(c.kwargs["Delete"]["Objects"]) for c in s3_client.delete_objects.call_args_list]
    assert batch_sizes == [100, 100, 50]


def test_cleanup_with_no_drafts(image_service, s3_client):
    s3_client.get_paginator.return_value.paginate.return_value = [{}]
    assert image_service.cleanup_drafts(now=NOW) == {"deleted": 0, "failed": 0, "total": 0, "details": []}
    s3_client.delete_objects.assert_not_called()
