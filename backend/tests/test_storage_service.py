"""
Tests for the S3 storage gateway and the upload/compensation helpers.

Run with: pytest backend/tests/test_storage_service.py -v
"""
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from conftest import FakeStorage, make_files
from uplaw.core.config import settings
from uplaw.services.storage_service import S3StorageService, delete_all, upload_all
from uplaw.utils.exceptions import UploadFailedError


def client_error(code="AccessDenied", operation="PutObject"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def s3_client():
    return MagicMock()


@pytest.fixture
def s3_storage(s3_client):
    return S3StorageService(settings, s3_client=s3_client)


class TestS3StorageService:

    def test_upload_builds_key_and_url(self, s3_storage, s3_client):
        [file] = make_files("Hearing Notice (1).pdf")
        doc = s3_storage.upload(file, folder="case-123")

        assert doc.ref_id.startswith(f"{settings.S3_KEY_PREFIX}/case-123/")
        assert doc.ref_id.endswith("-hearing-notice-1.pdf")
        assert doc.url.endswith(doc.ref_id)
        assert doc.original_name == "Hearing Notice (1).pdf"
        assert doc.mimetype == "application/pdf"

        args, kwargs = s3_client.upload_fileobj.call_args
        assert args[1] == settings.S3_BUCKET_NAME
        assert args[2] == doc.ref_id
        assert kwargs["ExtraArgs"] == {"ContentType": "application/pdf"}

    def test_upload_failure(self, s3_storage, s3_client):
        s3_client.upload_fileobj.side_effect = client_error()
        with pytest.raises(UploadFailedError):
            s3_storage.upload(make_files("a.pdf")[0])

    def test_delete(self, s3_storage, s3_client):
        s3_storage.delete("uplaw_uploads/x/a.pdf")
        s3_client.delete_object.assert_called_once_with(Bucket=settings.S3_BUCKET_NAME, Key="uplaw_uploads/x/a.pdf")

    def test_delete_failure_propagates(self, s3_storage, s3_client):
        s3_client.delete_object.side_effect = client_error(operation="DeleteObject")
        with pytest.raises(ClientError):
            s3_storage.delete("missing")

    def test_health_check(self, s3_storage, s3_client):
        assert s3_storage.health_check()[0] == "ok"
        s3_client.head_bucket.side_effect = client_error("NoSuchBucket", "HeadBucket")
        status, detail = s3_storage.health_check()
        assert status == "error"
        assert "NoSuchBucket" in detail


class TestUploadAll:

    def test_no_files_is_noop(self):
        storage = FakeStorage()
        assert upload_all(storage, None) == []
        assert upload_all(storage, []) == []
        assert storage.upload_calls == 0

    def test_uploads_in_order(self):
        storage = FakeStorage()
        docs = upload_all(storage, make_files("a.pdf", "b.pdf"), folder="c1")
        assert [d.original_name for d in docs] == ["a.pdf", "b.pdf"]
        assert len(storage.objects) == 2

    def test_partial_failure_deletes_uploaded(self):
        storage = FakeStorage()
        storage.fail_on_upload = 3
        with pytest.raises(UploadFailedError):
            upload_all(storage, make_files("a.pdf", "b.pdf", "c.pdf"))
        assert storage.objects == {}
        assert len(storage.deleted) == 2


class TestDeleteAll:

    def test_keeps_going_after_failure(self):
        storage = MagicMock()
        storage.delete.side_effect = [client_error(operation="DeleteObject"), None]
        delete_all(storage, ["one", "two"])
        assert storage.delete.call_count == 2
