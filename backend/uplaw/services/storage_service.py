# uplaw/services/storage_service.py
"""
Document storage gateway.

Uploaded evidence is treated as opaque blobs: `upload` returns a stable
reference id plus URL, `delete` removes a blob by reference id. The S3
implementation is built once at process start and passed down to handlers.
"""
from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass
from typing import BinaryIO, Iterable, List, Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from uplaw.core.config import Settings
from uplaw.core.logger import logger
from uplaw.utils.exceptions import UploadFailedError
from uplaw.utils.helpers import safe_filename


@dataclass
class IncomingFile:
    """A file received with a request, not yet stored."""
    filename: str
    content_type: str
    fileobj: BinaryIO
    size: Optional[int] = None


@dataclass(frozen=True)
class StoredDocument:
    """Reference to an uploaded blob, persisted inside timeline entries."""
    ref_id: str
    url: str
    original_name: str
    file_size: Optional[int]
    mimetype: str

    def to_dict(self) -> dict:
        return asdict(self)


class StorageGateway(Protocol):
    def upload(self, file: IncomingFile, folder: str = "") -> StoredDocument: ...

    def delete(self, ref_id: str) -> None: ...


class S3StorageService:
    """
    Storage gateway backed by AWS S3.
    """

    def __init__(self, settings: Settings, s3_client=None):
        client_kwargs = {"region_name": settings.AWS_REGION}
        if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
            client_kwargs["aws_access_key_id"] = settings.AWS_ACCESS_KEY_ID
            client_kwargs["aws_secret_access_key"] = settings.AWS_SECRET_ACCESS_KEY
        self.s3_client = s3_client or boto3.client("s3", **client_kwargs)
        self.bucket = settings.S3_BUCKET_NAME
        self.region = settings.AWS_REGION
        self.prefix = settings.S3_KEY_PREFIX
        self.public_base_url = settings.S3_PUBLIC_BASE_URL.rstrip("/")

    def _build_key(self, filename: str, folder: str) -> str:
        parts = [p for p in (self.prefix, folder.strip("/")) if p]
        parts.append(f"{uuid.uuid4().hex}-{safe_filename(filename)}")
        return "/".join(parts)

    def object_url(self, s3_key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{s3_key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{s3_key}"

    def upload(self, file: IncomingFile, folder: str = "") -> StoredDocument:
        """
        Upload a file object and return its reference.
        """
        s3_key = self._build_key(file.filename, folder)
        content_type = file.content_type or "application/octet-stream"
        try:
            self.s3_client.upload_fileobj(
                file.fileobj,
                self.bucket,
                s3_key,
                ExtraArgs={"ContentType": content_type},
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload {file.filename} to s3://{self.bucket}/{s3_key}: {str(e)}")
            raise UploadFailedError("Failed to upload file to cloud storage") from e

        logger.info(f"Object uploaded: {s3_key}")
        return StoredDocument(
            ref_id=s3_key,
            url=self.object_url(s3_key),
            original_name=file.filename,
            file_size=file.size,
            mimetype=content_type,
        )

    def health_check(self) -> tuple[str, str]:
        """Returns (status, detail). Status is 'ok' or 'error'."""
        try:
            self.s3_client.head_bucket(Bucket=self.bucket)
            return "ok", f"Bucket '{self.bucket}' accessible"
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            return "error", f"S3: {code} - {str(e)}"
        except BotoCoreError as e:
            return "error", f"S3: {str(e)}"

    def delete(self, ref_id: str) -> None:
        """
        Delete an object from S3.
        """
        try:
            self.s3_client.delete_object(Bucket=self.bucket, Key=ref_id)
            logger.info(f"Object deleted: {ref_id}")
        except ClientError as e:
            logger.error(f"Failed to delete object: {str(e)}")
            raise


def delete_all(storage: StorageGateway, ref_ids: Iterable[str]) -> None:
    """
    Compensating delete for blobs uploaded by a request that did not commit.

    Per-blob failures are logged and skipped so the error that triggered the
    rollback is the one that reaches the caller.
    """
    for ref_id in ref_ids:
        try:
            storage.delete(ref_id)
            logger.warning(f"Rolled back upload {ref_id}")
        except Exception as e:
            logger.error(f"Rollback failed to delete {ref_id} from storage: {str(e)}")


def upload_all(storage: StorageGateway, files: Optional[Iterable[IncomingFile]], folder: str = "") -> List[StoredDocument]:
    """
    Upload every file in order. If any upload fails, the ones that already
    succeeded are deleted before the error propagates.
    """
    uploaded: List[StoredDocument] = []
    if not files:
        return uploaded

    try:
        for file in files:
            uploaded.append(storage.upload(file, folder=folder))
    except Exception:
        delete_all(storage, [doc.ref_id for doc in uploaded])
        raise
    return uploaded
