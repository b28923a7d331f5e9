"""S3-compatible blob store for uploaded statement frames (AWS S3, MinIO, R2)."""

import boto3
from botocore.exceptions import ClientError

from tracker.core.settings import Settings, get_settings
from tracker.core.utils import get_logger

logger = get_logger("card-tracker.blobs")

_MISSING_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}


def _is_missing(exc: ClientError) -> bool:
    return str(exc.response.get("Error", {}).get("Code")) in _MISSING_CODES


class S3FileService:
    """Frame blob operations against one bucket; the bucket is created on first use if absent."""

    def __init__(self, settings: Settings | None = None) -> None:
        """Build the S3 client from settings and make sure the frames bucket exists."""
        settings = settings or get_settings()
        self.s3 = boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            aws_access_key_id=settings.S3_ACCESS_KEY,
            aws_secret_access_key=settings.S3_SECRET_KEY,
        )
        self.bucket = settings.S3_BUCKET
        self.ensure_bucket()

    def ensure_bucket(self) -> None:
        """Create the bucket when HEAD reports it missing; other errors propagate."""
        try:
            self.s3.head_bucket(Bucket=self.bucket)
        except ClientError as exc:
            if not _is_missing(exc):
                raise
            logger.info(f"Creating bucket {self.bucket}")
            self.s3.create_bucket(Bucket=self.bucket)

    def upload_fileobj(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        """Store `data` under `key`."""
        self.s3.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)

    def download_fileobj(self, key: str) -> bytes:
        """Fetch the bytes stored under `key`.

        Raises:
            FileNotFoundError: if no blob is stored under `key`.
        """
        try:
            obj = self.s3.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _is_missing(exc):
                msg = f"Frame {key} not found in bucket {self.bucket}"
                raise FileNotFoundError(msg) from exc
            raise
        return obj["Body"].read()

    def delete_fileobj(self, key: str) -> None:
        """Delete the blob under `key`; S3 treats deleting a missing key as success."""
        self.s3.delete_object(Bucket=self.bucket, Key=key)
