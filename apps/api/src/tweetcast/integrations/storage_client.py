"""
S3/MinIO storage client for podcast audio.

Wraps boto3 for the operations the audio stages need:
- Uploading synthesized segments and the assembled episode
- Downloading segments for assembly
- Resolving ``s3://bucket/key`` locators
"""

import hashlib
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from tweetcast.core.config import Settings, get_settings
from tweetcast.core.exceptions import ExternalServiceError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def parse_s3_uri(uri: str) -> tuple[str, str]:
    """
    Split an ``s3://bucket/key`` locator.

    Raises:
        ValidationError: If the locator is not an S3 URI
    """
    if not uri.startswith("s3://"):
        raise ValidationError(f"Not an S3 locator: {uri}", field="audio_files")
    bucket, _, key = uri[len("s3://"):].partition("/")
    if not bucket or not key:
        raise ValidationError(f"Not an S3 locator: {uri}", field="audio_files")
    return bucket, key


@dataclass
class UploadResult:
    """
    Result of an upload.

    Attributes:
        bucket: S3 bucket name
        key: S3 object key
        uri: Full S3 URI (s3://bucket/key)
        etag: S3 ETag for the uploaded object
        content_type: MIME type of the uploaded content
        file_size_bytes: Size of the uploaded file
        checksum_md5: MD5 hash of the uploaded content
    """

    bucket: str
    key: str
    uri: str
    etag: str
    content_type: str
    file_size_bytes: int
    checksum_md5: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "bucket": self.bucket,
            "key": self.key,
            "uri": self.uri,
            "etag": self.etag,
            "content_type": self.content_type,
            "file_size_bytes": self.file_size_bytes,
            "checksum_md5": self.checksum_md5,
        }


class StorageClient:
    """
    S3/MinIO storage client.

    Example:
        ```python
        storage = StorageClient()
        result = storage.upload_file(
            data=audio_bytes,
            key=f"podcasts/{podcast_id}/segments/000-intro.mp3",
            content_type="audio/mpeg",
        )
        audio = storage.download_file(*parse_s3_uri(result.uri))
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        region: str | None = None,
        client: Any | None = None,
    ) -> None:
        """
        Initialize the storage client.

        Args:
            settings: Application settings instance
            endpoint_url: S3/MinIO endpoint URL (overrides settings)
            access_key: S3 access key (overrides settings)
            secret_key: S3 secret key (overrides settings)
            region: AWS region (overrides settings)
            client: Preconfigured boto3 S3 client
        """
        self._settings = settings or get_settings()
        self._endpoint_url = endpoint_url or self._settings.s3_endpoint_url
        self._region = region or self._settings.s3_region

        self._client = client or boto3.client(
            "s3",
            endpoint_url=self._endpoint_url,
            aws_access_key_id=access_key or self._settings.s3_access_key,
            aws_secret_access_key=secret_key or self._settings.s3_secret_key,
            region_name=self._region,
            config=Config(
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "adaptive"},
            ),
        )

        logger.debug(
            "Storage client initialized",
            extra={"endpoint_url": self._endpoint_url, "region": self._region},
        )

    @property
    def default_audio_bucket(self) -> str:
        return self._settings.s3_bucket_audio

    def _guess_content_type(self, key: str) -> str:
        content_type, _ = mimetypes.guess_type(key)
        return content_type or "application/octet-stream"

    def upload_file(
        self,
        data: bytes,
        key: str,
        bucket: str | None = None,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> UploadResult:
        """
        Upload bytes to S3/MinIO.

        Args:
            data: Content to upload
            key: Object key
            bucket: Bucket (defaults to the audio bucket)
            content_type: MIME type (guessed from the key if omitted)
            metadata: Object metadata

        Raises:
            ExternalServiceError: If the upload fails
        """
        bucket = bucket or self.default_audio_bucket
        content_type = content_type or self._guess_content_type(key)
        checksum = hashlib.md5(data).hexdigest()

        try:
            response = self._client.put_object(
                Bucket=bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata=metadata or {},
            )
        except ClientError as e:
            logger.error(
                "S3 upload failed",
                extra={"bucket": bucket, "key": key, "error": str(e)},
            )
            raise ExternalServiceError(
                service="S3/MinIO",
                message=f"Failed to upload file to S3: {key}",
                original_error=str(e),
            ) from e

        logger.info(
            "File uploaded successfully",
            extra={"bucket": bucket, "key": key, "size_bytes": len(data)},
        )
        return UploadResult(
            bucket=bucket,
            key=key,
            uri=f"s3://{bucket}/{key}",
            etag=str(response.get("ETag", "")).strip('"'),
            content_type=content_type,
            file_size_bytes=len(data),
            checksum_md5=checksum,
        )

    def upload_path(self, path: Path, key: str, bucket: str | None = None) -> UploadResult:
        """Upload a local file."""
        return self.upload_file(path.read_bytes(), key=key, bucket=bucket)

    def download_file(self, bucket: str, key: str) -> bytes:
        """
        Download object content.

        Raises:
            NotFoundError: If the object does not exist
            ExternalServiceError: If the download fails
        """
        try:
            response = self._client.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            error_msg = e.response.get("Error", {}).get("Message", str(e))
            if error_code in ("NoSuchKey", "NoSuchBucket", "404"):
                raise NotFoundError(
                    resource_type="S3Object",
                    resource_id=f"{bucket}/{key}",
                ) from e
            logger.error(
                "S3 download failed",
                extra={"bucket": bucket, "key": key, "error_code": error_code},
            )
            raise ExternalServiceError(
                service="S3/MinIO",
                message=f"Failed to download file from S3: {error_msg}",
                original_error=str(e),
            ) from e

    def download_to_path(self, uri: str, path: Path) -> Path:
        """Download an ``s3://`` locator to a local file."""
        bucket, key = parse_s3_uri(uri)
        path.write_bytes(self.download_file(bucket, key))
        return path

    def ensure_bucket_exists(self, bucket: str) -> None:
        """Create a bucket if it does not exist yet."""
        try:
            self._client.head_bucket(Bucket=bucket)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code not in ("404", "NoSuchBucket"):
                raise ExternalServiceError(
                    service="S3/MinIO",
                    message=f"Failed to access bucket: {bucket}",
                    original_error=str(e),
                ) from e
            create_params: dict[str, Any] = {"Bucket": bucket}
            if self._region and self._region != "us-east-1":
                create_params["CreateBucketConfiguration"] = {"LocationConstraint": self._region}
            self._client.create_bucket(**create_params)
            logger.info(f"Created bucket: {bucket}")


def get_storage_client(settings: Settings | None = None) -> StorageClient:
    """Factory function to create a storage client."""
    return StorageClient(settings=settings)
