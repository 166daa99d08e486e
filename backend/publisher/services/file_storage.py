# backend/publisher/services/file_storage.py
"""
📦 SCHEDULED PUBLISHER - File Storage Service
S3-compatible object storage (AWS S3 or Cloudflare R2) for temporary media
"""

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from typing import Optional
import logging
import re

from ..config import settings
from ..exceptions import StorageError, StorageCleanupError

logger = logging.getLogger(__name__)

_SCHEME_HOST = re.compile(r"^https?://[^/]+/")


class FileStorageService:
    """store(key, bytes) -> url, fetch(key) -> bytes, delete(key)"""

    def __init__(
        self,
        bucket_name: Optional[str] = None,
        public_url: Optional[str] = None,
        s3_client=None,
    ):
        self.bucket_name = bucket_name or settings.S3_BUCKET_NAME
        self.public_url = public_url if public_url is not None else settings.STORAGE_PUBLIC_URL
        self._s3_client = s3_client

    @property
    def s3_client(self):
        # Created lazily so importing the service never touches the network
        if self._s3_client is None:
            self._s3_client = boto3.client(
                's3',
                endpoint_url=settings.S3_ENDPOINT_URL,
                aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                region_name=settings.AWS_REGION,
                config=Config(
                    connect_timeout=settings.PLATFORM_HTTP_TIMEOUT_SECONDS,
                    read_timeout=settings.PLATFORM_HTTP_TIMEOUT_SECONDS,
                    retries={'max_attempts': 3},
                ),
            )
        return self._s3_client

    # ========================================================================
    # OBJECT OPERATIONS
    # ========================================================================

    async def store(self, key: str, data: bytes, content_type: str = 'video/mp4') -> str:
        """Upload bytes and return the object's URL"""

        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"💥 Storage upload failed for {key}: {e}")
            raise StorageError(f"Failed to store {key}: {e}")

        return self.url_for(key)

    async def fetch(self, key: str) -> bytes:
        """Download an object into memory"""

        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
            return response['Body'].read()
        except ClientError as e:
            code = e.response.get('Error', {}).get('Code')
            if code in ('NoSuchKey', '404'):
                raise StorageError("Video file not found in storage", details={"key": key})
            logger.error(f"💥 Storage download failed for {key}: {e}")
            raise StorageError(f"Failed to fetch {key}: {e}")
        except BotoCoreError as e:
            logger.error(f"💥 Storage download failed for {key}: {e}")
            raise StorageError(f"Failed to fetch {key}: {e}")

    async def delete(self, key: str) -> None:
        """Delete an object; raises StorageCleanupError so callers can log and move on"""

        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StorageCleanupError(f"Failed to delete {key}: {e}", details={"key": key})

    # ========================================================================
    # URLS
    # ========================================================================

    def url_for(self, key: str) -> str:
        if self.public_url:
            return f"{self.public_url}/{key}"
        return f"https://{self.bucket_name}.s3.amazonaws.com/{key}"

    def is_storage_url(self, url: str) -> bool:
        return bool(self.public_url) and url.startswith(f"{self.public_url}/")

    def key_from_url(self, url: str) -> str:
        """Derive the object key from a public media URL"""

        if self.is_storage_url(url):
            key = url[len(self.public_url) + 1:]
        else:
            key = _SCHEME_HOST.sub('', url, count=1)

        key = key.split('?', 1)[0]
        if not key:
            raise StorageError("Unable to derive storage key from media URL", details={"url": url})
        return key

    def generate_presigned_url(self, key: str, expiration: Optional[int] = None) -> str:
        """Generate presigned GET URL for direct access"""

        try:
            return self.s3_client.generate_presigned_url(
                ClientMethod='get_object',
                Params={'Bucket': self.bucket_name, 'Key': key},
                ExpiresIn=expiration or settings.PRESIGNED_URL_EXPIRY,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"💥 Presigned URL generation failed: {e}")
            raise StorageError(f"Failed to sign URL for {key}: {e}")


# Initialize service
storage_service = FileStorageService()
