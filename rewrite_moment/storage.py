"""
R2 (S3 API) storage for images that a vendor can only take by URL.

Uploads go under inputs/{date}/{sha256}.{ext}, so re-submitting the same
image reuses its key.
"""

import asyncio
import hashlib
import logging
from datetime import datetime, timezone

import boto3
from botocore.config import Config as BotoConfig

from .config import StorageSettings
from .errors import TransientError
from .models import ImageBlob

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}


def object_key(image: ImageBlob) -> str:
    digest = hashlib.sha256(image.data).hexdigest()[:32]
    ext = _EXTENSIONS.get(image.mime_type, "jpg")
    day = datetime.now(timezone.utc).strftime("%Y%m%d")
    return f"inputs/{day}/{digest}.{ext}"


class ImageStore:
    """Publishes ImageBlobs to R2 and returns their public URL."""

    def __init__(self, settings: StorageSettings):
        self.settings = settings
        self._client = None

    @property
    def configured(self) -> bool:
        return self.settings.configured

    def _s3(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=f"https://{self.settings.account_id}.r2.cloudflarestorage.com",
                aws_access_key_id=self.settings.access_key_id,
                aws_secret_access_key=self.settings.secret_access_key,
                config=BotoConfig(signature_version="s3v4"),
                region_name="auto",
            )
        return self._client

    def _put(self, key: str, image: ImageBlob):
        self._s3().put_object(
            Bucket=self.settings.bucket_name,
            Key=key,
            Body=image.data,
            ContentType=image.mime_type,
        )

    async def publish(self, image: ImageBlob) -> str:
        key = object_key(image)
        try:
            # boto3 is blocking; keep it off the event loop
            await asyncio.to_thread(self._put, key, image)
        except Exception as e:
            logger.error(f"R2 upload failed for key={key}: {e}")
            raise TransientError("Image upload failed", provider="r2", body=str(e)) from e

        public_url = f"{self.settings.public_url.rstrip('/')}/{key}"
        logger.info(f"Uploaded to R2: {public_url}")
        return public_url

    async def url_for(self, image: ImageBlob) -> str:
        """Public URL when storage is configured, otherwise an inline data URL."""
        if self.configured:
            return await self.publish(image)
        return image.to_data_url()
