"""S3-compatible object storage for generated images."""

import asyncio
from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import urlparse

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from uniai.core.config import Settings
from uniai.services.exceptions import RelocationError
from uniai.uow import UnitOfWorkFactory

logger = structlog.get_logger(__name__)

STORAGE_SETTING_KEYS = (
    "storage_enabled",
    "storage_external",
    "storage_bucket",
    "storage_access_key",
    "storage_secret_key",
)


class BlobStore(Protocol):
    """Blob sink used by the storage relocator and the retention tool."""

    async def put(self, data: bytes, key: str, content_type: str) -> str: ...

    async def delete_by_url(self, url: str) -> bool: ...


@dataclass(frozen=True)
class StorageConfig:
    """Object storage connection settings."""

    enabled: bool
    endpoint: str
    bucket: str
    access_key: str
    secret_key: str
    region: str = "us-east-1"

    @property
    def is_complete(self) -> bool:
        return bool(
            self.enabled and self.endpoint and self.bucket and self.access_key and self.secret_key
        )


async def load_storage_config(
    uow_factory: UnitOfWorkFactory, settings: Settings
) -> StorageConfig:
    """Merge storage settings from the settings table over environment settings.

    Args:
        uow_factory: Factory producing UnitOfWork instances
        settings: Application settings (environment fallbacks)

    Returns:
        Effective StorageConfig
    """
    async with await uow_factory() as uow:
        stored = await uow.settings.get_many(list(STORAGE_SETTING_KEYS))

    enabled_value = stored.get("storage_enabled")
    enabled = (
        enabled_value.strip().lower() == "true" if enabled_value else settings.storage_enabled
    )
    return StorageConfig(
        enabled=enabled,
        endpoint=stored.get("storage_external") or settings.storage_endpoint,
        bucket=stored.get("storage_bucket") or settings.storage_bucket,
        access_key=stored.get("storage_access_key") or settings.storage_access_key,
        secret_key=stored.get("storage_secret_key") or settings.storage_secret_key,
        region=settings.storage_region,
    )


class S3BlobStore:
    """Upload/delete objects in one bucket of an S3-compatible service.

    Objects are addressed path-style: ``https://{endpoint}/{bucket}/{key}``.
    boto3 is blocking, so every call runs in a worker thread.
    """

    def __init__(self, config: StorageConfig, client=None):
        """Initialize blob store.

        Args:
            config: Complete storage configuration
            client: Optional pre-built boto3 S3 client (tests)
        """
        self.config = config
        self.base_url = f"https://{config.endpoint}"
        self.client = client or boto3.client(
            "s3",
            endpoint_url=self.base_url,
            region_name=config.region,
            aws_access_key_id=config.access_key,
            aws_secret_access_key=config.secret_key,
            config=Config(s3={"addressing_style": "path"}),
        )

    def url_for(self, key: str) -> str:
        return f"{self.base_url}/{self.config.bucket}/{key}"

    def key_from_url(self, url: str) -> Optional[str]:
        """Extract the object key from a ``https://{endpoint}/{bucket}/{key}`` URL."""
        parts = urlparse(url).path.split("/")
        # ['', bucket, *key]
        if len(parts) < 3 or parts[1] != self.config.bucket:
            return None
        key = "/".join(parts[2:])
        return key or None

    async def put(self, data: bytes, key: str, content_type: str) -> str:
        """Upload bytes and return the public URL.

        Raises:
            RelocationError: If the upload fails
        """
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.config.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            raise RelocationError(f"Upload of {key} failed: {e}") from e
        return self.url_for(key)

    async def delete_by_url(self, url: str) -> bool:
        """Best-effort delete of the object behind a URL.

        Returns:
            True if a delete request succeeded, False if the URL is foreign or
            the delete failed
        """
        key = self.key_from_url(url)
        if not key:
            return False
        try:
            await asyncio.to_thread(self.client.delete_object, Bucket=self.config.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            logger.warning("storage.delete_failed", key=key, error=str(e))
            return False
        logger.info("storage.deleted", key=key)
        return True


def create_blob_store(config: StorageConfig) -> Optional[S3BlobStore]:
    """Blob store for a complete configuration, None when storage is off."""
    if not config.is_complete:
        if config.enabled:
            logger.warning("storage.incomplete_config", bucket=config.bucket or None)
        return None
    return S3BlobStore(config)
