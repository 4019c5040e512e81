"""Copy provider-hosted images into operator-owned storage."""

import secrets
import time
from typing import Awaitable, Callable, Optional

import httpx
import structlog

from uniai.services.exceptions import RelocationError
from uniai.services.storage.blob_store import BlobStore, StorageConfig, create_blob_store

logger = structlog.get_logger(__name__)


def object_key(folder: str) -> str:
    """Timestamp-addressed object key, e.g. ``output/1718000000000-generated_..._x1y2.png``."""
    millis = int(time.time() * 1000)
    return f"{folder}/{millis}-generated_{millis}_{secrets.token_hex(5)}.png"


ConfigLoader = Callable[[], Awaitable[StorageConfig]]
StoreFactory = Callable[[StorageConfig], Optional[BlobStore]]


class StorageRelocator:
    """Download each image and re-upload it to the blob store.

    A failure for one image keeps that image's original URL; the others are
    still relocated. Without a blob store this is a pass-through.

    With a ``config_loader`` the destination follows the storage settings: the
    configuration is re-read at most once per ``config_ttl`` seconds and the
    blob store is rebuilt when it changed.
    """

    def __init__(
        self,
        blob_store: Optional[BlobStore] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        config_loader: Optional[ConfigLoader] = None,
        config_ttl: float = 60.0,
        store_factory: StoreFactory = create_blob_store,
    ):
        """Initialize relocator.

        Args:
            blob_store: Destination store, or None to disable relocation
            timeout: Download timeout in seconds
            transport: Optional httpx transport for tests
            config_loader: Async callable returning the current StorageConfig
            config_ttl: Seconds a loaded configuration stays valid
            store_factory: Builds a blob store from a configuration (None when off)
        """
        self.blob_store = blob_store
        self.timeout = timeout
        self.transport = transport
        self.config_loader = config_loader
        self.config_ttl = config_ttl
        self.store_factory = store_factory
        self._config: Optional[StorageConfig] = None
        self._loaded_at: Optional[float] = None

    @property
    def enabled(self) -> bool:
        """Whether the last known configuration has a blob store."""
        return self.blob_store is not None

    async def current_store(self) -> Optional[BlobStore]:
        """Blob store for the current storage settings.

        A configuration that cannot be loaded keeps the previous store.
        """
        if self.config_loader is None:
            return self.blob_store

        now = time.monotonic()
        if self._loaded_at is not None and now - self._loaded_at < self.config_ttl:
            return self.blob_store

        try:
            config = await self.config_loader()
        except Exception as e:
            logger.warning("storage.config_load_failed", error=str(e), error_type=type(e).__name__)
            return self.blob_store

        self._loaded_at = now
        if config != self._config:
            self._config = config
            self.blob_store = self.store_factory(config)
            logger.info(
                "storage.config_loaded",
                enabled=self.blob_store is not None,
                bucket=config.bucket or None,
            )
        return self.blob_store

    async def download(self, client: httpx.AsyncClient, url: str) -> tuple[bytes, str]:
        """Fetch image bytes and content type.

        Raises:
            RelocationError: Network error or non-2xx response
        """
        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            raise RelocationError(f"Download of {url} failed: {e}") from e
        if not response.is_success:
            raise RelocationError(f"Download of {url} failed with status {response.status_code}")

        content_type = response.headers.get("content-type", "image/png").split(";")[0]
        if not content_type.startswith("image/"):
            content_type = "image/png"
        return response.content, content_type

    async def relocate(
        self, image_urls: list[str], folder: str = "output", task_id: Optional[str] = None
    ) -> list[str]:
        """Relocate images, preserving order and count.

        Args:
            image_urls: Provider-hosted image URLs
            folder: Key prefix in the bucket ("output" or "zimage")
            task_id: Task identifier for log context

        Returns:
            One URL per input: the relocated URL, or the original on failure
        """
        blob_store = await self.current_store()
        if blob_store is None:
            return list(image_urls)

        relocated: list[str] = []
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport, follow_redirects=True
        ) as client:
            for url in image_urls:
                try:
                    data, content_type = await self.download(client, url)
                    new_url = await blob_store.put(data, object_key(folder), content_type)
                except Exception as e:
                    logger.warning(
                        "storage.relocation_failed",
                        task_id=task_id,
                        source_url=url,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    relocated.append(url)
                    continue

                logger.info("storage.relocated", task_id=task_id, url=new_url, folder=folder)
                relocated.append(new_url)

        return relocated
