"""Operator-owned object storage."""

from uniai.services.storage.blob_store import (
    BlobStore,
    S3BlobStore,
    StorageConfig,
    create_blob_store,
    load_storage_config,
)
from uniai.services.storage.relocator import StorageRelocator

__all__ = [
    "BlobStore",
    "S3BlobStore",
    "StorageConfig",
    "StorageRelocator",
    "create_blob_store",
    "load_storage_config",
]
