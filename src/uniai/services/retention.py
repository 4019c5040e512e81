"""Task retention: delete old task rows and their relocated images."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

import structlog

from uniai.models.task import utcnow
from uniai.services.storage.blob_store import BlobStore
from uniai.uow import UnitOfWorkFactory

logger = structlog.get_logger(__name__)


@dataclass
class RetentionResult:
    """Outcome of one retention run."""

    cutoff: datetime
    expired_count: int = 0
    deleted_count: int = 0
    images_deleted: int = 0
    images_skipped: int = 0
    errors: list[str] = field(default_factory=list)


async def cleanup_old_tasks(
    uow_factory: UnitOfWorkFactory,
    blob_store: Optional[BlobStore],
    days: int,
    dry_run: bool = False,
    now: Optional[datetime] = None,
) -> RetentionResult:
    """Delete tasks created more than ``days`` days ago.

    Result images are deleted from the blob store first, best-effort: an image
    that is not in the bucket (provider-hosted URL) or fails to delete is
    counted as skipped and never blocks the row deletion.

    Args:
        uow_factory: Factory producing UnitOfWork instances
        blob_store: Store holding relocated images, or None to keep images
        days: Retention window in days
        dry_run: Count candidates without deleting anything
        now: Reference time (naive UTC), defaults to the current time

    Returns:
        RetentionResult with counts
    """
    cutoff = (now or utcnow()) - timedelta(days=days)
    result = RetentionResult(cutoff=cutoff)

    async with await uow_factory() as uow:
        expired = await uow.tasks.list_created_before(cutoff)
    result.expired_count = len(expired)

    logger.info("retention.candidates", count=result.expired_count, cutoff=cutoff.isoformat())
    if dry_run or not expired:
        return result

    for task in expired:
        for url in task.result_images or []:
            if blob_store is None or not isinstance(url, str) or not url.startswith("http"):
                result.images_skipped += 1
                continue
            try:
                deleted = await blob_store.delete_by_url(url)
            except Exception as e:
                result.errors.append(f"{task.id}: {e}")
                deleted = False
            if deleted:
                result.images_deleted += 1
            else:
                result.images_skipped += 1

    async with await uow_factory() as uow:
        result.deleted_count = await uow.tasks.delete_many([task.id for task in expired])

    logger.info(
        "retention.completed",
        deleted=result.deleted_count,
        images_deleted=result.images_deleted,
        images_skipped=result.images_skipped,
    )
    return result
