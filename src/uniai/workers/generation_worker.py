"""Dispatch-and-finalize unit for one generation task.

``process_task`` runs as a background asyncio task started by the orchestrator.
It owns the whole sequence for a single task:

1. Call the provider client (single call or submit+poll)
2. Check the normalized image list is non-empty
3. Relocate images to operator storage (when configured)
4. Update the task row to success or failed

Every failure is converted into a ``failed`` row here. Nothing propagates to
the submitter, who already holds the task id. The whole sequence is bounded by
a timeout so a task never stays ``processing`` while its unit is alive, and
``recover_orphaned_tasks`` closes the rows of units lost to a restart.

Each database write opens its own unit of work; concurrent units never share a
session.
"""

import asyncio
import time
from dataclasses import dataclass, field
from uuid import UUID

import structlog

from uniai.models.task import TaskStatus
from uniai.services.exceptions import NormalizationError, PollTimeoutError, ProviderError
from uniai.services.providers.base import GenerationParams, ProviderClient
from uniai.services.providers.registry import ProviderDescriptor
from uniai.services.storage.relocator import StorageRelocator
from uniai.uow import UnitOfWorkFactory

logger = structlog.get_logger(__name__)

TIMEOUT_MESSAGE = "Generation timed out"
CANCELLED_MESSAGE = "Generation cancelled"
RESTART_MESSAGE = "Interrupted by service restart"
SAVE_FAILED_MESSAGE = "Generation result could not be saved"

FINALIZE_ATTEMPTS = 3
FINALIZE_RETRY_DELAY = 0.5


@dataclass(frozen=True)
class GenerationJob:
    """Everything a background unit needs to run one task."""

    task_id: UUID
    prompt: str
    model: str
    descriptor: ProviderDescriptor
    params: GenerationParams = field(default_factory=GenerationParams)
    reference_image_urls: tuple[str, ...] = ()


async def _generate(
    job: GenerationJob, client: ProviderClient, relocator: StorageRelocator
) -> list[str]:
    images = await client.generate(
        job.prompt, list(job.reference_image_urls), job.params, job.model
    )
    if not images:
        raise NormalizationError("No images generated")

    return await relocator.relocate(
        images, folder=job.descriptor.storage_folder, task_id=str(job.task_id)
    )


async def finalize_task(
    uow_factory: UnitOfWorkFactory,
    task_id: UUID,
    status: TaskStatus,
    result_images: list[str] | None = None,
    error_message: str | None = None,
) -> bool:
    """Write the terminal state, retrying database errors a bounded number of times.

    Each attempt opens a fresh unit of work. Errors are logged, never raised.

    Returns:
        True if the row transitioned, False if it was already terminal or
        every attempt failed
    """
    for attempt in range(1, FINALIZE_ATTEMPTS + 1):
        try:
            async with await uow_factory() as uow:
                updated = await uow.tasks.update_status(
                    task_id, status, result_images=result_images, error_message=error_message
                )
            break
        except Exception as e:
            if attempt == FINALIZE_ATTEMPTS:
                logger.error(
                    "task.finalize_failed",
                    task_id=str(task_id),
                    target_status=status.value,
                    attempts=attempt,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                return False
            logger.warning(
                "task.finalize_retry",
                task_id=str(task_id),
                target_status=status.value,
                attempt=attempt,
                error=str(e),
                error_type=type(e).__name__,
            )
            await asyncio.sleep(FINALIZE_RETRY_DELAY)

    if not updated:
        logger.warning(
            "task.already_terminal", task_id=str(task_id), target_status=status.value
        )
    return updated


async def process_task(
    job: GenerationJob,
    client: ProviderClient,
    uow_factory: UnitOfWorkFactory,
    relocator: StorageRelocator,
    timeout: float,
) -> TaskStatus:
    """Run one task to a terminal state.

    Args:
        job: Task identity and generation inputs
        client: Provider client matching job.descriptor
        uow_factory: Factory producing UnitOfWork instances
        relocator: Storage relocator (pass-through when storage is off)
        timeout: Overall bound in seconds for generation plus relocation

    Returns:
        The terminal status reached (SUCCESS or FAILED)

    Raises:
        asyncio.CancelledError: Re-raised after the task is marked failed
    """
    start_time = time.monotonic()
    log = logger.bind(
        task_id=str(job.task_id), provider=job.descriptor.name, model=job.model
    )
    log.info("task.generation.started", mode=job.descriptor.mode.value)

    try:
        images = await asyncio.wait_for(_generate(job, client, relocator), timeout=timeout)

    except PollTimeoutError as e:
        log.error(
            "task.generation.failed",
            error_type="PollTimeoutError",
            error_message=str(e),
            attempts=e.attempts,
        )
        error_message = TIMEOUT_MESSAGE

    except ProviderError as e:
        log.error(
            "task.generation.failed",
            error_type=type(e).__name__,
            error_message=str(e),
            status_code=e.status_code,
        )
        error_message = str(e) or type(e).__name__

    except TimeoutError:
        log.error("task.generation.failed", error_type="TaskTimeout", timeout_seconds=timeout)
        error_message = TIMEOUT_MESSAGE

    except asyncio.CancelledError:
        log.warning("task.generation.cancelled")
        await finalize_task(
            uow_factory, job.task_id, TaskStatus.FAILED, error_message=CANCELLED_MESSAGE
        )
        raise

    except Exception as e:
        log.error(
            "task.generation.failed",
            error_type=type(e).__name__,
            error_message=str(e),
            exc_info=True,
        )
        error_message = f"Unexpected error: {e}"

    else:
        if await finalize_task(
            uow_factory, job.task_id, TaskStatus.SUCCESS, result_images=images
        ):
            log.info(
                "task.generation.succeeded",
                image_count=len(images),
                duration_seconds=round(time.monotonic() - start_time, 3),
            )
            return TaskStatus.SUCCESS
        log.error("task.generation.result_not_saved", image_count=len(images))
        error_message = SAVE_FAILED_MESSAGE

    if not await finalize_task(
        uow_factory, job.task_id, TaskStatus.FAILED, error_message=error_message
    ):
        log.error("task.generation.failure_not_saved", error_message=error_message)
    return TaskStatus.FAILED


async def recover_orphaned_tasks(uow_factory: UnitOfWorkFactory) -> int:
    """Fail tasks left pending/processing by a previous process.

    Background units do not survive a restart, so these rows would otherwise
    stay non-terminal forever.

    Query:
        UPDATE tasks
        SET status = 'failed', error_message = 'Interrupted by service restart'
        WHERE status IN ('pending', 'processing')

    Returns:
        Number of tasks marked as failed
    """
    async with await uow_factory() as uow:
        recovered_count = await uow.tasks.fail_stale(RESTART_MESSAGE)

    if recovered_count > 0:
        logger.info("worker.recovery", orphaned_tasks_failed=recovered_count)
    return recovered_count
