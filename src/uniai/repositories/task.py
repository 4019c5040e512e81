"""GenerationTask repository.

Provides data access methods for GenerationTask entities. Status transitions are
single conditional UPDATE statements so that a task leaves a non-terminal state
at most once, without cross-task locking.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from uniai.models.task import (
    ERROR_MESSAGE_MAX_LENGTH,
    GenerationTask,
    TaskStatus,
    utcnow,
    validate_terminal_update,
)

NON_TERMINAL_STATUSES = (TaskStatus.PENDING, TaskStatus.PROCESSING)


class TaskRepository:
    """Repository for GenerationTask entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, task: GenerationTask) -> GenerationTask:
        """Persist new task to database.

        Args:
            task: GenerationTask entity to persist

        Returns:
            Persisted task
        """
        self.session.add(task)
        await self.session.flush()
        return task

    async def get_by_id(self, task_id: UUID) -> GenerationTask | None:
        """Retrieve task by UUID.

        Args:
            task_id: Task's unique identifier

        Returns:
            GenerationTask if found, None otherwise
        """
        result = await self.session.execute(
            select(GenerationTask).where(GenerationTask.id == task_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def update_status(
        self,
        task_id: UUID,
        status: TaskStatus,
        result_images: Optional[list[str]] = None,
        error_message: Optional[str] = None,
    ) -> bool:
        """Move a task from pending/processing to a terminal state.

        Query explanation:
        - WHERE id = :task_id AND status IN ('pending', 'processing')
        - SET status, result_images, error_message, updated_at

        The status guard makes the transition happen at most once: a second
        update for the same task matches no row.

        Args:
            task_id: Task's unique identifier
            status: TaskStatus.SUCCESS or TaskStatus.FAILED
            result_images: Image URLs (required for success)
            error_message: Human-readable failure reason (required for failed)

        Returns:
            True if the row was updated, False if the task is unknown or already terminal

        Raises:
            InvalidStateTransition: If status is not terminal
            ValueError: If the result/error fields do not match the status
        """
        validate_terminal_update(status, result_images, error_message)

        if error_message is not None:
            error_message = error_message[:ERROR_MESSAGE_MAX_LENGTH]

        result = await self.session.execute(
            update(GenerationTask)
            .where(GenerationTask.id == task_id)  # type: ignore[arg-type]
            .where(GenerationTask.status.in_(NON_TERMINAL_STATUSES))  # type: ignore[attr-defined]
            .values(
                status=status,
                result_images=list(result_images or []),
                error_message=error_message,
                updated_at=utcnow(),
            )
        )
        await self.session.flush()
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def list_recent(
        self,
        limit: int = 50,
        model: Optional[str] = None,
        exclude_model: Optional[str] = None,
    ) -> list[GenerationTask]:
        """Retrieve most recent tasks, newest first.

        Args:
            limit: Maximum number of tasks to return (default: 50)
            model: Only return tasks for this model
            exclude_model: Skip tasks for this model

        Returns:
            List of tasks ordered by created_at descending
        """
        query = select(GenerationTask)
        if model is not None:
            query = query.where(GenerationTask.model == model)  # type: ignore[arg-type]
        if exclude_model is not None:
            query = query.where(GenerationTask.model != exclude_model)  # type: ignore[arg-type]

        result = await self.session.execute(
            query.order_by(GenerationTask.created_at.desc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_by_batch(self, batch_id: str) -> list[GenerationTask]:
        """Retrieve all tasks sharing a batch id, oldest first."""
        result = await self.session.execute(
            select(GenerationTask)
            .where(GenerationTask.batch_id == batch_id)  # type: ignore[arg-type]
            .order_by(GenerationTask.created_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def fail_stale(self, error_message: str) -> int:
        """Mark every pending/processing task as failed.

        Used on startup: background work does not survive a restart, so any
        non-terminal row left by a previous process can never complete.

        Args:
            error_message: Message stored on each affected task

        Returns:
            Number of tasks marked as failed
        """
        result = await self.session.execute(
            update(GenerationTask)
            .where(GenerationTask.status.in_(NON_TERMINAL_STATUSES))  # type: ignore[attr-defined]
            .values(
                status=TaskStatus.FAILED,
                result_images=[],
                error_message=error_message[:ERROR_MESSAGE_MAX_LENGTH],
                updated_at=utcnow(),
            )
        )
        await self.session.flush()
        return result.rowcount  # type: ignore[attr-defined]

    async def list_created_before(self, cutoff: datetime) -> list[GenerationTask]:
        """Retrieve tasks created before cutoff (retention candidates)."""
        result = await self.session.execute(
            select(GenerationTask)
            .where(GenerationTask.created_at < cutoff)  # type: ignore[arg-type]
            .order_by(GenerationTask.created_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def delete_many(self, task_ids: list[UUID]) -> int:
        """Delete tasks by id.

        Args:
            task_ids: Task identifiers to delete

        Returns:
            Number of rows deleted
        """
        if not task_ids:
            return 0
        result = await self.session.execute(
            delete(GenerationTask)
            .where(GenerationTask.id.in_(task_ids))  # type: ignore[attr-defined]
        )
        await self.session.flush()
        return result.rowcount  # type: ignore[attr-defined]
