"""GenerationTask entity - one unit of image generation work with status tracking."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

ERROR_MESSAGE_MAX_LENGTH = 1000


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the timezone-less timestamp columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TaskStatus(str, Enum):
    """Generation task lifecycle status."""

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.SUCCESS, TaskStatus.FAILED)


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid task state transition."""

    pass


def validate_terminal_update(
    status: TaskStatus,
    result_images: Optional[list[str]] = None,
    error_message: Optional[str] = None,
) -> None:
    """Check that a status update keeps the result/error fields consistent.

    Args:
        status: Target status (must be terminal)
        result_images: Images stored with a success transition
        error_message: Message stored with a failed transition

    Raises:
        InvalidStateTransition: If status is not terminal
        ValueError: If success has no images, failed has no message, or the
            fields of the other terminal state are supplied
    """
    if not status.is_terminal:
        raise InvalidStateTransition(
            f"Cannot update task to {status.value}. Only success and failed are reachable."
        )
    if status == TaskStatus.SUCCESS:
        if not result_images:
            raise ValueError("result_images is required for success")
        if error_message:
            raise ValueError("error_message must be empty for success")
    else:
        if not error_message:
            raise ValueError("error_message is required for failed")
        if result_images:
            raise ValueError("result_images must be empty for failed")


class GenerationTask(SQLModel, table=True):
    """GenerationTask tracks one generation request from submission to terminal status."""

    __tablename__ = "tasks"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    prompt: str = Field(max_length=1000)
    model: str = Field(max_length=100, index=True)
    provider: str = Field(max_length=50)
    resolution: str = Field(default="2K", max_length=20)
    aspect_ratio: str = Field(default="1:1", max_length=20)
    params: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    reference_images: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    status: TaskStatus = Field(default=TaskStatus.PROCESSING, index=True)
    result_images: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    error_message: Optional[str] = Field(default=None, max_length=ERROR_MESSAGE_MAX_LENGTH)
    batch_id: Optional[str] = Field(default=None, max_length=64, index=True)
    batch_count: int = Field(default=1, ge=1)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)
