"""Task polling API endpoints.

- GET /api/tasks - Recent tasks, newest first
- GET /api/tasks/batch/{batch_id} - All tasks of one batch
- GET /api/tasks/{task_id} - One task's status and results

All endpoints are read-only; tasks are written only by the orchestrator.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from uniai.api.dependencies import get_uow_factory
from uniai.models.task import GenerationTask

logger = structlog.get_logger()
router = APIRouter(prefix="/api/tasks", tags=["tasks"])


class TaskResponse(BaseModel):
    """Task status as seen by polling clients (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    prompt: str
    model: str
    provider: str
    resolution: str
    aspect_ratio: str = Field(..., alias="aspectRatio")
    status: str = Field(..., description="pending, processing, success or failed")
    result_images: list[str] = Field(default_factory=list, alias="resultImages")
    error_message: Optional[str] = Field(default=None, alias="errorMessage")
    batch_id: Optional[str] = Field(default=None, alias="batchId")
    batch_count: int = Field(default=1, alias="batchCount")
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")

    @classmethod
    def from_task(cls, task: GenerationTask) -> "TaskResponse":
        return cls(
            id=str(task.id),
            prompt=task.prompt,
            model=task.model,
            provider=task.provider,
            resolution=task.resolution,
            aspect_ratio=task.aspect_ratio,
            status=task.status.value,
            result_images=list(task.result_images or []),
            error_message=task.error_message,
            batch_id=task.batch_id,
            batch_count=task.batch_count,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


class TaskListResponse(BaseModel):
    tasks: list[TaskResponse]


@router.get("", response_model=TaskListResponse, response_model_by_alias=True)
async def list_tasks(
    limit: int = Query(default=50, ge=1, le=200, description="Maximum number of tasks"),
    model: Optional[str] = Query(default=None, description="Only tasks for this model"),
    exclude_model: Optional[str] = Query(
        default=None, alias="excludeModel", description="Skip tasks for this model"
    ),
    uow_factory=Depends(get_uow_factory),
) -> TaskListResponse:
    """List recent tasks, newest first."""
    async with await uow_factory() as uow:
        tasks = await uow.tasks.list_recent(limit=limit, model=model, exclude_model=exclude_model)

    return TaskListResponse(tasks=[TaskResponse.from_task(task) for task in tasks])


@router.get("/batch/{batch_id}", response_model=TaskListResponse, response_model_by_alias=True)
async def get_batch(
    batch_id: str,
    uow_factory=Depends(get_uow_factory),
) -> TaskListResponse:
    """List the tasks of one batch in submission order.

    An unknown batch id yields an empty list, not 404: batch members are
    created one by one and a client may poll before the first one exists.
    """
    async with await uow_factory() as uow:
        tasks = await uow.tasks.list_by_batch(batch_id)

    return TaskListResponse(tasks=[TaskResponse.from_task(task) for task in tasks])


@router.get("/{task_id}", response_model=TaskResponse, response_model_by_alias=True)
async def get_task(
    task_id: str,
    uow_factory=Depends(get_uow_factory),
) -> TaskResponse:
    """Get one task's status.

    Raises:
        HTTPException 404: Task not found

    Example:
        GET /api/tasks/5f0c…

        Response 200:
        {"id": "5f0c…", "status": "success", "resultImages": ["https://…/1.png"], ...}
    """
    try:
        task_uuid = UUID(task_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")

    async with await uow_factory() as uow:
        task = await uow.tasks.get_by_id(task_uuid)

    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")

    return TaskResponse.from_task(task)
