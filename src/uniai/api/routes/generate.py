"""Generation submission endpoint.

- POST /api/generate - Create a generation task (or a server-side batch) and
  return immediately; clients poll GET /api/tasks/{task_id} for the result.

Validation and configuration errors are raised by the orchestrator and mapped
to 400 by the application's exception handlers.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field

from uniai.api.dependencies import get_orchestrator
from uniai.services.orchestrator import GenerationOrchestrator, GenerationRequest
from uniai.services.providers.base import GenerationParams

logger = structlog.get_logger()
router = APIRouter(prefix="/api", tags=["generate"])

SUBMITTED_MESSAGE = "Task submitted, poll /api/tasks/{task_id} for the result"


# Request/Response Models


class GenerateRequest(BaseModel):
    """Inbound generation request (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True)

    prompt: Optional[str] = Field(default=None, description="Text prompt")
    model: str = Field(default="nano-banana-2", description="Requested model name")
    resolution: str = Field(default="2K", description="1K, 2K or 4K")
    aspect_ratio: str = Field(default="1:1", alias="aspectRatio")
    batch_count: int = Field(default=1, alias="batchCount")
    batch_id: Optional[str] = Field(
        default=None,
        alias="batchId",
        max_length=64,
        description="Client-side batch correlation id, stored as-is",
    )
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    image_urls: Optional[list[str]] = Field(default=None, alias="imageUrls")
    width: Optional[int] = None
    height: Optional[int] = None
    sampler_method: Optional[str] = Field(default=None, alias="samplerMethod")
    sampling_steps: Optional[int] = Field(default=None, alias="samplingSteps")
    seed: Optional[int] = None
    num_images: Optional[int] = Field(default=None, alias="numImages")

    def reference_image_urls(self) -> tuple[str, ...]:
        """imageUrls plus the single imageUrl, blanks and repeats removed."""
        urls: list[str] = []
        for url in [*(self.image_urls or []), self.image_url]:
            if url and url.strip() and url not in urls:
                urls.append(url)
        return tuple(urls)

    def to_generation_request(self) -> GenerationRequest:
        return GenerationRequest(
            prompt=self.prompt,  # type: ignore[arg-type]  # validated by orchestrator
            model=self.model,
            params=GenerationParams(
                resolution=self.resolution,
                aspect_ratio=self.aspect_ratio,
                width=self.width,
                height=self.height,
                sampler_method=self.sampler_method,
                sampling_steps=self.sampling_steps,
                seed=self.seed,
                num_images=self.num_images,
            ),
            reference_image_urls=self.reference_image_urls(),
        )


class GenerateResponse(BaseModel):
    """Single task submission result."""

    model_config = ConfigDict(populate_by_name=True)

    task_id: str = Field(..., alias="taskId")
    status: str = "processing"
    message: str = SUBMITTED_MESSAGE
    batch_id: Optional[str] = Field(default=None, alias="batchId")


class BatchGenerateResponse(BaseModel):
    """Server-side batch submission result."""

    model_config = ConfigDict(populate_by_name=True)

    batch_id: str = Field(..., alias="batchId")
    task_ids: list[str] = Field(..., alias="taskIds")
    status: str = "processing"


# API Endpoints


@router.post(
    "/generate",
    response_model=GenerateResponse | BatchGenerateResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
)
async def generate(
    request: GenerateRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> GenerateResponse | BatchGenerateResponse:
    """Submit a generation task.

    A request carrying ``batchId`` is one member of a client-side fan-out and
    creates a single task tagged with that id. Without ``batchId`` and with
    ``batchCount > 1`` the server creates ``batchCount`` tasks itself.

    Example:
        POST /api/generate
        {"prompt": "a red fox in snow", "model": "nano-banana-2", "aspectRatio": "16:9"}

        Response 200:
        {"taskId": "…", "status": "processing", "message": "…"}
    """
    generation_request = request.to_generation_request()

    if request.batch_id is None and request.batch_count != 1:
        submission = await orchestrator.submit_batch(generation_request, request.batch_count)
        return BatchGenerateResponse(
            batch_id=submission.batch_id,
            task_ids=[str(task_id) for task_id in submission.task_ids],
        )

    task_id = await orchestrator.submit(
        generation_request,
        batch_id=request.batch_id,
        batch_count=max(request.batch_count, 1),
    )
    return GenerateResponse(task_id=str(task_id), batch_id=request.batch_id)
