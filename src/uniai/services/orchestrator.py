"""Generation task orchestrator.

Owns the task lifecycle: request validation, provider selection, task creation,
background dispatch, and batch fan-out. Submission returns as soon as the
``processing`` row is committed; the background unit (see
``uniai.workers.generation_worker``) drives the task to a terminal state.

Only ``ValidationError`` and ``ConfigurationError`` reach the caller, and both
are raised before any row is written.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Optional
from uuid import UUID, uuid4

import structlog

from uniai.core.config import Settings
from uniai.models.task import GenerationTask, TaskStatus
from uniai.services.credentials import CredentialResolver
from uniai.services.exceptions import ConfigurationError, ValidationError
from uniai.services.prompt_validator import validate_prompt
from uniai.services.providers.base import GenerationParams, ProviderClient
from uniai.services.providers.registry import (
    PROVIDERS,
    ProviderDescriptor,
    build_client,
    resolve_provider,
)
from uniai.services.storage.relocator import StorageRelocator
from uniai.uow import UnitOfWorkFactory
from uniai.workers.generation_worker import GenerationJob, process_task

logger = structlog.get_logger(__name__)

ACTIVE_PROVIDER_SETTING = "active_provider"

ClientFactory = Callable[[ProviderDescriptor, str], ProviderClient]


@dataclass(frozen=True)
class GenerationRequest:
    """A validated-on-submit generation request."""

    prompt: str
    model: str
    params: GenerationParams = field(default_factory=GenerationParams)
    reference_image_urls: tuple[str, ...] = ()


@dataclass(frozen=True)
class BatchSubmission:
    """Result of a batch submission: one batch id shared by every created task."""

    batch_id: str
    task_ids: list[UUID]


class GenerationOrchestrator:
    """Create generation tasks and run them in tracked background units."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        credentials: CredentialResolver,
        settings: Settings,
        relocator: Optional[StorageRelocator] = None,
        client_factory: Optional[ClientFactory] = None,
        providers: tuple[ProviderDescriptor, ...] = PROVIDERS,
    ):
        """Initialize orchestrator.

        Args:
            uow_factory: Factory producing UnitOfWork instances
            credentials: Credential resolver (settings store or static mapping)
            settings: Application settings (timeouts, batch limits, defaults)
            relocator: Storage relocator; None disables relocation
            client_factory: Builds a provider client from descriptor and API key
            providers: Provider catalog
        """
        self.uow_factory = uow_factory
        self.credentials = credentials
        self.settings = settings
        self.relocator = relocator or StorageRelocator()
        self.client_factory = client_factory or (
            lambda descriptor, api_key: build_client(descriptor, api_key, settings)
        )
        self.providers = providers
        self._units: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        """Number of background units still running."""
        return len(self._units)

    async def resolve(self, request: GenerationRequest) -> tuple[ProviderDescriptor, str]:
        """Validate a request and find its provider and credential.

        Raises:
            ValidationError: Unknown model or invalid prompt
            ConfigurationError: Provider credential missing
        """
        default_provider = (
            await self.credentials.get_setting(ACTIVE_PROVIDER_SETTING)
            or self.settings.default_provider
        )
        descriptor = resolve_provider(request.model, default_provider, self.providers)
        validate_prompt(request.prompt, descriptor.max_prompt_length)

        api_key = await self.credentials.get_credential(descriptor.credential_key)
        if not api_key:
            raise ConfigurationError(
                f"{descriptor.display_name} API key is not configured "
                f"(setting '{descriptor.credential_key}')"
            )
        return descriptor, api_key

    async def submit(
        self,
        request: GenerationRequest,
        batch_id: Optional[str] = None,
        batch_count: int = 1,
    ) -> UUID:
        """Create a processing task and start generating in the background.

        Args:
            request: Generation request
            batch_id: Correlation id shared with sibling tasks (client-side fan-out)
            batch_count: Size of the batch this task belongs to

        Returns:
            The new task id

        Raises:
            ValidationError: Invalid request
            ConfigurationError: Provider credential missing
        """
        descriptor, api_key = await self.resolve(request)
        return await self._create_and_dispatch(request, descriptor, api_key, batch_id, batch_count)

    async def submit_batch(self, request: GenerationRequest, count: int) -> BatchSubmission:
        """Create ``count`` independent tasks sharing one batch id.

        Successive submissions are spaced by the configured stagger delay so a
        rate-limited provider is not hit with a burst.

        Raises:
            ValidationError: Invalid request or count out of range
            ConfigurationError: Provider credential missing (no task is created)
        """
        if count < 1 or count > self.settings.max_batch_count:
            raise ValidationError(
                f"Batch count must be between 1 and {self.settings.max_batch_count} (got {count})"
            )

        descriptor, api_key = await self.resolve(request)
        batch_id = str(uuid4())
        task_ids: list[UUID] = []

        for index in range(count):
            if index > 0:
                await asyncio.sleep(self.settings.batch_stagger_seconds)
            task_ids.append(
                await self._create_and_dispatch(request, descriptor, api_key, batch_id, count)
            )

        logger.info("batch.submitted", batch_id=batch_id, count=count, provider=descriptor.name)
        return BatchSubmission(batch_id=batch_id, task_ids=task_ids)

    async def get_task(self, task_id: UUID) -> Optional[GenerationTask]:
        """Read a task for polling clients."""
        async with await self.uow_factory() as uow:
            return await uow.tasks.get_by_id(task_id)

    async def _create_and_dispatch(
        self,
        request: GenerationRequest,
        descriptor: ProviderDescriptor,
        api_key: str,
        batch_id: Optional[str],
        batch_count: int,
    ) -> UUID:
        client = self.client_factory(descriptor, api_key)

        task = GenerationTask(
            prompt=request.prompt,
            model=request.model,
            provider=descriptor.name,
            resolution=request.params.resolution,
            aspect_ratio=request.params.aspect_ratio,
            params=request.params.provider_specific(),
            reference_images=list(request.reference_image_urls),
            status=TaskStatus.PROCESSING,
            batch_id=batch_id,
            batch_count=batch_count,
        )
        async with await self.uow_factory() as uow:
            await uow.tasks.add(task)
        task_id = task.id

        job = GenerationJob(
            task_id=task_id,
            prompt=request.prompt,
            model=request.model,
            descriptor=descriptor,
            params=request.params,
            reference_image_urls=tuple(request.reference_image_urls),
        )
        self._spawn(job, client)

        logger.info(
            "task.submitted",
            task_id=str(task_id),
            provider=descriptor.name,
            model=request.model,
            batch_id=batch_id,
        )
        return task_id

    def _spawn(self, job: GenerationJob, client: ProviderClient) -> None:
        unit = asyncio.create_task(
            process_task(
                job,
                client,
                self.uow_factory,
                self.relocator,
                timeout=self.settings.task_timeout_seconds,
            ),
            name=f"generation-{job.task_id}",
        )
        self._units.add(unit)
        unit.add_done_callback(self._on_unit_done)

    def _on_unit_done(self, unit: asyncio.Task) -> None:
        self._units.discard(unit)
        if unit.cancelled():
            return
        exc = unit.exception()
        if exc is not None:
            # process_task converts failures into task rows; reaching here is a bug
            logger.error(
                "task.unit_crashed",
                unit=unit.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=exc,
            )

    async def wait_for_pending(self) -> None:
        """Wait until every background unit (including ones started meanwhile) finished."""
        while self._units:
            await asyncio.gather(*list(self._units), return_exceptions=True)

    async def shutdown(self, grace_seconds: float = 5.0) -> None:
        """Give running units a grace period, then cancel the rest.

        Cancelled units mark their task failed before exiting.
        """
        if not self._units:
            return

        logger.info("orchestrator.shutdown", pending=len(self._units))
        _, still_running = await asyncio.wait(list(self._units), timeout=grace_seconds)
        for unit in still_running:
            unit.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
