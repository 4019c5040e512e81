"""FastAPI dependencies reading shared objects from app state."""

from fastapi import Request

from uniai.services.orchestrator import GenerationOrchestrator
from uniai.uow import UnitOfWorkFactory


def get_uow_factory(request: Request) -> UnitOfWorkFactory:
    """Get UnitOfWork factory from app state.

    Example:
        >>> @router.get("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.tasks.get_by_id(task_id)
    """
    return request.app.state.uow_factory


def get_orchestrator(request: Request) -> GenerationOrchestrator:
    """Get the generation orchestrator created at startup."""
    return request.app.state.orchestrator
