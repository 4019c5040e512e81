"""FastAPI application factory."""

from contextlib import asynccontextmanager
from functools import partial

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from uniai.api.routes import generate, settings as settings_routes, tasks
from uniai.core.config import Settings, configure_logging
from uniai.core.database import setup_db_session
from uniai.services.credentials import SettingsStoreCredentialResolver
from uniai.services.exceptions import ConfigurationError, ValidationError
from uniai.services.orchestrator import GenerationOrchestrator
from uniai.services.storage import StorageRelocator, load_storage_config
from uniai.uow import create_uow_factory
from uniai.workers.generation_worker import recover_orphaned_tasks

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown tasks:
    - Startup: Configure logging, set up the database session factory, fail
      tasks orphaned by a previous process, load storage settings, build the orchestrator
    - Shutdown: Let running generation units finish or cancel them
    """
    settings: Settings = app.state.settings

    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)

    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory

    # Background units do not survive a restart; close their rows before accepting work
    try:
        await recover_orphaned_tasks(uow_factory)
    except Exception as e:
        logger.error(
            "startup.recovery_failed",
            error=str(e),
            error_type=type(e).__name__,
        )

    # Storage settings are re-read at most once per TTL while running
    relocator = StorageRelocator(
        config_loader=partial(load_storage_config, uow_factory, settings),
        config_ttl=settings.storage_config_ttl_seconds,
    )
    await relocator.current_store()

    orchestrator = GenerationOrchestrator(
        uow_factory=uow_factory,
        credentials=SettingsStoreCredentialResolver(uow_factory, settings.provider_credentials),
        settings=settings,
        relocator=relocator,
    )
    app.state.orchestrator = orchestrator

    logger.info(
        "application.startup",
        db_url=settings.database_url.split("@")[-1],
        storage_enabled=relocator.enabled,
        default_provider=settings.default_provider,
    )

    yield

    logger.info("application.shutdown", pending_tasks=orchestrator.pending_count)
    await orchestrator.shutdown()


async def handle_bad_request(request: Request, exc: Exception) -> JSONResponse:
    """Map request-level service errors to 400 with a plain message."""
    logger.info(
        "request.rejected",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        settings: Settings to use; loaded from the environment when omitted

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="UniAI Studio API",
        description="Image generation task orchestration",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ValidationError, handle_bad_request)
    app.add_exception_handler(ConfigurationError, handle_bad_request)

    app.include_router(generate.router)
    app.include_router(tasks.router)
    app.include_router(settings_routes.router)

    @app.get("/health")
    async def health_check(response: Response):
        """Health check endpoint with database connectivity test.

        Returns:
            200: {"status": "healthy"} if database connection succeeds
            503: {"status": "unhealthy", "error": {...}} if database connection fails
        """
        try:
            async with app.state.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            logger.debug("health_check.success")
            return {"status": "healthy"}

        except Exception as e:
            logger.error(
                "health_check.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {
                "status": "unhealthy",
                "error": {
                    "type": type(e).__name__,
                    "message": str(e),
                },
            }

    return app


# Create app instance for uvicorn
app = create_app()
