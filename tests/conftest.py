"""pytest fixtures for UniAI backend tests.

Provides:
- settings: Test Settings with fast polling and no batch stagger
- session_factory: Function-scoped SQLite database (tables created from metadata)
- uow_factory: Function-scoped UnitOfWork factory
- FakeBlobStore / png_transport: In-memory object storage and image downloads
"""

import os

os.environ.setdefault("APP_ENV", "test")

from typing import AsyncGenerator, Optional  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import uniai.models  # noqa: E402, F401
from uniai.core.config import Settings  # noqa: E402
from uniai.core.database import setup_db_session  # noqa: E402
from uniai.services.exceptions import RelocationError  # noqa: E402
from uniai.uow import create_uow_factory  # noqa: E402


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings for tests: SQLite file database, zero poll interval, short timeouts."""
    return Settings(
        app_env="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        default_provider="nano_banana",
        poll_interval_seconds=0,
        poll_max_attempts=5,
        task_timeout_seconds=5,
        batch_stagger_seconds=0,
        max_batch_count=10,
        storage_enabled=False,
    )


@pytest_asyncio.fixture(scope="function")
async def session_factory(settings) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Provide a fresh database per test.

    A file database (not :memory:) so that concurrent sessions see each
    other's commits, as they would on PostgreSQL.
    """
    factory = setup_db_session(settings.database_url)
    engine = factory.kw["bind"]

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield factory

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def uow_factory(session_factory):
    """Provide function-scoped UnitOfWork factory."""
    return create_uow_factory(session_factory)


class FakeBlobStore:
    """In-memory blob store; ``fail_on`` holds 1-based put() calls that raise."""

    def __init__(
        self, fail_on: Optional[set[int]] = None, base_url: str = "https://cdn.test/bucket"
    ):
        self.fail_on = fail_on or set()
        self.base_url = base_url
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.deleted: list[str] = []
        self.put_calls = 0

    async def put(self, data: bytes, key: str, content_type: str) -> str:
        self.put_calls += 1
        if self.put_calls in self.fail_on:
            raise RelocationError(f"Upload of {key} failed: simulated")
        self.objects[key] = (data, content_type)
        return f"{self.base_url}/{key}"

    async def delete_by_url(self, url: str) -> bool:
        if not url.startswith(self.base_url):
            return False
        self.deleted.append(url)
        return True


@pytest.fixture
def fake_blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def png_transport() -> httpx.MockTransport:
    """Serve a tiny PNG for any URL, 404 for URLs containing 'missing'."""

    def handler(request: httpx.Request) -> httpx.Response:
        if "missing" in request.url.path:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, content=b"\x89PNG\r\n", headers={"content-type": "image/png"})

    return httpx.MockTransport(handler)
