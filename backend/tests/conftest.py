"""Shared pytest fixtures for autofix tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from autofix.core.config import Settings
from autofix.db.session import build_engine, init_db
from autofix.main import create_app
from autofix.models.project import Project
from autofix.repositories.project_repository import ProjectRepository
from autofix.services.enricher import EventEnricher, MonitorApiClient
from autofix.services.events import NotificationBus
from autofix.services.issue_store import IssueStateStore
from autofix.services.projects import ProjectResolver
from autofix.services.scheduler import JobScheduler
from tests._support import SECRET, FakeExecutor, FakePublisher


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'autofix.db'}"


@pytest.fixture
async def engine(database_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite database with every table created."""
    engine = build_engine(database_url)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def store(session_factory) -> IssueStateStore:
    return IssueStateStore(session_factory)


@pytest.fixture
def bus() -> NotificationBus:
    return NotificationBus()


@pytest.fixture
def resolver(session_factory) -> ProjectResolver:
    return ProjectResolver(session_factory)


@pytest.fixture
async def project(session_factory) -> Project:
    async with session_factory() as session:
        return await ProjectRepository(session).create(
            slug="web-api",
            repo="acme/web-api",
            branch="main",
            language="python",
            framework="fastapi",
        )


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()


@pytest.fixture
def make_scheduler(store, bus, resolver, executor, publisher):
    """Build a scheduler around the shared fakes; overrides are keyword arguments."""

    def _make(**overrides) -> JobScheduler:
        options = {
            "store": store,
            "bus": bus,
            "executor": executor,
            "publisher": publisher,
            "resolver": resolver,
            "max_concurrent": 1,
            "max_attempts": 2,
        }
        options.update(overrides)
        return JobScheduler(**options)

    return _make


@pytest.fixture
def settings(tmp_path: Path, database_url: str) -> Settings:
    return Settings(
        webhook_secret=SECRET,
        database_url=database_url,
        projects_config_path=str(tmp_path / "config.json"),
        repos_dir=str(tmp_path / "repos"),
        monitor_auth_token=None,
        monitor_org_slug=None,
        github_token=None,
        sse_keepalive_seconds=0.2,
    )


@pytest.fixture
async def app(settings, session_factory, executor, publisher):
    app = create_app(
        settings,
        session_factory=session_factory,
        executor=executor,
        publisher=publisher,
        enricher=EventEnricher(MonitorApiClient(base_url="http://monitor.test", auth_token=None, org_slug=None)),
    )
    await app.state.scheduler.start()
    yield app
    await app.state.scheduler.join()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client for the autofix FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
