import asyncio
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from autofix.core.config import Settings, get_settings
from autofix.db.session import SessionLocal, build_engine, init_db
from autofix.routes import events, issues, projects, webhooks
from autofix.services.enricher import EventEnricher, MonitorApiClient
from autofix.services.events import NotificationBus
from autofix.services.fixer import AgentFixExecutor, FixExecutor
from autofix.services.github import GitHubPublisher, PullRequestPublisher
from autofix.services.issue_store import IssueStateStore
from autofix.services.normalizer import IssueActionPolicy
from autofix.services.projects import ProjectResolver, seed_projects_from_config
from autofix.services.scheduler import JobScheduler


def create_app(
    settings: Settings | None = None,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    executor: FixExecutor | None = None,
    publisher: PullRequestPublisher | None = None,
    enricher: EventEnricher | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    if session_factory is None:
        if settings is get_settings():
            session_factory = SessionLocal
        else:
            session_factory = async_sessionmaker(build_engine(settings.database_url), expire_on_commit=False)

    app = FastAPI(title="Autofix API", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    store = IssueStateStore(session_factory)
    bus = NotificationBus()
    resolver = ProjectResolver(session_factory)
    if enricher is None:
        enricher = EventEnricher(MonitorApiClient.from_settings(settings))

    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.store = store
    app.state.bus = bus
    app.state.resolver = resolver
    app.state.enricher = enricher
    app.state.issue_policy = IssueActionPolicy(settings.issue_webhook_actions)
    app.state.scheduler = JobScheduler(
        store=store,
        bus=bus,
        executor=executor or AgentFixExecutor.from_settings(settings),
        publisher=publisher or GitHubPublisher.from_settings(settings),
        resolver=resolver,
        enricher=enricher,
        max_concurrent=settings.max_concurrent_fixes,
        max_attempts=settings.max_attempts_per_issue,
    )
    app.state.recovery_task = None

    @app.on_event("startup")
    async def on_startup() -> None:
        await init_db(session_factory.kw.get("bind"))
        await seed_projects_from_config(session_factory, settings.projects_config_path)
        slugs = await resolver.list_slugs()
        if slugs:
            logger.info("Loaded project mappings", projects=slugs)
        else:
            logger.warning("No project mappings configured; every webhook will be ignored")
        if not settings.enrichment_enabled:
            logger.info("Event enrichment disabled (monitor token or organization not set)")
        Path(settings.repos_dir).mkdir(parents=True, exist_ok=True)
        app.state.recovery_task = asyncio.create_task(app.state.scheduler.start())

    app.include_router(webhooks.router, prefix="/webhook", tags=["webhooks"])
    app.include_router(webhooks.audit_router, prefix="/api/webhooks", tags=["webhooks"])
    app.include_router(issues.router, prefix="/api", tags=["issues"])
    app.include_router(events.router, prefix="/api", tags=["events"])
    app.include_router(projects.router, prefix="/api/projects", tags=["projects"])

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
