from __future__ import annotations

import json
from pathlib import Path

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from autofix.models.project import Project
from autofix.repositories.project_repository import ProjectRepository

REQUIRED_PROJECT_FIELDS = ("repo", "branch", "language", "framework")


class ProjectResolver:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def resolve(self, slug: str | None) -> Project | None:
        if not slug:
            return None
        async with self._session_factory() as session:
            return await ProjectRepository(session).get(slug)

    async def list_slugs(self) -> list[str]:
        async with self._session_factory() as session:
            return [project.slug for project in await ProjectRepository(session).list_all()]


async def seed_projects_from_config(session_factory: async_sessionmaker[AsyncSession], path: str | Path) -> int:
    """Insert projects listed in a JSON config file, leaving existing rows untouched."""
    config_path = Path(path)
    if not config_path.exists():
        return 0
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Failed to load project config", path=str(config_path), error=str(exc))
        return 0

    projects = data.get("projects") if isinstance(data, dict) else None
    if not isinstance(projects, dict):
        return 0

    seeded = 0
    async with session_factory() as session:
        repo = ProjectRepository(session)
        for slug, entry in projects.items():
            if not isinstance(entry, dict) or not all(entry.get(key) for key in REQUIRED_PROJECT_FIELDS):
                logger.warning("Skipping incomplete project entry", slug=slug)
                continue
            created = await repo.create_if_absent(
                slug=str(slug),
                repo=str(entry["repo"]),
                branch=str(entry["branch"]),
                language=str(entry["language"]),
                framework=str(entry["framework"]),
            )
            if created:
                seeded += 1
    if seeded:
        logger.info("Seeded projects from config", count=seeded, path=str(config_path))
    return seeded
