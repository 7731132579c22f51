from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from autofix.db.upsert import insert_ignore
from autofix.models.base import utc_now
from autofix.models.project import Project


class ProjectRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_all(self) -> list[Project]:
        result = await self.session.execute(select(Project).order_by(Project.slug.asc()))
        return list(result.scalars().all())

    async def get(self, slug: str) -> Project | None:
        result = await self.session.execute(select(Project).where(Project.slug == slug))
        return result.scalar_one_or_none()

    async def create(
        self,
        *,
        slug: str,
        repo: str,
        branch: str,
        language: str,
        framework: str,
    ) -> Project:
        project = Project(slug=slug, repo=repo, branch=branch, language=language, framework=framework)
        self.session.add(project)
        await self.session.commit()
        await self.session.refresh(project)
        return project

    async def create_if_absent(
        self,
        *,
        slug: str,
        repo: str,
        branch: str,
        language: str,
        framework: str,
    ) -> bool:
        now = utc_now()
        return await insert_ignore(
            self.session,
            Project.__table__,
            "slug",
            {
                "slug": slug,
                "repo": repo,
                "branch": branch,
                "language": language,
                "framework": framework,
                "created_at": now,
                "updated_at": now,
            },
        )

    async def update(self, project: Project, **updates) -> Project:
        for key, value in updates.items():
            if hasattr(project, key):
                setattr(project, key, value)
        project.updated_at = utc_now()
        await self.session.commit()
        await self.session.refresh(project)
        return project

    async def delete(self, project: Project) -> None:
        await self.session.delete(project)
        await self.session.commit()
