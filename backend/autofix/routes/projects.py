from fastapi import APIRouter, Depends, HTTPException, Response, status
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from autofix.api import deps
from autofix.repositories.project_repository import ProjectRepository
from autofix.schemas.project import (
    ProjectCreateRequest,
    ProjectResponse,
    ProjectUpdateRequest,
)

router = APIRouter()


@router.get("/", response_model=list[ProjectResponse])
async def list_projects(session: AsyncSession = Depends(deps.get_db)):
    return await ProjectRepository(session).list_all()


@router.get("", response_model=list[ProjectResponse], include_in_schema=False)
async def list_projects_no_slash(session: AsyncSession = Depends(deps.get_db)):
    return await list_projects(session=session)


@router.get("/{slug}", response_model=ProjectResponse)
async def get_project(slug: str, session: AsyncSession = Depends(deps.get_db)):
    project = await ProjectRepository(session).get(slug)
    if project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return project


@router.post("/", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(payload: ProjectCreateRequest, session: AsyncSession = Depends(deps.get_db)):
    repo = ProjectRepository(session)
    if await repo.get(payload.slug) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Project already exists")
    project = await repo.create(
        slug=payload.slug,
        repo=payload.repo,
        branch=payload.branch,
        language=payload.language,
        framework=payload.framework,
    )
    logger.info("Created project mapping", slug=project.slug, repo=project.repo)
    return project


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED, include_in_schema=False)
async def create_project_no_slash(payload: ProjectCreateRequest, session: AsyncSession = Depends(deps.get_db)):
    return await create_project(payload=payload, session=session)


@router.put("/{slug}", response_model=ProjectResponse)
async def update_project(slug: str, payload: ProjectUpdateRequest, session: AsyncSession = Depends(deps.get_db)):
    repo = ProjectRepository(session)
    project = await repo.get(slug)
    if project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    updates = payload.model_dump(exclude_unset=True, exclude_none=True)
    project = await repo.update(project, **updates)
    logger.info("Updated project mapping", slug=slug, fields=sorted(updates))
    return project


@router.delete("/{slug}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(slug: str, session: AsyncSession = Depends(deps.get_db)):
    repo = ProjectRepository(session)
    project = await repo.get(slug)
    if project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    await repo.delete(project)
    logger.info("Deleted project mapping", slug=slug)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
